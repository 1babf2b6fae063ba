"""
Mask Rasterizer
===============
Renders a VectorDocument into a premultiplied RGBA image using Pillow.

Technical Notes:
- Elements are composited source-over onto a transparent canvas in order
- Text is drawn once per distinct glyph run into a coverage tile, rotated
  with bicubic resampling, then pasted at each anchor
- Fonts are resolved only from a FontBundle (TrueType data keyed by family
  name); installed system fonts are never used so renders are reproducible
- The result is converted to Pillow's premultiplied ``RGBa`` mode
"""

import io
import logging
import math
import threading
from importlib import resources
from pathlib import Path
from typing import Optional, Union

from PIL import Image, ImageDraw, ImageFont

from .errors import FontNotFoundError, RenderError
from .mask import MaskConfig
from .vector import RectElement, TextElement, VectorDocument, build_mask_document

log = logging.getLogger(__name__)

FONT_SUFFIXES = (".ttf", ".otf")

# Transparent margin around text tiles so antialiased edges are not clipped
TEXT_TILE_PADDING = 2

# Glyph runs below one pixel have no visible coverage and are skipped
MIN_FONT_SIZE = 1.0

# Maximum cached FreeTypeFont objects per bundle (oldest evicted first)
MAX_FONT_CACHE_SIZE = 50


class FontBundle:
    """
    Embedded font data keyed by family name.

    Families are matched case-insensitively. When several faces share a
    family name, the first one registered is kept.
    """

    def __init__(self):
        self._font_data: dict[str, bytes] = {}
        self._family_names: dict[str, str] = {}
        self._cached_fonts: dict[tuple[str, float], ImageFont.FreeTypeFont] = {}
        self._cache_lock = threading.Lock()

    @classmethod
    def default(cls) -> "FontBundle":
        """Bundle with the fonts shipped in ``photomask/fonts``."""
        bundle = cls()
        fonts_dir = resources.files("photomask").joinpath("fonts")
        for entry in sorted(fonts_dir.iterdir(), key=lambda e: e.name):
            if entry.name.lower().endswith(FONT_SUFFIXES):
                bundle.add_font_data(entry.read_bytes())
        return bundle

    @property
    def families(self) -> list[str]:
        return sorted(self._family_names.values())

    def add_font_data(self, data: bytes) -> str:
        """
        Register TrueType/OpenType font data.

        Returns:
            The family name read from the font.

        Raises:
            RenderError: If the data is not a readable font.
        """
        try:
            family, _style = ImageFont.truetype(io.BytesIO(data), 10).getname()
        except OSError as e:
            raise RenderError(f"Cannot read font data: {e}") from e

        key = family.casefold()
        if key not in self._font_data:
            self._font_data[key] = data
            self._family_names[key] = family
        return family

    def load_directory(self, directory: Union[str, Path]) -> list[str]:
        """Register every font file in ``directory``; returns the families added."""
        directory = Path(directory)
        if not directory.is_dir():
            raise RenderError(f"Font directory not found: {directory}")

        families = []
        for path in sorted(directory.iterdir()):
            if path.suffix.lower() in FONT_SUFFIXES:
                families.append(self.add_font_data(path.read_bytes()))
        return families

    def font(self, family: str, size: float) -> ImageFont.FreeTypeFont:
        """Get or create a cached font object for ``family`` at ``size`` pixels."""
        key = family.casefold()
        if key not in self._font_data:
            raise FontNotFoundError(family, self.families)

        cache_key = (key, size)
        with self._cache_lock:
            if cache_key in self._cached_fonts:
                return self._cached_fonts[cache_key]

        font = ImageFont.truetype(io.BytesIO(self._font_data[key]), size)

        with self._cache_lock:
            # Evict oldest entry if cache is full
            if cache_key not in self._cached_fonts and len(self._cached_fonts) >= MAX_FONT_CACHE_SIZE:
                oldest_key = next(iter(self._cached_fonts))
                del self._cached_fonts[oldest_key]
            return self._cached_fonts.setdefault(cache_key, font)

    def clear_cache(self):
        with self._cache_lock:
            self._cached_fonts.clear()


_default_fonts: Optional[FontBundle] = None
_default_fonts_lock = threading.Lock()


def default_fonts() -> FontBundle:
    """Process-wide FontBundle with the packaged fonts, created on first use."""
    global _default_fonts
    with _default_fonts_lock:
        if _default_fonts is None:
            _default_fonts = FontBundle.default()
        return _default_fonts


def _composite_at(canvas: Image.Image, overlay: Image.Image, left: int, top: int):
    """Source-over ``overlay`` onto ``canvas`` at a possibly out-of-bounds offset."""
    dst_left = max(0, left)
    dst_top = max(0, top)
    right = min(canvas.width, left + overlay.width)
    bottom = min(canvas.height, top + overlay.height)
    if right <= dst_left or bottom <= dst_top:
        return

    src_left = dst_left - left
    src_top = dst_top - top
    region = overlay.crop((src_left, src_top, src_left + right - dst_left, src_top + bottom - dst_top))
    canvas.alpha_composite(region, (dst_left, dst_top))


def _text_tile(element: TextElement, fonts: FontBundle) -> tuple[Image.Image, tuple[float, float]]:
    """
    Draw one glyph run into a tile.

    Returns:
        Tuple of (RGBA tile, anchor position inside the tile).
    """
    font = fonts.font(element.font, element.font_size)

    left, top, right, bottom = font.getbbox(element.text, anchor="ls")
    left, top = math.floor(left), math.floor(top)
    right, bottom = math.ceil(right), math.ceil(bottom)

    width = right - left + 2 * TEXT_TILE_PADDING
    height = bottom - top + 2 * TEXT_TILE_PADDING
    anchor_x = TEXT_TILE_PADDING - left
    anchor_y = TEXT_TILE_PADDING - top

    coverage = Image.new("L", (width, height), 0)
    ImageDraw.Draw(coverage).text((anchor_x, anchor_y), element.text, font=font, fill=255, anchor="ls")
    if element.alpha < 255:
        alpha = element.alpha
        coverage = coverage.point(lambda v: (v * alpha + 127) // 255)

    tile = Image.new("RGBA", (width, height), element.color.rgb + (0,))
    tile.putalpha(coverage)

    if element.rotation % 360 == 0:
        return tile, (anchor_x, anchor_y)

    # Pillow turns counter-clockwise; the document turns clockwise
    rotated = tile.rotate(-element.rotation, resample=Image.Resampling.BICUBIC, expand=True)

    # With expand=True the tile center lands on the rotated image center
    theta = math.radians(element.rotation)
    dx = anchor_x - width / 2
    dy = anchor_y - height / 2
    rx = dx * math.cos(theta) - dy * math.sin(theta)
    ry = dx * math.sin(theta) + dy * math.cos(theta)

    return rotated, (rotated.width / 2 + rx, rotated.height / 2 + ry)


def render_document(document: VectorDocument, fonts: Optional[FontBundle] = None) -> Image.Image:
    """
    Rasterize ``document`` at its exact size.

    Args:
        document: The vector document to draw.
        fonts: Font bundle for text elements (default: packaged fonts).

    Returns:
        Image in ``RGBa`` (premultiplied alpha) mode.

    Raises:
        RenderError: If the size is not positive or the backend fails.
    """
    if document.width <= 0 or document.height <= 0:
        raise RenderError(f"Mask size must be positive, got {document.width}x{document.height}")

    if fonts is None:
        fonts = default_fonts()

    try:
        canvas = Image.new("RGBA", (document.width, document.height), (0, 0, 0, 0))
        text_tiles: dict[tuple, tuple[Image.Image, tuple[float, float]]] = {}

        for element in document.elements:
            if isinstance(element, RectElement):
                if element.width <= 0 or element.height <= 0:
                    continue
                overlay = Image.new(
                    "RGBA", (element.width, element.height), element.color.rgb + (element.alpha,)
                )
                _composite_at(canvas, overlay, element.x, element.y)

            elif isinstance(element, TextElement):
                if not element.text or element.font_size < MIN_FONT_SIZE:
                    continue
                key = (element.text, element.font, element.font_size,
                       element.color, element.alpha, element.rotation)
                if key not in text_tiles:
                    text_tiles[key] = _text_tile(element, fonts)
                tile, (anchor_x, anchor_y) = text_tiles[key]
                _composite_at(canvas, tile, round(element.x - anchor_x), round(element.y - anchor_y))

            else:
                raise RenderError(f"Unsupported element: {type(element).__name__}")

        log.debug(
            "Rasterized %d elements (%d glyph tiles) at %dx%d",
            len(document.elements), len(text_tiles), document.width, document.height,
        )
        return canvas.convert("RGBa")

    except RenderError:
        raise
    except (OSError, ValueError, MemoryError) as e:
        raise RenderError(f"Rendering mask failed: {e}") from e


def generate_mask(
        mask: MaskConfig,
        width: int,
        height: int,
        fonts: Optional[FontBundle] = None
) -> Image.Image:
    """
    Render ``mask`` as a ``width`` x ``height`` premultiplied RGBA image.

    Raises:
        RenderError: If the size is not positive or rendering fails.
    """
    if width <= 0 or height <= 0:
        raise RenderError(f"Mask size must be positive, got {width}x{height}")

    document = build_mask_document(mask, width, height)
    return render_document(document, fonts)

"""
Preset Application
==================
Applies an ordered list of named presets to one photo.
"""

import logging
from typing import Optional, Sequence

from PIL import Image

from .composite import apply_mask
from .mask import NamedPreset
from .raster import FontBundle

log = logging.getLogger(__name__)


def prepare_image(image: Image.Image) -> Image.Image:
    """Return ``image`` if it is RGB/RGBA, otherwise an RGB conversion of it."""
    if image.mode in ("RGB", "RGBA"):
        return image
    return image.convert("RGB")


def apply_preset(image: Image.Image, preset: NamedPreset, fonts: Optional[FontBundle] = None) -> Image.Image:
    """Apply one preset to a copy of ``image``; the source is left untouched."""
    result = prepare_image(image).copy()
    apply_mask(preset.preset, result, fonts)
    return result


def apply_presets(
        image: Image.Image,
        presets: Sequence[NamedPreset],
        fonts: Optional[FontBundle] = None
) -> list[tuple[str, Image.Image]]:
    """
    Apply every preset to its own copy of ``image``.

    Args:
        image: Decoded source photo.
        presets: Presets in output order.
        fonts: Font bundle for text masks (default: packaged fonts).

    Returns:
        List of (preset name, watermarked image), in the order of ``presets``.
    """
    source = prepare_image(image)
    results = []
    for preset in presets:
        log.debug("Applying preset %r to %dx%d image", preset.name, source.width, source.height)
        results.append((preset.name, apply_preset(source, preset, fonts)))
    return results

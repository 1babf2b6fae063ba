"""
Alpha Compositor
================
Blends a premultiplied RGBA mask over an image, in place.

Formula (premultiplied source-over), per pixel with channels in [0, 1]:

    alpha_final = ba + fa - ba * fa
    out         = (fc + bc * ba * (1 - fa)) / alpha_final

where ``f`` is the mask (already premultiplied) and ``b`` the background.
Results that are not finite (``alpha_final == 0``) become 0.

The target can be any array whose pixels are described by a PixelFormat:
3 (RGB) or 4 (RGBA) channels of an unsigned integer type. Backgrounds
without alpha count as fully opaque and stay alpha-less.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
from PIL import Image

from .mask import MaskConfig
from .raster import FontBundle, generate_mask

log = logging.getLogger(__name__)

ImageBuffer = Union[Image.Image, np.ndarray]


@dataclass(frozen=True)
class PixelFormat:
    """Channel layout and numeric range of an image buffer."""
    channels: int
    dtype: np.dtype

    def __post_init__(self):
        if self.channels not in (3, 4):
            raise ValueError(f"Pixels must have 3 (RGB) or 4 (RGBA) channels, got {self.channels}")
        if np.dtype(self.dtype).kind != "u":
            raise ValueError(f"Channels must be unsigned integers, got {np.dtype(self.dtype)}")

    @classmethod
    def of(cls, pixels: np.ndarray) -> "PixelFormat":
        """Describe a ``(height, width, channels)`` array."""
        if pixels.ndim != 3:
            raise ValueError(f"Expected a (height, width, channels) array, got shape {pixels.shape}")
        return cls(channels=pixels.shape[2], dtype=pixels.dtype)

    @property
    def has_alpha(self) -> bool:
        return self.channels == 4

    @property
    def max_value(self) -> int:
        return int(np.iinfo(self.dtype).max)

    def to_rgba(self, pixels: np.ndarray) -> np.ndarray:
        """Normalize to float RGBA in [0, 1]; missing alpha is 1.0."""
        rgba = pixels.astype(np.float64) / self.max_value
        if not self.has_alpha:
            opaque = np.ones(rgba.shape[:2] + (1,), dtype=np.float64)
            rgba = np.concatenate([rgba, opaque], axis=2)
        return rgba

    def from_rgba(self, rgba: np.ndarray) -> np.ndarray:
        """Scale float RGBA back to this format, dropping alpha if it has none."""
        scaled = np.rint(np.clip(rgba, 0.0, 1.0) * self.max_value)
        if not self.has_alpha:
            scaled = scaled[..., :3]
        return scaled.astype(self.dtype)


def mask_to_array(mask: Image.Image) -> np.ndarray:
    """Premultiplied ``RGBa`` image as a ``(height, width, 4)`` uint8 array."""
    if mask.mode != "RGBa":
        mask = mask.convert("RGBa")
    return np.frombuffer(mask.tobytes(), dtype=np.uint8).reshape(mask.height, mask.width, 4)


def composite_over(target: np.ndarray, mask: np.ndarray):
    """
    Blend ``mask`` over ``target`` in place.

    Args:
        target: Writable ``(height, width, 3|4)`` unsigned integer array.
        mask: ``(height, width, 4)`` uint8 array with premultiplied alpha.

    Raises:
        ValueError: If the sizes differ or either array has an unsupported layout.
    """
    if target.shape[:2] != mask.shape[:2]:
        raise ValueError(
            f"Mask size {mask.shape[1]}x{mask.shape[0]} does not match "
            f"image size {target.shape[1]}x{target.shape[0]}"
        )
    if mask.ndim != 3 or mask.shape[2] != 4 or mask.dtype != np.uint8:
        raise ValueError(f"Mask must be an 8-bit RGBA array, got {mask.dtype} {mask.shape}")

    pixel_format = PixelFormat.of(target)

    background = pixel_format.to_rgba(target)
    foreground = mask.astype(np.float64) / 255.0

    bg_rgb, bg_a = background[..., :3], background[..., 3:]
    fg_rgb, fg_a = foreground[..., :3], foreground[..., 3:]

    alpha_final = bg_a + fg_a - bg_a * fg_a

    # Background is straight alpha, the mask is already premultiplied
    out_premultiplied = fg_rgb + bg_rgb * bg_a * (1.0 - fg_a)

    with np.errstate(divide="ignore", invalid="ignore"):
        out_rgb = out_premultiplied / alpha_final
    out_rgb[~np.isfinite(out_rgb)] = 0.0

    target[...] = pixel_format.from_rgba(np.concatenate([out_rgb, alpha_final], axis=2))


def apply_mask(mask: MaskConfig, image: ImageBuffer, fonts: Optional[FontBundle] = None) -> ImageBuffer:
    """
    Render ``mask`` at the image's size and blend it over ``image`` in place.

    Args:
        mask: The watermark to apply.
        image: Pillow image in ``RGB``/``RGBA`` mode, or a writable pixel array.
        fonts: Font bundle for text masks (default: packaged fonts).

    Returns:
        The same ``image`` object, for chaining.
    """
    if isinstance(image, Image.Image):
        if image.mode not in ("RGB", "RGBA"):
            raise ValueError(f"Unsupported image mode {image.mode!r}, expected RGB or RGBA")
        pixels = np.array(image)
        apply_mask(mask, pixels, fonts)
        image.paste(Image.fromarray(pixels))
        return image

    height, width = image.shape[:2]
    rendered = generate_mask(mask, width, height, fonts)
    composite_over(image, mask_to_array(rendered))
    log.debug("Applied %s mask to %dx%d image", type(mask.content).__name__, width, height)
    return image

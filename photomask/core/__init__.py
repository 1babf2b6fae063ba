"""
Core Module - Mask Engine
=========================
This module contains no Qt dependencies.

Pipeline: MaskConfig -> VectorDocument -> premultiplied raster -> composite.
"""

from .composite import PixelFormat, apply_mask, composite_over, mask_to_array
from .coords import CoordinateIter
from .errors import ConfigError, FontNotFoundError, PhotomaskError, RenderError
from .mask import Color, MaskConfig, NamedPreset, StripesContent, TextContent
from .presets import apply_preset, apply_presets
from .raster import FontBundle, default_fonts, generate_mask, render_document
from .vector import RectElement, TextElement, VectorDocument, build_mask_document

__all__ = [
    # Mask configuration
    "Color",
    "MaskConfig",
    "NamedPreset",
    "StripesContent",
    "TextContent",

    # Geometry and rendering
    "CoordinateIter",
    "VectorDocument",
    "RectElement",
    "TextElement",
    "build_mask_document",
    "FontBundle",
    "default_fonts",
    "render_document",
    "generate_mask",

    # Compositing
    "PixelFormat",
    "composite_over",
    "mask_to_array",
    "apply_mask",
    "apply_preset",
    "apply_presets",

    # Errors
    "PhotomaskError",
    "ConfigError",
    "RenderError",
    "FontNotFoundError",
]

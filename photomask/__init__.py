"""
PhotoMask Package
=================
Procedural watermark masks (stripes or tiled rotated text) composited onto
photos with premultiplied source-over blending.

Modules:
    - core: Mask engine (no Qt dependencies)
    - workers: QThread workers for off-thread processing
    - config: Layered TOML preset configuration

Usage:
    from photomask.core import MaskConfig, apply_mask, apply_presets
    from photomask.workers import MaskWorker, MaskJob
    from photomask.config import load_config
"""

__version__ = "1.0.0"
__app_name__ = "PhotoMask"

from .core import (
    Color, MaskConfig, NamedPreset, StripesContent, TextContent,
    FontBundle, apply_mask, apply_presets, generate_mask,
    PhotomaskError, ConfigError, RenderError,
)

__all__ = [
    # Version info
    "__version__",
    "__app_name__",

    # Core
    "Color",
    "MaskConfig",
    "NamedPreset",
    "StripesContent",
    "TextContent",
    "FontBundle",
    "apply_mask",
    "apply_presets",
    "generate_mask",

    # Errors
    "PhotomaskError",
    "ConfigError",
    "RenderError",
]

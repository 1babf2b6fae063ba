"""
Engine Errors
=============
Exception types shared by the mask engine and its callers.

- ConfigError: raised while parsing mask presets, before any render happens.
- RenderError: raised by the rasterizer when the backend cannot produce a mask.
"""


class PhotomaskError(Exception):
    """Base class for all errors raised by photomask."""


class ConfigError(PhotomaskError, ValueError):
    """Malformed mask or preset configuration."""


class RenderError(PhotomaskError, RuntimeError):
    """The vector document could not be rasterized."""


class FontNotFoundError(RenderError):
    """A text element asks for a font family missing from the font bundle."""

    def __init__(self, family: str, available: list[str]):
        self.family = family
        self.available = available
        super().__init__(
            f"Font family {family!r} is not in the font bundle "
            f"(available: {', '.join(available) or 'none'})"
        )

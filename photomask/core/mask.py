"""
Mask Specification
==================
Declarative description of one watermark mask.

A mask is an overall opacity (``alpha``, 0-255) plus one of two patterns:

- Stripes: horizontal bands alternating two colors
- Text: a staggered grid of identically rotated text instances

Technical Notes:
- All values are immutable and validated on construction
- ``from_dict`` parses the structured config documents; the pattern is
  selected by the ``type`` tag (``"Stripes"`` or ``"Text"``)
- Text geometry is given in percent of the base unit, 1% of the longer
  image side
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping, Union

from .errors import ConfigError

_HEX_COLOR = re.compile(r"[0-9a-fA-F]{6}")


@dataclass(frozen=True)
class Color:
    """An opaque 8-bit RGB color."""
    r: int
    g: int
    b: int

    def __post_init__(self):
        for channel in (self.r, self.g, self.b):
            if not isinstance(channel, int) or not 0 <= channel <= 255:
                raise ConfigError(f"Color channels must be integers in 0-255, got {channel!r}")

    @classmethod
    def from_hex(cls, value: str) -> "Color":
        """
        Parse a ``rrggbb`` string, optionally prefixed with ``#``.

        Raises:
            ConfigError: If the string is not exactly six hex digits.
        """
        if not isinstance(value, str):
            raise ConfigError(f"Color must be a string, got {type(value).__name__}")

        digits = value[1:] if value.startswith("#") else value
        if len(digits) != 6:
            raise ConfigError(f"Color must be 6 hex digits long, got {value!r}")
        if not _HEX_COLOR.fullmatch(digits):
            raise ConfigError(f"Color must be a valid hex string, got {value!r}")

        return cls(int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))

    @property
    def rgb(self) -> tuple[int, int, int]:
        return self.r, self.g, self.b

    def hex_with_alpha(self, alpha: int) -> str:
        """Format as ``#rrggbbaa`` with the given alpha."""
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}{alpha:02x}"


@dataclass(frozen=True)
class StripesContent:
    """Horizontal bands alternating ``color1`` and ``color2``."""
    color1: Color
    color2: Color
    stripe_count: int

    def __post_init__(self):
        if self.stripe_count < 1:
            raise ConfigError(f"stripe_count must be at least 1, got {self.stripe_count}")


@dataclass(frozen=True)
class TextContent:
    """Rotated text tiled on a staggered grid."""
    text: str
    font: str
    color: Color
    size_percent: float
    rotation: float
    row_slide_percent: float
    offset_x_percent: float
    stride_x_percent: float
    offset_y_percent: float
    stride_y_percent: float

    def __post_init__(self):
        if self.size_percent <= 0:
            raise ConfigError(f"size_percent must be positive, got {self.size_percent}")
        # Zero strides would tile forever
        if self.stride_x_percent <= 0:
            raise ConfigError(f"stride_x_percent must be positive, got {self.stride_x_percent}")
        if self.stride_y_percent <= 0:
            raise ConfigError(f"stride_y_percent must be positive, got {self.stride_y_percent}")


MaskContent = Union[StripesContent, TextContent]

_TEXT_FLOAT_FIELDS = (
    "size_percent",
    "rotation",
    "row_slide_percent",
    "offset_x_percent",
    "stride_x_percent",
    "offset_y_percent",
    "stride_y_percent",
)


def _require(data: Mapping[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise ConfigError(f"Missing required field {key!r} in {where}")
    return data[key]


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Field {key!r} must be an integer, got {value!r}")
    return value


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"Field {key!r} must be a number, got {value!r}")
    return float(value)


def _as_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"Field {key!r} must be a string, got {value!r}")
    return value


def parse_content(data: Mapping[str, Any]) -> MaskContent:
    """Parse a tagged content table into a ``MaskContent`` variant."""
    if not isinstance(data, Mapping):
        raise ConfigError(f"Mask content must be a table, got {type(data).__name__}")

    kind = _require(data, "type", "mask content")

    if kind == "Stripes":
        return StripesContent(
            color1=Color.from_hex(_require(data, "color1", "Stripes content")),
            color2=Color.from_hex(_require(data, "color2", "Stripes content")),
            stripe_count=_as_int(_require(data, "stripe_count", "Stripes content"), "stripe_count"),
        )

    if kind == "Text":
        numbers = {
            key: _as_float(_require(data, key, "Text content"), key)
            for key in _TEXT_FLOAT_FIELDS
        }
        return TextContent(
            text=_as_str(_require(data, "text", "Text content"), "text"),
            font=_as_str(_require(data, "font", "Text content"), "font"),
            color=Color.from_hex(_require(data, "color", "Text content")),
            **numbers,
        )

    raise ConfigError(f"Unknown mask content type {kind!r} (expected 'Stripes' or 'Text')")


@dataclass(frozen=True)
class MaskConfig:
    """One watermark: overall opacity plus the pattern to draw."""
    alpha: int
    content: MaskContent

    def __post_init__(self):
        if isinstance(self.alpha, bool) or not isinstance(self.alpha, int) or not 0 <= self.alpha <= 255:
            raise ConfigError(f"alpha must be an integer in 0-255, got {self.alpha!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MaskConfig":
        if not isinstance(data, Mapping):
            raise ConfigError(f"Mask must be a table, got {type(data).__name__}")
        return cls(
            alpha=_as_int(_require(data, "alpha", "mask"), "alpha"),
            content=parse_content(_require(data, "content", "mask")),
        )


@dataclass(frozen=True)
class NamedPreset:
    """A user-facing label paired with the mask it applies."""
    name: str
    preset: MaskConfig

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NamedPreset":
        """
        Parse a preset table.

        The mask fields may sit next to ``name`` or inside a ``preset`` table:

            {name = "Red", alpha = 32, content = {type = "Stripes", ...}}
            {name = "Red", preset = {alpha = 32, content = {...}}}
        """
        if not isinstance(data, Mapping):
            raise ConfigError(f"Preset must be a table, got {type(data).__name__}")

        name = _as_str(_require(data, "name", "preset"), "name")
        try:
            mask_data = data["preset"] if "preset" in data else data
            preset = MaskConfig.from_dict(mask_data)
        except ConfigError as e:
            raise ConfigError(f"Preset {name!r}: {e}") from e

        return cls(name=name, preset=preset)

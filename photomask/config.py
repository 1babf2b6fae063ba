"""
Configuration Loader
====================
Reads mask presets and output settings from layered TOML files.

Layout (``config_dir`` defaults to ``./config``):
    default.toml          - shared settings (optional)
    <environment>.toml    - per-environment overrides (optional)

At least one of the two files must exist. Tables are merged recursively,
the environment file wins. The environment name comes from the
``ENVIRONMENT`` variable (a ``.env`` file is honored) unless given
explicitly.

Example:
    [output]
    jpeg_quality = 90

    [[masks.presets]]
    name = "Stripes"
    alpha = 32
    content = { type = "Stripes", color1 = "#ff0000", color2 = "#00ff00", stripe_count = 10 }
"""

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from dotenv import load_dotenv

from photomask.core import ConfigError, FontBundle, NamedPreset

log = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path("config")
DEFAULT_FILE_NAME = "default.toml"


def slugify(name: str) -> str:
    """File-name friendly version of a preset name."""
    slug = re.sub(r"[^\w-]+", "-", name, flags=re.UNICODE).strip("-").lower()
    return slug or "preset"


@dataclass
class MaskSettings:
    """Presets applied to every photo, in reply order."""
    presets: list[NamedPreset] = field(default_factory=list)


@dataclass
class OutputSettings:
    """How results are encoded and named."""
    jpeg_quality: int = 90
    suffix_separator: str = "_"


@dataclass
class FontSettings:
    """Extra font files to add to the packaged fonts."""
    directory: Optional[Path] = None


@dataclass
class Config:
    """Complete configuration for one environment."""
    environment: str = "dev"
    masks: MaskSettings = field(default_factory=MaskSettings)
    output: OutputSettings = field(default_factory=OutputSettings)
    fonts: FontSettings = field(default_factory=FontSettings)

    def font_bundle(self) -> FontBundle:
        """Packaged fonts plus the configured font directory, if any."""
        bundle = FontBundle.default()
        if self.fonts.directory is not None:
            bundle.load_directory(self.fonts.directory)
        return bundle

    @classmethod
    def from_dict(cls, data: dict[str, Any], environment: str = "dev") -> "Config":
        masks_dict = _table(data, "masks")
        output_dict = _table(data, "output")
        fonts_dict = _table(data, "fonts")

        raw_presets = masks_dict.get("presets", [])
        if not isinstance(raw_presets, list):
            raise ConfigError("masks.presets must be an array of tables")
        presets = [NamedPreset.from_dict(item) for item in raw_presets]
        _check_unique_names(presets)

        quality = output_dict.get("jpeg_quality", 90)
        if isinstance(quality, bool) or not isinstance(quality, int) or not 1 <= quality <= 100:
            raise ConfigError(f"output.jpeg_quality must be an integer in 1-100, got {quality!r}")

        separator = output_dict.get("suffix_separator", "_")
        if not isinstance(separator, str):
            raise ConfigError("output.suffix_separator must be a string")

        directory = fonts_dict.get("directory")
        if directory is not None and not isinstance(directory, str):
            raise ConfigError("fonts.directory must be a string")

        return cls(
            environment=environment,
            masks=MaskSettings(presets=presets),
            output=OutputSettings(jpeg_quality=quality, suffix_separator=separator),
            fonts=FontSettings(directory=Path(directory) if directory else None),
        )


def _check_unique_names(presets: list[NamedPreset]):
    # Output files are named after the slug, so two presets may not share one
    seen: dict[str, str] = {}
    for preset in presets:
        slug = slugify(preset.name)
        if slug in seen:
            if seen[slug] == preset.name:
                raise ConfigError(f"Duplicate preset name {preset.name!r}")
            raise ConfigError(
                f"Preset names {seen[slug]!r} and {preset.name!r} both map to file name {slug!r}"
            )
        seen[slug] = preset.name


def _table(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] must be a table")
    return value


def merge_tables(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_tables(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e


def load_config(
        environment: Optional[str] = None,
        config_dir: Optional[Union[str, Path]] = None
) -> Config:
    """
    Load the configuration for ``environment``.

    Args:
        environment: Environment name; defaults to ``$ENVIRONMENT``.
        config_dir: Directory with the TOML files; defaults to
                    ``$PHOTOMASK_CONFIG_DIR`` or ``./config``.

    Returns:
        Parsed Config.

    Raises:
        ConfigError: If no environment is set, no file is found, or any
                     value is malformed.
    """
    load_dotenv()

    if environment is None:
        environment = os.environ.get("ENVIRONMENT")
    if not environment:
        raise ConfigError(
            "Please set ENVIRONMENT env var (probably you want to use either 'prod' or 'dev')"
        )

    if config_dir is None:
        config_dir = os.environ.get("PHOTOMASK_CONFIG_DIR", DEFAULT_CONFIG_DIR)
    config_dir = Path(config_dir)

    base_path = config_dir / DEFAULT_FILE_NAME
    env_path = config_dir / f"{environment}.toml"

    found = [path for path in (base_path, env_path) if path.is_file()]
    if not found:
        raise ConfigError(f"No config found: expected {base_path} or {env_path}")

    data: dict[str, Any] = {}
    for path in found:
        log.debug("Reading config file %s", path)
        data = merge_tables(data, _read_toml(path))

    config = Config.from_dict(data, environment)
    log.info(
        "Loaded config for %r with %d presets: %s",
        environment, len(config.masks.presets),
        ", ".join(p.name for p in config.masks.presets),
    )
    return config

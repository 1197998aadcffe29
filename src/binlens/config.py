"""TOML-backed configuration."""

import os
import tomllib
from typing import Any
from pathlib import Path
from dataclasses import field, asdict, fields, dataclass

from binlens.arch.x86.decoder import SYNTAXES
from binlens.loader.translate import TranslationMode

CONFIG_ENV_VAR = "BINLENS_CONFIG"
DEFAULT_CONFIG_NAME = "binlens.toml"


@dataclass(slots=True)
class LoggingConfig:
    level: str = "WARNING"
    file: str | None = None
    max_bytes: int = 10_485_760
    backup_count: int = 3


@dataclass(slots=True)
class LoaderConfig:
    """Settings passed through to the executable loader."""

    translation: str = "strict"

    @property
    def translation_mode(self) -> TranslationMode:
        try:
            return TranslationMode(self.translation.lower())
        except ValueError:
            choices = ", ".join(m.value for m in TranslationMode)
            raise ValueError(
                f"Unknown translation mode {self.translation!r}, expected one of: {choices}"
            ) from None


@dataclass(slots=True)
class DisplayConfig:
    """Output settings for the command line front end."""

    syntax: str = "intel"
    hexdump_width: int = 16
    function_limit: int = 50
    histogram_top: int = 16

    def validate(self) -> None:
        """Raise ValueError for settings the front end cannot honour."""
        if self.syntax not in SYNTAXES:
            raise ValueError(
                f"Unknown display syntax {self.syntax!r}, expected one of: {', '.join(SYNTAXES)}"
            )
        if self.hexdump_width <= 0:
            raise ValueError(f"display.hexdump_width must be positive, got {self.hexdump_width}")


@dataclass(slots=True)
class BinlensConfig:
    """Root configuration.

    Usage:
        >>> config = BinlensConfig.load()                # BINLENS_CONFIG or ./binlens.toml
        >>> config = BinlensConfig.load("custom.toml")
        >>> config.loader.translation_mode
        <TranslationMode.STRICT: 'strict'>
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> "BinlensConfig":
        """Load configuration from a TOML file.

        Missing keys fall back to defaults. A missing file is only an error
        when the path was given explicitly.
        """
        config_path = Path(path) if path is not None else default_config_path()

        if not config_path.exists():
            if path is not None:
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            return cls()

        with open(config_path, "rb") as fh:
            try:
                raw: dict[str, Any] = tomllib.load(fh)
            except tomllib.TOMLDecodeError as e:
                raise ValueError(f"Invalid configuration file {config_path}: {e}") from e

        return cls(
            logging=_build_section(LoggingConfig, raw.get("logging", {})),
            loader=_build_section(LoaderConfig, raw.get("loader", {})),
            display=_build_section(DisplayConfig, raw.get("display", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env)
    return Path.cwd() / DEFAULT_CONFIG_NAME


def _build_section(cls: type, data: dict[str, Any]) -> Any:
    """Instantiate a section dataclass from the keys it declares; others are ignored."""
    valid_keys = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in valid_keys})

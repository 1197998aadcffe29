"""Tests for configuration loading and logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest
from rich.logging import RichHandler

from binlens.log import configure_logging
from binlens.config import CONFIG_ENV_VAR, BinlensConfig, default_config_path
from binlens.loader.translate import TranslationMode


class TestBinlensConfig:
    """Tests for BinlensConfig."""

    def test_defaults(self):
        """Test default values."""
        config = BinlensConfig()
        assert config.logging.level == "WARNING"
        assert config.loader.translation_mode is TranslationMode.STRICT
        assert config.display.hexdump_width == 16
        assert config.display.syntax == "intel"

    def test_load_file(self, tmp_path):
        """Test loading sections from TOML."""
        path = tmp_path / "binlens.toml"
        path.write_text(
            '[logging]\nlevel = "DEBUG"\n\n'
            '[loader]\ntranslation = "bracket"\n\n'
            "[display]\nhexdump_width = 8\nfunction_limit = 5\n"
        )
        config = BinlensConfig.load(path)
        assert config.logging.level == "DEBUG"
        assert config.loader.translation_mode is TranslationMode.BRACKET
        assert config.display.hexdump_width == 8
        assert config.display.function_limit == 5
        assert config.display.syntax == "intel"

    def test_unknown_keys_ignored(self, tmp_path):
        """Test that unknown keys and sections do not break loading."""
        path = tmp_path / "binlens.toml"
        path.write_text('[display]\ncolour = "yes"\n\n[plugins]\nenabled = true\n')
        assert BinlensConfig.load(path).display == BinlensConfig().display

    def test_missing_explicit_file(self, tmp_path):
        """Test that a missing explicit path is an error."""
        with pytest.raises(FileNotFoundError):
            BinlensConfig.load(tmp_path / "nope.toml")

    def test_missing_default_file(self, tmp_path, monkeypatch):
        """Test that a missing default file gives defaults."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert BinlensConfig.load() == BinlensConfig()

    def test_env_var_path(self, tmp_path, monkeypatch):
        """Test that the environment variable selects the default file."""
        path = tmp_path / "custom.toml"
        path.write_text("[display]\nfunction_limit = 3\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert default_config_path() == path
        assert BinlensConfig.load().display.function_limit == 3

    def test_bad_translation_mode(self):
        """Test that an unknown translation mode is reported."""
        config = BinlensConfig()
        config.loader.translation = "fuzzy"
        with pytest.raises(ValueError, match="fuzzy"):
            config.loader.translation_mode

    @pytest.mark.parametrize(
        "key, value, message",
        [("syntax", "gas", "gas"), ("hexdump_width", 0, "hexdump_width"), ("hexdump_width", -4, "-4")],
    )
    def test_invalid_display_settings(self, key, value, message):
        """Test that display settings the front end cannot honour are reported."""
        config = BinlensConfig()
        setattr(config.display, key, value)
        with pytest.raises(ValueError, match=message):
            config.display.validate()

    def test_default_display_settings_are_valid(self):
        """Test that the defaults pass validation, including AT&T syntax."""
        config = BinlensConfig()
        config.display.validate()
        config.display.syntax = "att"
        config.display.validate()

    def test_malformed_toml(self, tmp_path):
        """Test that a TOML syntax error names the offending file."""
        path = tmp_path / "broken.toml"
        path.write_text("[display\n")
        with pytest.raises(ValueError, match="broken.toml"):
            BinlensConfig.load(path)

    def test_to_dict(self):
        """Test serialisation to plain data."""
        data = BinlensConfig().to_dict()
        assert data["loader"] == {"translation": "strict"}


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_console_handler(self):
        """Test that a rich handler is installed at the requested level."""
        logger = configure_logging("debug")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)

    def test_file_handler(self, tmp_path):
        """Test that a log file adds a rotating handler and receives records."""
        log_file = tmp_path / "logs" / "binlens.log"
        logger = configure_logging("INFO", log_file)
        assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)

        logging.getLogger("binlens.loader.elf").info("parsed sample")
        for handler in logger.handlers:
            handler.flush()
        assert "parsed sample" in log_file.read_text()

    def test_reconfigure_replaces_handlers(self):
        """Test that repeated setup does not duplicate handlers."""
        configure_logging("INFO")
        logger = configure_logging("WARNING")
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING

"""Unit tests for configuration management."""

from pathlib import Path

import pytest
import yaml

from src.ledgerio.config import (
    BookConfig,
    EngineConfig,
    LedgerIOConfig,
    LoggingConfig,
    SettingsConfig,
    load_config,
)
from src.ledgerio.constants import DEFAULT_CHUNK_SIZE
from src.ledgerio.models.session import DuplicateMode
from src.ledgerio.utils.exceptions import ConfigurationError


class TestEngineConfig:
    """Test EngineConfig dataclass."""

    def test_default_values(self):
        """Test default engine configuration values."""
        engine = EngineConfig()

        assert engine.chunk_size == DEFAULT_CHUNK_SIZE
        assert engine.stop_on_first_error is False
        assert engine.duplicate_mode == DuplicateMode.ABORT
        assert engine.inserts_while_parsing is False
        assert engine.allow_formulas is True

    def test_duplicate_mode_coerced(self):
        assert EngineConfig(duplicate_mode="ignore").duplicate_mode == DuplicateMode.IGNORE

    def test_invalid_values(self):
        with pytest.raises(ConfigurationError, match="chunk_size"):
            EngineConfig(chunk_size=0)
        with pytest.raises(ValueError):
            EngineConfig(duplicate_mode="merge")


class TestPathSections:
    """Test sections holding paths."""

    def test_paths_are_expanded(self):
        assert SettingsConfig().path == Path("~/.config/ledgerio/settings.yaml").expanduser()
        assert BookConfig(path="~/books/2024").path == Path.home() / "books" / "2024"

    def test_logging_defaults(self):
        logging_config = LoggingConfig()

        assert logging_config.level == "INFO"
        assert logging_config.format == "console"
        assert logging_config.file is None


class TestLedgerIOConfig:
    """Test LedgerIOConfig loading and saving."""

    def test_from_file(self, tmp_path):
        """Test loading every section from YAML."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "engine": {"chunk_size": 10, "duplicate_mode": "replace", "allow_formulas": False},
                    "settings": {"path": str(tmp_path / "settings.yaml")},
                    "book": {"path": str(tmp_path / "book")},
                    "logging": {"level": "DEBUG", "file": str(tmp_path / "ledgerio.log")},
                }
            )
        )

        config = LedgerIOConfig.from_file(config_file)

        assert config.engine.chunk_size == 10
        assert config.engine.duplicate_mode == DuplicateMode.REPLACE
        assert config.engine.allow_formulas is False
        assert config.settings.path == tmp_path / "settings.yaml"
        assert config.book.path == tmp_path / "book"
        assert config.logging.level == "DEBUG"
        assert config.logging.file == tmp_path / "ledgerio.log"

    def test_from_file_missing_sections(self, tmp_path):
        """Missing sections take their defaults."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("engine:\n  chunk_size: 5\n")

        config = LedgerIOConfig.from_file(config_file)

        assert config.engine.chunk_size == 5
        assert config.book == BookConfig()

    def test_from_empty_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        assert LedgerIOConfig.from_file(config_file) == LedgerIOConfig()

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("engine: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            LedgerIOConfig.from_file(config_file)

    def test_invalid_structure(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- engine\n- book\n")

        with pytest.raises(ConfigurationError, match="expected dictionary, got list"):
            LedgerIOConfig.from_file(config_file)

    def test_unknown_keys(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("engine:\n  workers: 4\n")

        with pytest.raises(ConfigurationError, match="Unknown keys in configuration section 'engine': workers"):
            LedgerIOConfig.from_file(config_file)

    def test_section_not_a_mapping(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("book: /srv/book\n")

        with pytest.raises(ConfigurationError, match="'book' must be a mapping"):
            LedgerIOConfig.from_file(config_file)

    def test_invalid_section_value(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("engine:\n  duplicate_mode: merge\n")

        with pytest.raises(ConfigurationError, match="Invalid configuration section 'engine'"):
            LedgerIOConfig.from_file(config_file)

    def test_to_file_round_trip(self, tmp_path):
        """Test saving then loading configuration."""
        config = LedgerIOConfig(
            engine=EngineConfig(chunk_size=7, duplicate_mode=DuplicateMode.IGNORE),
            book=BookConfig(path=tmp_path / "book"),
        )
        config_file = tmp_path / "nested" / "config.yaml"

        config.to_file(config_file)

        data = yaml.safe_load(config_file.read_text())
        assert data["engine"]["duplicate_mode"] == "ignore"
        assert "file" not in data["logging"]
        assert LedgerIOConfig.from_file(config_file) == config


class TestFromEnv:
    """Test environment variable configuration."""

    def test_defaults(self, monkeypatch):
        for name in ("LEDGERIO_SETTINGS", "LEDGERIO_BOOK", "LEDGERIO_CHUNK_SIZE", "LOG_LEVEL", "LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)

        config = LedgerIOConfig.from_env()

        assert config.engine.chunk_size == DEFAULT_CHUNK_SIZE
        assert config.logging.level == "INFO"
        assert config.book.path == Path("~/.local/share/ledgerio/book").expanduser()

    def test_variables(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LEDGERIO_SETTINGS", str(tmp_path / "settings.yaml"))
        monkeypatch.setenv("LEDGERIO_BOOK", str(tmp_path / "book"))
        monkeypatch.setenv("LEDGERIO_CHUNK_SIZE", "200")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LOG_FORMAT", "json")

        config = LedgerIOConfig.from_env()

        assert config.settings.path == tmp_path / "settings.yaml"
        assert config.book.path == tmp_path / "book"
        assert config.engine.chunk_size == 200
        assert config.logging.format == "json"

    def test_invalid_chunk_size(self, monkeypatch):
        monkeypatch.setenv("LEDGERIO_CHUNK_SIZE", "many")

        with pytest.raises(ConfigurationError, match="LEDGERIO_CHUNK_SIZE must be an integer"):
            LedgerIOConfig.from_env()


class TestLoadConfig:
    """Test load_config entry point."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Configuration file not found"):
            load_config(tmp_path / "missing.yaml")

    def test_without_file_uses_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LEDGERIO_BOOK", str(tmp_path))

        assert load_config().book.path == tmp_path

"""Configuration management for the ledgerio import/export engine."""

import os
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .constants import DEFAULT_CHUNK_SIZE
from .models.session import DuplicateMode
from .utils.exceptions import ConfigurationError

DEFAULT_SETTINGS_PATH = Path("~/.config/ledgerio/settings.yaml")
DEFAULT_BOOK_PATH = Path("~/.local/share/ledgerio/book")


@dataclass
class EngineConfig:
    """
    Execution engine configuration.

    Controls chunking, error handling and the CSV backend options.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE  # Rows per engine step
    stop_on_first_error: bool = False
    duplicate_mode: DuplicateMode = DuplicateMode.ABORT

    # CSV backend
    inserts_while_parsing: bool = False
    allow_formulas: bool = True  # False prefixes =,+,-,@ fields with a quote on export

    def __post_init__(self) -> None:
        self.duplicate_mode = DuplicateMode(self.duplicate_mode)
        if self.chunk_size < 1:
            raise ConfigurationError(f"engine.chunk_size must be positive, got {self.chunk_size}")


@dataclass
class SettingsConfig:
    """Where format preferences and last used folders are kept."""

    path: Path = DEFAULT_SETTINGS_PATH

    def __post_init__(self) -> None:
        self.path = Path(self.path).expanduser()


@dataclass
class BookConfig:
    """Directory holding the CSV files of the command-line book."""

    path: Path = DEFAULT_BOOK_PATH

    def __post_init__(self) -> None:
        self.path = Path(self.path).expanduser()


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"  # "console" or "json"
    file: Path | None = None


def _section(cls: type, data: Any, name: str) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown keys in configuration section '{name}': {', '.join(sorted(unknown))}"
        )
    try:
        return cls(**data)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration section '{name}': {e}") from e


@dataclass
class LedgerIOConfig:
    """
    Complete configuration for ledgerio.

    This combines all configuration sections.
    """

    engine: EngineConfig = field(default_factory=EngineConfig)
    settings: SettingsConfig = field(default_factory=SettingsConfig)
    book: BookConfig = field(default_factory=BookConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, config_path: Path) -> "LedgerIOConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML config file

        Returns:
            LedgerIOConfig instance

        Raises:
            ConfigurationError: If the file is not valid YAML or has bad sections
        """
        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid configuration file structure in {config_path}: "
                f"expected dictionary, got {type(data).__name__}"
            )

        logging_data = data.get("logging")
        if isinstance(logging_data, dict) and logging_data.get("file"):
            logging_data["file"] = Path(logging_data["file"])

        return cls(
            engine=_section(EngineConfig, data.get("engine"), "engine"),
            settings=_section(SettingsConfig, data.get("settings"), "settings"),
            book=_section(BookConfig, data.get("book"), "book"),
            logging=_section(LoggingConfig, logging_data, "logging"),
        )

    def to_file(self, config_path: Path) -> None:
        """
        Save configuration to YAML file.

        Args:
            config_path: Path to save config file
        """

        def plain(section: Any) -> dict[str, Any]:
            values = {}
            for key, value in section.__dict__.items():
                if value is None:
                    continue
                if isinstance(value, Enum):
                    value = value.value
                elif isinstance(value, Path):
                    value = str(value)
                values[key] = value
            return values

        data = {
            "engine": plain(self.engine),
            "settings": plain(self.settings),
            "book": plain(self.book),
            "logging": plain(self.logging),
        }

        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    @classmethod
    def from_env(cls) -> "LedgerIOConfig":
        """
        Create configuration from environment variables.

        Environment variables:
            LEDGERIO_SETTINGS: Settings file path
            LEDGERIO_BOOK: Book directory
            LEDGERIO_CHUNK_SIZE: Rows per engine step (default: 50)
            LOG_LEVEL: Logging level (default: INFO)
            LOG_FORMAT: "console" or "json" (default: console)

        Returns:
            LedgerIOConfig instance

        Raises:
            ConfigurationError: If LEDGERIO_CHUNK_SIZE is not a positive integer
        """
        chunk_size_str = os.environ.get("LEDGERIO_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE))
        try:
            chunk_size = int(chunk_size_str)
        except ValueError as e:
            raise ConfigurationError(
                f"LEDGERIO_CHUNK_SIZE must be an integer, got '{chunk_size_str}'"
            ) from e

        return cls(
            engine=EngineConfig(chunk_size=chunk_size),
            settings=SettingsConfig(
                path=Path(os.environ.get("LEDGERIO_SETTINGS", str(DEFAULT_SETTINGS_PATH)))
            ),
            book=BookConfig(path=Path(os.environ.get("LEDGERIO_BOOK", str(DEFAULT_BOOK_PATH)))),
            logging=LoggingConfig(
                level=os.environ.get("LOG_LEVEL", "INFO"),
                format=os.environ.get("LOG_FORMAT", "console"),
            ),
        )


def load_config(config_file: Path | None = None) -> LedgerIOConfig:
    """
    Load configuration from file or environment variables.

    Args:
        config_file: Optional path to YAML config file

    Returns:
        LedgerIOConfig instance

    Raises:
        FileNotFoundError: If config_file is specified but doesn't exist
    """
    if config_file:
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")
        return LedgerIOConfig.from_file(config_file)
    return LedgerIOConfig.from_env()

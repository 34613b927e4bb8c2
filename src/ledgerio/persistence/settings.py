"""Settings stores for format preferences and last used folders.

The engine only needs a small synchronous key/value contract:

- load_format(key, mode) / save_format(key, fmt)
- load_last_path(scope) / save_last_path(scope, path)

MemorySettings keeps everything in process (tests, embedding hosts).
YamlSettings persists to a YAML file, rewritten atomically on each save:

```
formats:
  Account-Import-format:
    charset: UTF-8
    date_format: sql
    field_sep: ;
    headers: 1
paths:
  LastImportFolder: /home/user/imports
```
"""

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import structlog
import yaml

from ..models.stream_format import Mode, StreamFormat
from ..utils.exceptions import ConfigurationError, SettingsError

logger = structlog.get_logger(__name__)


class SettingsStore(ABC):
    """Abstract base class for settings stores."""

    @abstractmethod
    def load_format(self, key: str, mode: Mode) -> StreamFormat | None:
        pass

    @abstractmethod
    def save_format(self, key: str, fmt: StreamFormat) -> None:
        pass

    @abstractmethod
    def load_last_path(self, scope: str) -> str | None:
        pass

    @abstractmethod
    def save_last_path(self, scope: str, path: str) -> None:
        pass

    @staticmethod
    def _name_from_key(key: str) -> str:
        # "Account-Import-format" -> "Account"
        return key.rsplit("-", 2)[0]

    def _build(self, key: str, data: dict[str, Any], mode: Mode) -> StreamFormat:
        try:
            return StreamFormat.from_dict(data, self._name_from_key(key), mode)
        except (ConfigurationError, TypeError, ValueError) as e:
            raise SettingsError(f"Invalid stored format '{key}': {e}") from e


class MemorySettings(SettingsStore):
    """In-process settings store."""

    def __init__(self) -> None:
        self.formats: dict[str, dict[str, Any]] = {}
        self.paths: dict[str, str] = {}

    def load_format(self, key: str, mode: Mode) -> StreamFormat | None:
        data = self.formats.get(key)
        if data is None:
            return None
        return self._build(key, data, mode)

    def save_format(self, key: str, fmt: StreamFormat) -> None:
        self.formats[key] = fmt.to_dict()

    def load_last_path(self, scope: str) -> str | None:
        return self.paths.get(scope)

    def save_last_path(self, scope: str, path: str) -> None:
        self.paths[scope] = path


class YamlSettings(SettingsStore):
    """
    YAML file settings store.

    The file is read on each load so that several hosts sharing it see each
    other's changes, and rewritten through a temporary file on each save.
    """

    def __init__(self, path: Path) -> None:
        """
        Initialize YamlSettings.

        Args:
            path: Path to the YAML settings file (created on first save)
        """
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SettingsError(f"Invalid YAML in settings file {self.path}: {e}") from e
        except OSError as e:
            raise SettingsError(f"Unable to read settings file {self.path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise SettingsError(
                f"Invalid settings file structure in {self.path}: "
                f"expected dictionary, got {type(data).__name__}"
            )
        return data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
                os.replace(tmp_path, self.path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise SettingsError(f"Unable to write settings file {self.path}: {e}") from e

    def load_format(self, key: str, mode: Mode) -> StreamFormat | None:
        data = self._read().get("formats") or {}
        entry = data.get(key)
        if not isinstance(entry, dict):
            return None
        return self._build(key, entry, mode)

    def save_format(self, key: str, fmt: StreamFormat) -> None:
        data = self._read()
        data.setdefault("formats", {})[key] = fmt.to_dict()
        self._write(data)
        logger.debug("Format written to settings", key=key, path=str(self.path))

    def load_last_path(self, scope: str) -> str | None:
        paths = self._read().get("paths") or {}
        value = paths.get(scope)
        return str(value) if value else None

    def save_last_path(self, scope: str, path: str) -> None:
        data = self._read()
        data.setdefault("paths", {})[scope] = str(path)
        self._write(data)

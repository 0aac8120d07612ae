"""
Filesystem adapter for Gatekeep.

Handles reading and writing the permission and policy documents and the
`.gatekeep.toml` settings file. JSON is the default format; `.yaml` and
`.yml` paths are handled with PyYAML.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

import yaml

from gatekeep.domain.exceptions import ConfigError
from gatekeep.domain.settings import GatekeepSettings

YAML_SUFFIXES = {".yaml", ".yml"}


class ConfigStore:
    """
    Adapter for configuration file I/O.

    All config persistence in Gatekeep goes through this adapter,
    making it easy to point at a temporary directory in tests.
    """

    def __init__(self, base_path: Path | None = None) -> None:
        """
        Initialize the config store.

        Args:
            base_path: Base path for relative file operations.
        """
        self.base_path = base_path or Path.cwd()

    def read_document(self, path: Path | str) -> dict[str, Any] | None:
        """
        Read a JSON or YAML document.

        Args:
            path: Path to the document.

        Returns:
            The parsed mapping, or None if the file does not exist.

        Raises:
            ConfigError: If the file is unreadable, malformed, or not a mapping.
        """
        path = self._resolve_path(path)
        if not path.exists():
            return None

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Error reading {path}: {e}", config_key=str(path)) from e

        try:
            if path.suffix in YAML_SUFFIXES:
                data = yaml.safe_load(content)
            else:
                data = json.loads(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Invalid document {path}: {e}", config_key=str(path)) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping in {path}", config_key=str(path))
        return data

    def write_document(self, path: Path | str, data: dict[str, Any]) -> Path:
        """
        Write a document, creating parent directories as needed.

        Args:
            path: Destination path.
            data: JSON-serializable mapping.

        Returns:
            The resolved path written.
        """
        path = self._resolve_path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.suffix in YAML_SUFFIXES:
            content = yaml.safe_dump(data, sort_keys=False)
        else:
            content = json.dumps(data, indent=2) + "\n"

        path.write_text(content, encoding="utf-8")
        return path

    def load_settings(self, path: Path | str | None = None) -> GatekeepSettings:
        """
        Load `.gatekeep.toml` settings.

        A missing file yields defaults. A malformed file raises ConfigError
        since it is supplied explicitly by the operator.
        """
        path = self._resolve_path(path or ".gatekeep.toml")
        if not path.exists():
            return GatekeepSettings()

        try:
            with path.open("rb") as f:
                data = tomllib.load(f)
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Invalid settings file {path}: {e}", config_key=str(path)) from e

        try:
            return GatekeepSettings.from_toml(data)
        except ValueError as e:
            raise ConfigError(f"Invalid settings in {path}: {e}", config_key=str(path)) from e

    def _resolve_path(self, path: Path | str) -> Path:
        """Resolve a path relative to base_path, expanding `~`."""
        path = Path(path).expanduser()

        if path.is_absolute():
            return path

        return self.base_path / path

# src/alchemist/dataloader/config_loader.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from alchemist.errors import ConfigError
from alchemist.schemas.models import Config

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = {".yaml", ".yml"}


class ConfigLoader:
    """
    @brief
    Reads config.yaml into a validated `Config`.

    @details
    Every failure (bad path, unreadable file, YAML syntax, empty or non-mapping
    document, schema violation) surfaces as a `ConfigError` carrying the
    failing step and a suggested fix.
    """

    def load(self, path: Path | str) -> Config:
        """
        @brief
        Load and validate one configuration file.

        @params
            path : Path | str
                Location of a .yaml / .yml file.

        @returns
            Config with defaults applied to omitted sections.

        @raises
            ConfigError
                On any read, parse or schema failure.
        """
        # (1) Parse the document
        data = self._read_yaml(self._as_path(path))

        # (2) Validate against the schema
        cfg = self._validate(data)
        logger.info("Configuration loaded: %s", path)
        return cfg

    def load_or_default(self, path: Path | str | None) -> Config:
        """Load `path` when given, otherwise return the built-in defaults."""
        if path is None:
            logger.info("No configuration file given, using defaults")
            return Config()
        return self.load(path)

    @staticmethod
    def _as_path(path: Any) -> Path:
        if isinstance(path, Path):
            return path
        if isinstance(path, str) and path.strip():
            return Path(path)
        raise ConfigError(
            message=f"Invalid configuration path: {path!r}",
            source="ConfigLoader._as_path",
            suggested_action="Pass a path (str or pathlib.Path) to config.yaml.",
        )

    def _read_yaml(self, path: Path) -> dict[str, Any]:
        """
        @brief
        Read a YAML file into a plain dict.

        @raises
            ConfigError
                Missing file, wrong extension, I/O or syntax error, empty
                document, or a root that is not a mapping.
        """
        # (1) Location and extension
        if not path.is_file():
            raise ConfigError(
                message=f"Configuration file not found: {path}",
                source="ConfigLoader._read_yaml",
                suggested_action="Check the --config path or create config/config.yaml.",
            )
        if path.suffix.lower() not in _YAML_SUFFIXES:
            raise ConfigError(
                message=f"Unsupported configuration file extension: {path.suffix or '(none)'}",
                source="ConfigLoader._read_yaml",
                suggested_action="Rename the file to .yaml or .yml.",
            )

        # (2) Parse
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(
                message=f"YAML parsing failed: {e}",
                source="ConfigLoader._read_yaml",
                suggested_action="Fix YAML syntax and indentation.",
            ) from e
        except OSError as e:
            raise ConfigError(
                message=f"Unable to read configuration file: {e}",
                source="ConfigLoader._read_yaml",
                suggested_action="Check file permissions.",
            ) from e

        # (3) Document shape
        if data is None:
            raise ConfigError(
                message="Configuration file is empty.",
                source="ConfigLoader._read_yaml",
                suggested_action="Add at least one section, or omit --config to use defaults.",
            )
        if not isinstance(data, Mapping):
            raise ConfigError(
                message=f"Configuration root must be a mapping, got {type(data).__name__}.",
                source="ConfigLoader._read_yaml",
                suggested_action="Use top-level 'key: value' sections.",
            )
        return dict(data)

    def _validate(self, data: dict[str, Any]) -> Config:
        try:
            return Config.model_validate(data)
        except ValidationError as e:
            raise ConfigError(
                message=f"Invalid configuration structure: {e}",
                source="ConfigLoader._validate",
                suggested_action=(
                    "Check section names, field types and bounds; unknown keys are rejected."
                ),
            ) from e


__all__ = ["ConfigLoader"]

# src/therasched/dataloader/config_loader.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from therasched.errors import ConfigError
from therasched.schemas.models import Config
from therasched.temporal.timezone import is_valid_timezone

logger = logging.getLogger(__name__)


class ConfigLoader:
    """
    @brief
    Reads and validates the scheduler's runtime configuration.

    @details
    YAML on disk -> mapping -> pydantic `Config`. Every failure mode
    (path, extension, syntax, shape, schema, unknown default timezone)
    surfaces as a structured `ConfigError`.
    """

    SUFFIXES = frozenset({".yaml", ".yml"})

    def load(self, path: Path) -> Config:
        """
        @brief
        Load and validate configuration from a YAML file.

        @params
            path : Path
                Filesystem path to config.yaml.

        @returns
            Validated Config with defaults applied.

        @raises
            ConfigError
                Missing or unreadable file, bad extension, malformed YAML,
                non-mapping root, schema violation or unknown timezone.
        """
        # (1) Read and parse
        data = self._read_yaml(path)

        # (2) Schema validation
        cfg = self._validate(data)

        # (3) Semantic checks pydantic cannot express
        self._check_timezone(cfg)
        logger.debug("Configuration loaded from %s", path)
        return cfg

    def _read_yaml(self, path: Path) -> dict[str, Any]:
        """
        @brief
        Read a YAML file into a plain dict with strict checks.

        @raises
            ConfigError on wrong path type, missing file, wrong extension,
            I/O error, syntax error, empty file or non-mapping root.
        """
        source = "ConfigLoader._read_yaml"

        # (1) Path type and existence
        if not isinstance(path, Path):
            raise ConfigError(
                message=f"Invalid path type: expected pathlib.Path, got {type(path).__name__}",
                source=source,
                suggested_action="Pass a pathlib.Path pointing to config.yaml.",
            )
        if not path.exists():
            raise ConfigError(
                message=f"Configuration file not found: {path}",
                source=source,
                suggested_action="Check the --config path.",
            )
        if path.suffix.lower() not in self.SUFFIXES:
            raise ConfigError(
                message=f"Invalid configuration file extension: {path.suffix}",
                source=source,
                suggested_action="Use a .yaml or .yml configuration file.",
            )

        # (2) Parse
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(
                message=f"YAML parsing failed: {e}",
                source=source,
                suggested_action="Fix YAML syntax and indentation.",
            ) from e
        except OSError as e:
            raise ConfigError(
                message=f"Unable to read configuration file: {e}",
                source=source,
                suggested_action="Check file permissions.",
            ) from e

        # (3) Shape
        if data is None:
            raise ConfigError(
                message="Configuration file is empty.",
                source=source,
                suggested_action="Populate config.yaml; an empty mapping '{}' selects all defaults.",
            )
        if not isinstance(data, Mapping):
            raise ConfigError(
                message="Configuration root must be a mapping (key: value pairs).",
                source=source,
                suggested_action="Use key: value pairs at the top level of config.yaml.",
            )
        return dict(data)

    def _validate(self, data: dict[str, Any]) -> Config:
        try:
            return Config(**data)
        except ValidationError as e:
            raise ConfigError(
                message=f"Invalid configuration structure: {e}",
                source="ConfigLoader._validate",
                suggested_action=(
                    "Check field names, types and bounds in config.yaml. "
                    "Unknown keys are rejected."
                ),
            ) from e

    def _check_timezone(self, cfg: Config) -> None:
        if not is_valid_timezone(cfg.default_timezone):
            raise ConfigError(
                message=f"Unknown default_timezone: {cfg.default_timezone!r}",
                source="ConfigLoader._check_timezone",
                suggested_action="Use an IANA timezone name such as 'America/New_York'.",
            )


__all__ = ["ConfigLoader"]

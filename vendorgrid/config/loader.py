"""Layered configuration: user file, project file, then environment."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .models import PortalConfig

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "VENDORGRID_ACCESS_TOKEN"
BASE_URL_ENV_VAR = "VENDORGRID_BASE_URL"


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Resolve vendorgrid settings from YAML files and the environment.

    The user-level file (``~/.vendorgrid/vendorgrid.yaml``) provides
    defaults, and a ``vendorgrid.yaml`` in the project directory overrides
    it key by key. Environment variables win over both.
    """

    CONFIG_FILENAME = "vendorgrid.yaml"
    USER_CONFIG_DIR = Path.home() / ".vendorgrid"

    def __init__(self, project_path: Path | None = None, environ: Mapping[str, str] | None = None):
        """Initialize the loader.

        Args:
            project_path: Directory searched for a project-level file.
                Defaults to the current directory.
            environ: Environment mapping (``os.environ`` by default).
        """
        self._project_path = project_path or Path.cwd()
        self._environ = os.environ if environ is None else environ

    @property
    def project_file(self) -> Path:
        return self._project_path / self.CONFIG_FILENAME

    @property
    def user_file(self) -> Path:
        return self.USER_CONFIG_DIR / self.CONFIG_FILENAME

    def sources(self) -> list[Path]:
        """Existing config files, lowest precedence first."""
        return [p for p in (self.user_file, self.project_file) if p.exists()]

    def load(self) -> PortalConfig:
        """Build the effective configuration.

        A file that cannot be parsed, or a merged result that fails
        validation, is reported and replaced by defaults.
        """
        data: dict[str, Any] = {}
        for path in self.sources():
            try:
                data = _merge(data, self._read(path))
                logger.info(f"Loaded config from: {path}")
            except (OSError, yaml.YAMLError, TypeError) as e:
                logger.warning(f"Ignoring unreadable config {path}: {e}")

        try:
            config = PortalConfig.model_validate(data)
        except ValueError as e:
            logger.warning(f"Invalid configuration, using defaults: {e}")
            config = PortalConfig()
        return self._apply_environment(config)

    def save(self, config: PortalConfig, user_level: bool = False) -> Path:
        """Write ``config`` as YAML. The access token is never persisted.

        Returns:
            Path of the written file.
        """
        path = self.user_file if user_level else self.project_file
        path.parent.mkdir(parents=True, exist_ok=True)
        data = config.model_dump(exclude_none=True, exclude={"store": {"access_token"}})
        path.write_text(
            yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
        logger.info(f"Saved config to: {path}")
        return path

    def _read(self, path: Path) -> dict[str, Any]:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise TypeError(f"expected a mapping, got {type(data).__name__}")
        return data

    def _apply_environment(self, config: PortalConfig) -> PortalConfig:
        token = self._environ.get(TOKEN_ENV_VAR)
        if token:
            config.store.access_token = token
        base_url = self._environ.get(BASE_URL_ENV_VAR)
        if base_url:
            config.store.base_url = base_url
        return config


def load_config(project_path: Path | str | None = None) -> PortalConfig:
    """Load the effective configuration for ``project_path``."""
    return ConfigLoader(Path(project_path) if project_path else None).load()

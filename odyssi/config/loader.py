"""Load config/system.yaml into a validated SystemConfig."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .models import SystemConfig

logger = logging.getLogger(__name__)

SYSTEM_CONFIG_FILE = Path("config") / "system.yaml"
ADMIN_EMAIL_ENV = "ODYSSI_ADMIN_EMAIL"


class ConfigLoadError(Exception):
    """The configuration file could not be read."""
    pass


class ConfigValidationError(ConfigLoadError):
    """The configuration file was read but holds invalid values."""

    def __init__(self, errors: list, file_path: Path):
        self.errors = errors
        self.file_path = file_path
        super().__init__(self._describe())

    def _describe(self) -> str:
        lines = [f"Invalid settings in {self.file_path}:"]
        for error in self.errors:
            where = ".".join(str(part) for part in error["loc"])
            lines.append(f"  {where}: {error['msg']}")
        return "\n".join(lines)


class ConfigLoader:
    """
    Read the system settings for one installation.

    ``base_dir`` is the installation root: the config file is looked up as
    ``<base_dir>/config/system.yaml`` and relative ``paths`` entries (data,
    backups, uploads) are anchored there, so the service finds its backups
    no matter which directory it was started from.
    """

    def __init__(self, base_dir: Path = Path(".")):
        self.base_dir = Path(base_dir)

    def read_settings(self, file_path: Path) -> Dict[str, Any]:
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Invalid YAML in {file_path}: {e}") from e
        except OSError as e:
            raise ConfigLoadError(f"Failed to read {file_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigLoadError(f"{file_path} must contain a mapping of settings")
        return data

    def load_system_config(self, file_path: Optional[Path] = None) -> SystemConfig:
        """
        Load, validate and anchor the system settings.

        A missing file means defaults. ``ODYSSI_ADMIN_EMAIL`` overrides
        ``admin_email`` when set.

        Raises:
            ConfigLoadError: unreadable file or malformed YAML
            ConfigValidationError: values fail validation
        """
        file_path = Path(file_path) if file_path else self.base_dir / SYSTEM_CONFIG_FILE

        data: Dict[str, Any] = {}
        if file_path.exists():
            data = self.read_settings(file_path)
            logger.info(f"Loaded system config from {file_path}")
        else:
            logger.info(f"System config not found at {file_path}, using defaults")

        admin_email = os.environ.get(ADMIN_EMAIL_ENV)
        if admin_email:
            data["admin_email"] = admin_email

        try:
            config = SystemConfig(**data)
        except ValidationError as e:
            raise ConfigValidationError(e.errors(), file_path) from e

        return self.anchor_paths(config)

    def anchor_paths(self, config: SystemConfig) -> SystemConfig:
        """Resolve relative data/backups/uploads paths against ``base_dir``."""
        anchored = {
            name: path if path.is_absolute() else self.base_dir / path
            for name, path in (
                ("data", config.paths.data),
                ("backups", config.paths.backups),
                ("uploads", config.paths.uploads),
            )
        }
        return config.model_copy(update={"paths": config.paths.model_copy(update=anchored)})

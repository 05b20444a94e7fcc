"""Pydantic models for configuration validation."""

from pathlib import Path
from typing import Optional, Literal

from pydantic import BaseModel, Field, field_validator


class PathsConfig(BaseModel):
    """File path configuration."""

    data: Path = Path("data")
    backups: Path = Path("backups")
    uploads: Path = Path("public/uploads")

    @field_validator('data', 'backups', 'uploads')
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure paths are cross-platform."""
        return Path(v)


class BackupConfig(BaseModel):
    """Backup and restore configuration."""

    default_split_size: Optional[Literal["250MB", "500MB"]] = Field(
        default=None,
        description="Split size used when a multipart backup is requested without one"
    )
    retention_days: Optional[int] = Field(
        default=None,
        gt=0,
        description="Delete scheduled backups older than this many days (None keeps them all)"
    )
    verify_archive: bool = Field(
        default=True,
        description="Re-read scheduled backups and check ZIP integrity after writing"
    )


class SystemConfig(BaseModel):
    """Complete system configuration."""

    debug: bool = False
    api_host: str = "127.0.0.1"
    api_port: int = Field(default=3000, gt=0, le=65535)
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy URL; defaults to data/odyssi.db"
    )
    admin_email: Optional[str] = Field(
        default=None,
        description="Email of the administrator account (no admin when unset)"
    )
    paths: PathsConfig = Field(default_factory=PathsConfig)
    backups: BackupConfig = Field(default_factory=BackupConfig)

    @field_validator('admin_email')
    @classmethod
    def normalize_admin_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def is_admin(self, email: Optional[str]) -> bool:
        """An account is admin when its email matches ``admin_email`` exactly."""
        if not email or not self.admin_email:
            return False
        return email == self.admin_email

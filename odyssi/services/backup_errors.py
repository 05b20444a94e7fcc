"""Exceptions and warning records shared by the backup and restore services."""

from dataclasses import dataclass


class BackupError(Exception):
    """Base class for backup subsystem failures."""
    pass


class NotFoundError(BackupError):
    """A requested journal or backup does not exist (for this owner)."""
    pass


class BackupNotFoundError(NotFoundError):
    """No archive file and no part files exist under the requested name."""
    pass


class CorruptArchiveError(BackupError):
    """Archive is unreadable, lacks data.json, or has an unsupported format version."""
    pass


class ExportFailedError(BackupError):
    """Export failed before anything was written to the backups directory."""
    pass


class RestoreFailedError(BackupError):
    """Full restore failed; the database transaction was rolled back."""
    pass


@dataclass
class MediaWriteWarning:
    """A single blob could not be written back during restore."""
    path: str
    error: str


@dataclass
class PartialRestoreWarning:
    """One archived journal could not be restored while the others were."""
    title: str
    error: str

"""Services package."""

from .backup_service import BackupService, BackupOptions, SplitPolicy, ExportResult, BackupInfo
from .restore_service import RestoreService, RestoreResult, Actor
from .media_cleanup import MediaCleanupService, MediaCleanupResult
from .blob_storage import BlobStore, LocalBlobStore

__all__ = [
    'BackupService',
    'BackupOptions',
    'SplitPolicy',
    'ExportResult',
    'BackupInfo',
    'RestoreService',
    'RestoreResult',
    'Actor',
    'MediaCleanupService',
    'MediaCleanupResult',
    'BlobStore',
    'LocalBlobStore',
]

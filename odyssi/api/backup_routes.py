"""API routes for backups, restores, scheduled backups and media cleanup."""

import logging
from datetime import datetime
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from odyssi.api.dependencies import get_actor, get_blob_store, get_system_config
from odyssi.config import SystemConfig
from odyssi.db.database import get_db
from odyssi.services.backup_document import BackupScope
from odyssi.services.backup_errors import (
    BackupError,
    CorruptArchiveError,
    NotFoundError,
)
from odyssi.services.backup_service import BackupOptions, BackupService, SplitPolicy
from odyssi.services.backup_task import run_scheduled_backup
from odyssi.services.blob_storage import BlobStore
from odyssi.services.media_cleanup import MediaCleanupService
from odyssi.services.restore_service import Actor, RestoreService

logger = logging.getLogger(__name__)

DEFAULT_SPLIT_SIZE = "250MB"

# Create router
router = APIRouter(prefix="/api", tags=["backups"])


# Request/Response models

class CreateBackupRequest(BaseModel):
    """Request to create a backup."""
    type: Literal["EVERYTHING", "JOURNAL"] = Field(..., description="Backup scope")
    journal_id: Optional[str] = Field(None, description="Journal to back up (JOURNAL only)")
    multipart: bool = Field(False, description="Split the archive into part files")
    split_size: Optional[Literal["250MB", "500MB"]] = Field(None, description="Part size when multipart")
    all_users: bool = Field(False, description="Back up every user (admin only, EVERYTHING only)")


class CreateBackupResponse(BaseModel):
    message: str
    filename: str
    filenames: List[str]
    parts: int
    blob_count: int


class BackupInfoResponse(BaseModel):
    name: str
    size: int
    created_at: datetime
    scope: str
    source: str
    part_count: int


class BackupListResponse(BaseModel):
    backups: List[BackupInfoResponse]


class RestoreRequest(BaseModel):
    """Request to restore a backup."""
    filename: str = Field(..., min_length=1, description="Backup filename or part name")


class RestoreResponse(BaseModel):
    message: str
    status: str
    scope: str
    restored_counts: Dict[str, int]
    failed_journals: List[str]
    media_restored: int
    media_failures: List[str]
    decode_errors: List[str]


class MediaSourceResponse(BaseModel):
    type: str
    id: str
    title: str


class MediaItemResponse(BaseModel):
    url: str
    status: str
    size: int
    sources: List[MediaSourceResponse]
    error: Optional[str] = None


class MediaCleanupResponse(BaseModel):
    message: str
    moved_count: int
    total_size: int
    total_size_formatted: str
    dry_run: bool
    media_items: List[MediaItemResponse]


def _http_error(e: BackupError) -> HTTPException:
    """Map backup subsystem errors to HTTP status codes."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, CorruptArchiveError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


# Endpoints

@router.post("/backups/create", response_model=CreateBackupResponse)
def create_backup(
    request: CreateBackupRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    config: SystemConfig = Depends(get_system_config),
):
    """Create a backup of the caller's data (or of every user, for admins)."""
    scope = BackupScope(request.type)

    owner_id = actor.user_id
    if request.all_users:
        if not actor.is_admin:
            raise HTTPException(status_code=403, detail="Unauthorized: Admin only")
        if scope == BackupScope.INSTALLATION:
            owner_id = None

    split_policy = SplitPolicy.none()
    if request.multipart:
        split_policy = SplitPolicy.chunked(
            request.split_size or config.backups.default_split_size or DEFAULT_SPLIT_SIZE
        )

    service = BackupService(db=db, blob_store=blob_store, backup_dir=config.paths.backups)
    try:
        result = service.export_backup(BackupOptions(
            scope=scope,
            owner_id=owner_id,
            journal_id=request.journal_id,
            split_policy=split_policy,
        ))
    except BackupError as e:
        logger.error(f"Backup creation error: {e}")
        raise _http_error(e)

    return CreateBackupResponse(
        message="Backup created successfully" + (" (Multipart)" if result.multipart else ""),
        filename=result.filename,
        filenames=result.filenames,
        parts=result.part_count,
        blob_count=result.blob_count,
    )


@router.get("/backups", response_model=BackupListResponse)
def list_backups(
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    config: SystemConfig = Depends(get_system_config),
):
    """List backups in the backup directory, newest first."""
    service = BackupService(db=db, blob_store=blob_store, backup_dir=config.paths.backups)
    backups = service.list_backups()
    return BackupListResponse(backups=[
        BackupInfoResponse(
            name=info.name,
            size=info.size,
            created_at=info.created_at,
            scope=info.scope.value,
            source=info.source.value,
            part_count=info.part_count,
        )
        for info in backups
    ])


@router.post("/backups/restore", response_model=RestoreResponse)
def restore_backup(
    request: RestoreRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    config: SystemConfig = Depends(get_system_config),
):
    """Restore a backup for the calling user."""
    service = RestoreService(db=db, blob_store=blob_store, backup_dir=config.paths.backups)
    try:
        result = service.restore_backup(request.filename, actor)
    except BackupError as e:
        logger.error(f"Restore error: {e}")
        raise _http_error(e)

    message = "Restore successful"
    if result.status == "partial":
        message = f"Restore partially successful ({len(result.failed_journals)} journal(s) failed)"

    return RestoreResponse(
        message=message,
        status=result.status,
        scope=result.scope.value,
        restored_counts=result.restored_counts,
        failed_journals=result.failed_journals,
        media_restored=result.media_restored,
        media_failures=[warning.path for warning in result.media_failures],
        decode_errors=result.decode_errors,
    )


@router.get("/cron/backup")
def cron_backup(
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    config: SystemConfig = Depends(get_system_config),
):
    """Scheduler tick: run an auto backup when one is due."""
    service = BackupService(db=db, blob_store=blob_store, backup_dir=config.paths.backups)
    try:
        result = run_scheduled_backup(
            db,
            service,
            retention_days=config.backups.retention_days,
            verify_archive=config.backups.verify_archive,
        )
    except BackupError as e:
        logger.error(f"Auto backup execution error: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Auto backup failed")

    if result["skipped"]:
        return {"message": result["reason"], "skipped": True}
    return {"message": "Auto backup completed", "skipped": False, "filename": result["filename"]}


@router.post("/media/cleanup", response_model=MediaCleanupResponse)
def cleanup_media(
    dry_run: bool = False,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Move unreferenced uploads to the trash folder (admin only)."""
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Unauthorized: Admin only")

    result = MediaCleanupService(db=db, blob_store=blob_store).scan_unreferenced_media(dry_run=dry_run)
    verb = "Would move" if dry_run else "Moved"
    return MediaCleanupResponse(
        message=f"Cleanup complete. {verb} {result.moved_count} files ({result.total_size_formatted}) to trash.",
        moved_count=result.moved_count,
        total_size=result.total_size,
        total_size_formatted=result.total_size_formatted,
        dry_run=result.dry_run,
        media_items=[
            MediaItemResponse(
                url=item.url,
                status=item.status,
                size=item.size,
                sources=[MediaSourceResponse(type=s.type, id=s.id, title=s.title) for s in item.sources],
                error=item.error,
            )
            for item in result.report
        ],
    )

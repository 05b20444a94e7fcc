"""Scheduled (auto) backups driven by the application config row."""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from odyssi.models.app_config import AppConfig
from odyssi.repositories import AppConfigRepository
from odyssi.services import chunked_writer
from odyssi.services.backup_document import BackupScope, BackupSource
from odyssi.services.backup_errors import BackupError
from odyssi.services.backup_service import (
    AUTO_PREFIX,
    BackupOptions,
    BackupService,
    parse_backup_filename,
)

logger = logging.getLogger(__name__)

INTERVAL_DAYS = {
    "1Day": 1,
    "1Week": 7,
    "1Month": 30,
    "6Month": 180,
    "1Year": 365,
}
DEFAULT_INTERVAL_DAYS = 7


@dataclass
class BackupDecision:
    due: bool
    reason: str
    scheduled_for: Optional[datetime] = None


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def interval_for(name: Optional[str]) -> timedelta:
    return timedelta(days=INTERVAL_DAYS.get(name, DEFAULT_INTERVAL_DAYS))


def evaluate_backup_due(app_config: AppConfig, now: datetime) -> BackupDecision:
    """Decide whether an auto backup should run now."""
    if not app_config.enable_auto_backup:
        return BackupDecision(due=False, reason="Auto backup disabled")

    last = app_config.last_auto_backup_at
    if last is None:
        return BackupDecision(due=True, reason="No previous auto backup", scheduled_for=_naive_utc(now))

    interval = interval_for(app_config.auto_backup_interval)
    scheduled_for = _naive_utc(last) + interval
    if _naive_utc(now) - _naive_utc(last) > interval:
        return BackupDecision(due=True, reason="Interval elapsed", scheduled_for=scheduled_for)
    return BackupDecision(due=False, reason="Backup not due yet", scheduled_for=scheduled_for)


def verify_backup(backup_dir: Path, name: str) -> None:
    """Re-read a written backup (joining parts) and check every ZIP member."""
    buffer = chunked_writer.read(backup_dir, name)
    try:
        with zipfile.ZipFile(io.BytesIO(buffer), "r") as zip_file:
            bad_member = zip_file.testzip()
    except zipfile.BadZipFile as e:
        raise BackupError(f"Archive integrity check failed for {name}: {e}") from e
    if bad_member:
        raise BackupError(f"Archive integrity failed at member: {bad_member}")


def run_scheduled_backup(
    db: Session,
    backup_service: BackupService,
    now: Optional[datetime] = None,
    retention_days: Optional[int] = None,
    verify_archive: bool = False,
) -> Dict[str, Any]:
    """
    One scheduler tick: export everything if the configured interval elapsed.

    Returns:
        ``{"skipped": True, "reason": ...}`` or ``{"skipped": False, "filename": ...}``

    Raises:
        BackupError: the export or the integrity check failed
    """
    now = now or datetime.now(timezone.utc)
    repo = AppConfigRepository(db)
    config = repo.load()

    decision = evaluate_backup_due(config, now)
    if not decision.due:
        logger.debug(f"[BACKUP TASK] Skipping auto backup: {decision.reason}")
        return {"skipped": True, "reason": decision.reason}

    logger.info("[BACKUP TASK] Starting auto backup")
    try:
        result = backup_service.export_backup(
            BackupOptions(scope=BackupScope.INSTALLATION, source=BackupSource.AUTO),
            now=now,
        )
        if verify_archive:
            verify_backup(backup_service.backup_dir, result.filename)
    except BackupError as e:
        logger.error(f"[BACKUP TASK] Auto backup failed: {e}", exc_info=True)
        raise

    config.last_auto_backup_at = _naive_utc(now)
    repo.save(config)

    pruned = 0
    if retention_days:
        pruned = prune_backups(backup_service.backup_dir, retention_days, now)

    logger.info(f"[BACKUP TASK] Auto backup completed: {result.filename}")
    return {"skipped": False, "filename": result.filename, "parts": result.part_count, "pruned": pruned}


def prune_backups(backup_dir: Path, retention_days: int, now: Optional[datetime] = None) -> int:
    """Delete auto backups (all parts) older than ``retention_days``. Manual backups are kept."""
    backup_dir = Path(backup_dir)
    if not backup_dir.exists():
        return 0

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    cutoff = now - timedelta(days=retention_days)

    removed = 0
    for archive in backup_dir.glob(f"{AUTO_PREFIX}-*"):
        parsed = parse_backup_filename(archive.name)
        if parsed is None or parsed.source != BackupSource.AUTO or parsed.created_at >= cutoff:
            continue
        try:
            archive.unlink()
            removed += 1
        except OSError as e:
            logger.warning(f"Could not prune backup archive {archive}: {e}")

    if removed:
        logger.info(f"[BACKUP TASK] Pruned {removed} old auto backup file(s)")
    return removed

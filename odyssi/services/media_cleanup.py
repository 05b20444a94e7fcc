"""Move uploaded media that nothing references into the uploads trash."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from odyssi.models.journal import Asset, BlogPost, Entry, Journal, User
from odyssi.services.blob_storage import BlobStorageError, BlobStore
from odyssi.services.locks import backup_lock
from odyssi.services.media_scanner import collect_references

logger = logging.getLogger(__name__)

STATUS_REFERENCED = "referenced"
STATUS_UNLINKED = "unlinked"
STATUS_ERROR = "error"


@dataclass
class MediaSource:
    """A record that points at a blob."""
    type: str
    id: str
    title: str


@dataclass
class MediaItem:
    url: str
    status: str
    size: int = 0
    sources: List[MediaSource] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class MediaCleanupResult:
    moved_count: int
    total_size: int
    report: List[MediaItem]
    dry_run: bool = False

    @property
    def total_size_formatted(self) -> str:
        return f"{self.total_size / 1024 / 1024:.2f} MB"


class MediaCleanupService:
    """Find stored blobs with no referencing record and move them to trash."""

    def __init__(self, db: Session, blob_store: BlobStore):
        self.db = db
        self.blob_store = blob_store

    def collect_sources(self) -> Dict[str, List[MediaSource]]:
        """Map every referenced local media path to the records referencing it."""
        sources: Dict[str, List[MediaSource]] = {}

        def add(record: dict, source: MediaSource) -> None:
            for path in collect_references(record):
                sources.setdefault(path, []).append(source)

        for entry in self.db.query(Entry).all():
            add({"content": entry.content}, MediaSource("Entry", entry.id, entry.title))

        for asset, entry_title in self.db.query(Asset, Entry.title).join(Entry, Asset.entry_id == Entry.id).all():
            add({"images": [{"url": asset.url}]}, MediaSource("Entry Asset", asset.entry_id, entry_title))

        for post in self.db.query(BlogPost).all():
            add({"content": post.content}, MediaSource("Blog Post", post.id, post.title))
            add({"featured_image": post.featured_image}, MediaSource("Featured Image", post.id, post.title))

        for user in self.db.query(User).all():
            add({"image": user.image}, MediaSource("User Profile", user.id, user.name or user.id))

        for journal in self.db.query(Journal).all():
            add({"cover_image": journal.cover_image}, MediaSource("Journal Cover", journal.id, journal.title))

        return sources

    def scan_unreferenced_media(self, dry_run: bool = False) -> MediaCleanupResult:
        """
        Move every unreferenced top-level upload into ``uploads/trash``.

        Args:
            dry_run: Only report, move nothing

        Returns:
            MediaCleanupResult with one report item per stored blob
        """
        with backup_lock():
            sources = self.collect_sources()
            logger.info(f"Media cleanup: {len(sources)} referenced media paths")

            report: List[MediaItem] = []
            moved_count = 0
            total_size = 0

            for blob in self.blob_store.list_blobs():
                referenced_by = sources.get(blob.path, [])
                if referenced_by:
                    report.append(MediaItem(blob.path, STATUS_REFERENCED, blob.size, referenced_by))
                    continue

                if dry_run:
                    report.append(MediaItem(blob.path, STATUS_UNLINKED, blob.size))
                    moved_count += 1
                    total_size += blob.size
                    continue

                try:
                    size = self.blob_store.move_to_trash(blob.path)
                except BlobStorageError as e:
                    logger.warning(f"Could not move {blob.path} to trash: {e}")
                    report.append(MediaItem(blob.path, STATUS_ERROR, blob.size, error=str(e)))
                    continue

                report.append(MediaItem(blob.path, STATUS_UNLINKED, size))
                moved_count += 1
                total_size += size

        result = MediaCleanupResult(moved_count, total_size, report, dry_run)
        logger.info(
            f"Media cleanup {'(dry run) ' if dry_run else ''}complete: "
            f"{moved_count} files ({result.total_size_formatted}) unreferenced"
        )
        return result

"""Backup service for exporting journals, posts and users to ZIP archives."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from odyssi.models.journal import Asset, BlogPost, Entry, Journal, Tag, User
from odyssi.repositories import JournalRepository, UserRepository
from odyssi.services import archive_codec, chunked_writer
from odyssi.services.backup_document import BackupDocument, BackupScope, BackupSource
from odyssi.services.backup_errors import ExportFailedError, NotFoundError
from odyssi.services.blob_storage import BlobStorageError, BlobStore
from odyssi.services.locks import backup_lock
from odyssi.services.media_scanner import collect_document_references

logger = logging.getLogger(__name__)

MANUAL_PREFIX = "backup"
AUTO_PREFIX = "auto-backup"
TITLE_MAX_LENGTH = 30

TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"

# [<prefix>-]<scope>-[<title>-]<timestamp>.zip[.partN]
BACKUP_FILENAME_RE = re.compile(
    r"^(?:(?P<prefix>auto-backup|backup)-)?"
    r"(?P<scope>EVERYTHING|JOURNAL)-"
    r"(?:(?P<title>.*?)-)?"
    r"(?P<timestamp>\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z)"
    r"\.zip(?:\.part(?P<part>\d+))?$"
)


# ============================================================================
# Record serialization
# ============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_tag(tag: Tag) -> Dict[str, Any]:
    return {"id": tag.id, "name": tag.name, "user_id": tag.user_id}


def serialize_asset(asset: Asset) -> Dict[str, Any]:
    return {"id": asset.id, "entry_id": asset.entry_id, "url": asset.url, "type": asset.type}


def serialize_entry(entry: Entry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "journal_id": entry.journal_id,
        "title": entry.title,
        "content": entry.content,
        "date": _iso(entry.date),
        "mood": entry.mood,
        "location_name": entry.location_name,
        "created_at": _iso(entry.created_at),
        "updated_at": _iso(entry.updated_at),
        "tags": [serialize_tag(tag) for tag in entry.tags],
        "images": [serialize_asset(asset) for asset in entry.images],
    }


def serialize_journal(journal: Journal) -> Dict[str, Any]:
    """Journal with its entries (and their tags and assets) nested."""
    return {
        "id": journal.id,
        "user_id": journal.user_id,
        "title": journal.title,
        "description": journal.description,
        "color": journal.color,
        "icon": journal.icon,
        "cover_image": journal.cover_image,
        "created_at": _iso(journal.created_at),
        "updated_at": _iso(journal.updated_at),
        "entries": [serialize_entry(entry) for entry in journal.entries],
    }


def serialize_blog_post(post: BlogPost) -> Dict[str, Any]:
    return {
        "id": post.id,
        "author_id": post.author_id,
        "title": post.title,
        "slug": post.slug,
        "content": post.content,
        "featured_image": post.featured_image,
        "published": post.published,
        "created_at": _iso(post.created_at),
        "updated_at": _iso(post.updated_at),
    }


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "password_hash": user.password_hash,
        "image": user.image,
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    }


# ============================================================================
# Filenames
# ============================================================================

def format_backup_timestamp(moment: datetime) -> str:
    """
    UTC ISO-8601 with milliseconds, made filename safe.

    ``2024-05-01T12:30:45.123Z`` -> ``2024-05-01T12-30-45-123Z``
    """
    return format_iso_timestamp(moment).replace(":", "-").replace(".", "-")


def format_iso_timestamp(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def safe_title(title: str) -> str:
    return re.sub(r"[^a-zA-Z0-9\-_]", "_", title or "")[:TITLE_MAX_LENGTH]


def build_backup_filename(
    scope: BackupScope,
    source: BackupSource,
    moment: datetime,
    journal_title: Optional[str] = None,
) -> str:
    """Build ``<prefix>-<scope>[-<title>]-<timestamp>.zip``."""
    prefix = AUTO_PREFIX if source == BackupSource.AUTO else MANUAL_PREFIX
    timestamp = format_backup_timestamp(moment)
    if scope == BackupScope.SINGLE_COLLECTION and journal_title is not None:
        return f"{prefix}-{scope.value}-{safe_title(journal_title)}-{timestamp}.zip"
    return f"{prefix}-{scope.value}-{timestamp}.zip"


@dataclass
class BackupFilename:
    """Parsed form of a backup (or backup part) filename."""
    name: str
    base_name: str
    scope: BackupScope
    source: BackupSource
    created_at: datetime
    title: Optional[str] = None
    part: Optional[int] = None


def parse_backup_filename(name: str) -> Optional[BackupFilename]:
    """Parse a filename written by the exporter; None for anything else."""
    match = BACKUP_FILENAME_RE.match(name)
    if not match:
        return None
    try:
        created_at = datetime.strptime(match.group("timestamp"), TIMESTAMP_FORMAT)
    except ValueError:
        return None
    part = match.group("part")
    return BackupFilename(
        name=name,
        base_name=chunked_writer.base_name_of(name),
        scope=BackupScope(match.group("scope")),
        source=BackupSource.AUTO if match.group("prefix") == AUTO_PREFIX else BackupSource.MANUAL,
        created_at=created_at.replace(tzinfo=timezone.utc),
        title=match.group("title"),
        part=int(part) if part else None,
    )


# ============================================================================
# Options and results
# ============================================================================

@dataclass(frozen=True)
class SplitPolicy:
    """Either one archive file, or parts of at most ``chunk_size`` bytes."""
    chunk_size: Optional[int] = None

    @classmethod
    def none(cls) -> "SplitPolicy":
        return cls()

    @classmethod
    def chunked(cls, split_size: str) -> "SplitPolicy":
        return cls(chunk_size=chunked_writer.chunk_size_for(split_size))

    @classmethod
    def of_bytes(cls, chunk_size: int) -> "SplitPolicy":
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        return cls(chunk_size=chunk_size)


@dataclass
class BackupOptions:
    scope: BackupScope
    owner_id: Optional[str] = None
    journal_id: Optional[str] = None
    split_policy: SplitPolicy = field(default_factory=SplitPolicy.none)
    source: BackupSource = BackupSource.MANUAL


@dataclass
class ExportResult:
    filename: str
    filenames: List[str]
    part_count: int
    blob_count: int

    @property
    def multipart(self) -> bool:
        return self.part_count > 1


@dataclass
class BackupInfo:
    name: str
    size: int
    created_at: datetime
    scope: BackupScope
    source: BackupSource
    part_count: int = 1


# ============================================================================
# Service
# ============================================================================

class BackupService:
    """Service for creating and listing backups."""

    def __init__(self, db: Session, blob_store: BlobStore, backup_dir: Path = Path("backups")):
        """
        Initialize backup service.

        Args:
            db: SQLAlchemy database session
            blob_store: Where referenced media is read from
            backup_dir: Directory to store backup files
        """
        self.db = db
        self.blob_store = blob_store
        self.backup_dir = Path(backup_dir)

        self.backup_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"BackupService initialized (backup_dir: {self.backup_dir})")

    def export_backup(self, options: BackupOptions, now: Optional[datetime] = None) -> ExportResult:
        """
        Create a backup archive.

        The whole archive is built in memory before anything is written.

        Args:
            options: Scope, owner filter, journal and split policy
            now: Timestamp for the document and filename (defaults to current UTC time)

        Returns:
            ExportResult naming the file(s) written

        Raises:
            NotFoundError: JOURNAL scope without owner or journal id, or the
                journal does not belong to the owner
            ExportFailedError: Reading the data store, encoding or writing failed
        """
        now = now or datetime.now(timezone.utc)

        if options.scope == BackupScope.SINGLE_COLLECTION:
            if not options.owner_id:
                raise NotFoundError("Owner id required for journal backup")
            if not options.journal_id:
                raise NotFoundError("Journal id required for journal backup")

        with backup_lock():
            logger.info(
                f"Starting {options.source.value} backup: scope={options.scope.value}, "
                f"owner={options.owner_id or 'all users'}"
            )

            try:
                document = self._build_document(options, now)
            except NotFoundError:
                raise
            except SQLAlchemyError as e:
                logger.error(f"Backup failed while reading data: {e}", exc_info=True)
                raise ExportFailedError(f"Failed to read data for backup: {e}") from e

            blobs = self._collect_blobs(document)

            try:
                buffer = archive_codec.encode(document, blobs)
            except (TypeError, ValueError) as e:
                logger.error(f"Backup failed while encoding archive: {e}", exc_info=True)
                raise ExportFailedError(f"Failed to encode backup archive: {e}") from e

            journal_title = None
            if options.scope == BackupScope.SINGLE_COLLECTION and len(document.journals) == 1:
                journal_title = document.journals[0]["title"]
            filename = build_backup_filename(options.scope, options.source, now, journal_title)

            try:
                filenames = chunked_writer.write(
                    buffer, self.backup_dir, filename, options.split_policy.chunk_size
                )
            except OSError as e:
                logger.error(f"Backup failed while writing {filename}: {e}", exc_info=True)
                raise ExportFailedError(f"Failed to write backup {filename}: {e}") from e

        logger.info(f"Backup created successfully: {filename}")
        logger.info(f"Backup size: {len(buffer) / (1024 * 1024):.2f} MB in {len(filenames)} file(s)")
        return ExportResult(
            filename=filename,
            filenames=filenames,
            part_count=len(filenames),
            blob_count=len(blobs),
        )

    def _build_document(self, options: BackupOptions, now: datetime) -> BackupDocument:
        if options.scope == BackupScope.SINGLE_COLLECTION:
            journal = JournalRepository(self.db).get_for_owner(options.journal_id, options.owner_id)
            if journal is None:
                raise NotFoundError(f"Journal not found: {options.journal_id}")
            return BackupDocument(
                scope=options.scope,
                created_at=format_iso_timestamp(now),
                journals=[serialize_journal(journal)],
                loose_records={"tags": [], "blog_posts": []},
                origin_user_id=options.owner_id,
                source=options.source,
            )

        journals = JournalRepository(self.db).list_by_owner(options.owner_id)

        tag_query = self.db.query(Tag)
        post_query = self.db.query(BlogPost)
        if options.owner_id is not None:
            tag_query = tag_query.filter(Tag.user_id == options.owner_id)
            post_query = post_query.filter(BlogPost.author_id == options.owner_id)

        users = None
        if options.owner_id is None:
            # Only an unfiltered backup carries accounts
            users = [serialize_user(user) for user in UserRepository(self.db).list_all()]

        document = BackupDocument(
            scope=options.scope,
            created_at=format_iso_timestamp(now),
            journals=[serialize_journal(journal) for journal in journals],
            loose_records={
                "tags": [serialize_tag(tag) for tag in tag_query.order_by(Tag.name).all()],
                "blog_posts": [
                    serialize_blog_post(post)
                    for post in post_query.order_by(BlogPost.created_at).all()
                ],
            },
            users=users,
            origin_user_id=options.owner_id,
            source=options.source,
        )
        logger.info(
            f"Exported {len(document.journals)} journals, "
            f"{len(document.loose_records['tags'])} tags, "
            f"{len(document.loose_records['blog_posts'])} blog posts"
            + (f", {len(users)} users" if users is not None else "")
        )
        return document

    def _collect_blobs(self, document: BackupDocument) -> Dict[str, bytes]:
        """Read every referenced blob. Unreadable blobs are logged and left out."""
        blobs: Dict[str, bytes] = {}
        for path in sorted(collect_document_references(document)):
            try:
                blobs[path] = self.blob_store.read_blob(path)
            except BlobStorageError as e:
                logger.warning(f"Media file not found, skipping: {path} ({e})")
        logger.info(f"Collected {len(blobs)} media files for backup")
        return blobs

    def list_backups(self) -> List[BackupInfo]:
        """
        List backups in the backup directory, newest first.

        Part files are grouped under their base name with sizes summed.
        Files that don't follow the backup naming scheme are ignored.
        """
        grouped: Dict[str, BackupInfo] = {}
        if not self.backup_dir.is_dir():
            return []

        for path in self.backup_dir.iterdir():
            if not path.is_file():
                continue
            parsed = parse_backup_filename(path.name)
            if parsed is None:
                continue

            size = path.stat().st_size
            info = grouped.get(parsed.base_name)
            if info is None:
                grouped[parsed.base_name] = BackupInfo(
                    name=parsed.base_name,
                    size=size,
                    created_at=parsed.created_at,
                    scope=parsed.scope,
                    source=parsed.source,
                    part_count=1,
                )
            else:
                info.size += size
                info.part_count += 1

        return sorted(grouped.values(), key=lambda info: (info.created_at, info.name), reverse=True)

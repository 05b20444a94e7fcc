"""Restore service for replaying backup archives into the database."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from odyssi.db.database import run_in_transaction
from odyssi.models.journal import Asset, BlogPost, Entry, Journal, Tag, User, generate_uuid, utcnow
from odyssi.repositories import JournalRepository, TagRepository, UserRepository
from odyssi.services import archive_codec, chunked_writer
from odyssi.services.backup_document import BackupDocument, BackupScope
from odyssi.services.backup_errors import (
    MediaWriteWarning,
    PartialRestoreWarning,
    RestoreFailedError,
)
from odyssi.services.blob_storage import BlobStorageError, BlobStore
from odyssi.services.content_format import normalize_content
from odyssi.services.locks import backup_lock
from odyssi.services.media_scanner import collect_document_references

logger = logging.getLogger(__name__)

DEFAULT_JOURNAL_TITLE = "Untitled"
DEFAULT_JOURNAL_COLOR = "#4F46E5"


@dataclass
class Actor:
    """The user a restore runs on behalf of."""
    user_id: str
    email: Optional[str] = None
    is_admin: bool = False


@dataclass
class RestoreResult:
    status: str
    scope: BackupScope
    restored_counts: Dict[str, int] = field(default_factory=dict)
    failed_journals: List[str] = field(default_factory=list)
    warnings: List[PartialRestoreWarning] = field(default_factory=list)
    media_restored: int = 0
    media_failures: List[MediaWriteWarning] = field(default_factory=list)
    decode_errors: List[str] = field(default_factory=list)


def format_restored_date(day: date) -> str:
    """``date(2024, 5, 1)`` -> ``5-1-2024``"""
    return f"{day.month}-{day.day}-{day.year}"


def resolve_restored_title(title: str, title_exists: Callable[[str], bool], today: date) -> str:
    """
    Pick a journal title that does not collide with an existing one.

    Order of attempts: the title itself, ``"<title> - Restored <M-D-YYYY>"``,
    then ``"<title>-2"``, ``"<title>-3"``, ... until one is free.
    """
    if not title_exists(title):
        return title

    candidate = f"{title} - Restored {format_restored_date(today)}"
    if not title_exists(candidate):
        return candidate

    counter = 2
    while title_exists(f"{title}-{counter}"):
        counter += 1
    return f"{title}-{counter}"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string -> naive UTC datetime. Unparseable values give None."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class RestoreService:
    """Service for restoring backups."""

    def __init__(self, db: Session, blob_store: BlobStore, backup_dir: Path = Path("backups")):
        """
        Initialize restore service.

        Args:
            db: Database session
            blob_store: Where restored media is written
            backup_dir: Directory holding backup files
        """
        self.db = db
        self.blob_store = blob_store
        self.backup_dir = Path(backup_dir)

    def restore_backup(self, name: str, actor: Actor, today: Optional[date] = None) -> RestoreResult:
        """
        Restore a backup archive.

        INSTALLATION archives wipe and replace in one transaction.
        SINGLE_COLLECTION archives are merged journal by journal, renaming
        on title collisions.

        Args:
            name: Backup filename (base name or any part name)
            actor: User performing the restore
            today: Date used in renamed journal titles (defaults to today)

        Returns:
            RestoreResult

        Raises:
            BackupNotFoundError: No such backup file or parts
            CorruptArchiveError: Archive unreadable or of an unsupported version
            RestoreFailedError: Wipe-and-replace failed and was rolled back
        """
        with backup_lock():
            logger.info(f"Starting restore of {name} for user {actor.user_id} (admin={actor.is_admin})")

            buffer = chunked_writer.read(self.backup_dir, name)
            decoded = archive_codec.decode(buffer)
            document = decoded.document

            media_restored, media_failures = self._extract_blobs(decoded.blobs)
            missing = collect_document_references(document) - set(decoded.blobs)
            for path in sorted(missing):
                logger.warning(f"Referenced media not present in backup: {path}")

            result = RestoreResult(
                status="success",
                scope=document.scope,
                media_restored=media_restored,
                media_failures=media_failures,
                decode_errors=list(decoded.errors),
            )

            if document.scope == BackupScope.INSTALLATION:
                result.restored_counts = self._wipe_and_replace(document, actor)
            else:
                counts, warnings = self._merge_with_rename(document, actor, today or date.today())
                result.restored_counts = counts
                result.warnings = warnings
                result.failed_journals = [warning.title for warning in warnings]
                if warnings:
                    result.status = "partial"

        logger.info(
            f"Restore of {name} finished: status={result.status}, counts={result.restored_counts}, "
            f"media={media_restored} restored/{len(media_failures)} failed"
        )
        return result

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def _extract_blobs(self, blobs: Dict[str, bytes]) -> Tuple[int, List[MediaWriteWarning]]:
        restored = 0
        failures: List[MediaWriteWarning] = []
        for path in sorted(blobs):
            try:
                self.blob_store.write_blob(path, blobs[path])
                restored += 1
            except BlobStorageError as e:
                logger.warning(f"Failed to restore media file {path}: {e}")
                failures.append(MediaWriteWarning(path=path, error=str(e)))
        logger.info(f"Restored {restored} media files")
        return restored, failures

    # ------------------------------------------------------------------
    # WIPE_AND_REPLACE
    # ------------------------------------------------------------------

    def _wipe_and_replace(self, document: BackupDocument, actor: Actor) -> Dict[str, int]:
        elevated = actor.is_admin and document.users is not None
        logger.info(f"Wipe-and-replace restore ({'preserving ownership' if elevated else 'rebinding to actor'})")

        def replace(db: Session) -> Dict[str, int]:
            counts = {"users": 0, "journals": 0, "entries": 0, "tags": 0, "blog_posts": 0, "assets": 0}

            owner_map: Dict[str, str] = {}
            if elevated:
                owner_map = self._upsert_users(document.users)
                counts["users"] = len(owner_map)
                wiped_owners = set(owner_map.values())
            else:
                wiped_owners = {actor.user_id}

            def owner_of(archived_owner_id: Optional[str]) -> str:
                if elevated:
                    return owner_map.get(archived_owner_id, actor.user_id)
                return actor.user_id

            self._delete_owned_data(wiped_owners)

            tag_ids: Set[str] = set()
            for record in document.loose_records.get("tags") or []:
                name = record.get("name")
                if not name:
                    continue
                tag = TagRepository(db).find_or_create(
                    name, owner_of(record.get("user_id")), tag_id=self._claim_id(Tag, record.get("id"))
                )
                tag_ids.add(tag.id)

            for record in document.journals:
                journal = self._create_journal(record, owner_of(record.get("user_id")), keep_ids=True)
                counts["journals"] += 1
                counts["entries"] += len(journal.entries)
                counts["assets"] += sum(len(entry.images) for entry in journal.entries)
                tag_ids.update(tag.id for entry in journal.entries for tag in entry.tags)

            for record in document.loose_records.get("blog_posts") or []:
                self._create_blog_post(record, owner_of(record.get("author_id")))
                counts["blog_posts"] += 1

            counts["tags"] = len(tag_ids)
            return counts

        try:
            return run_in_transaction(self.db, replace)
        except Exception as e:
            logger.error(f"Restore failed, all changes rolled back: {e}", exc_info=True)
            raise RestoreFailedError(f"Failed to restore backup: {e}") from e

    def _upsert_users(self, users: List[Dict[str, Any]]) -> Dict[str, str]:
        """Match archived users by email. Returns archived id -> effective id."""
        repo = UserRepository(self.db)
        owner_map: Dict[str, str] = {}

        for record in users:
            email = record.get("email")
            if not email:
                logger.warning(f"Skipping archived user without email: {record.get('id')}")
                continue

            user = repo.get_by_email(email)
            if user:
                user.name = record.get("name")
                user.image = record.get("image")
                if record.get("password_hash"):
                    user.password_hash = record["password_hash"]
            else:
                user = User(
                    id=self._claim_id(User, record.get("id")),
                    email=email,
                    name=record.get("name"),
                    password_hash=record.get("password_hash"),
                    image=record.get("image"),
                    created_at=parse_timestamp(record.get("created_at")) or utcnow(),
                )
                self.db.add(user)
            self.db.flush()

            if record.get("id"):
                owner_map[record["id"]] = user.id

        logger.info(f"Upserted {len(owner_map)} users")
        return owner_map

    def _delete_owned_data(self, owner_ids: Set[str]) -> None:
        """Delete journals (with entries and assets), tags and posts of the given owners."""
        ids = list(owner_ids)
        journals = self.db.query(Journal).filter(Journal.user_id.in_(ids)).all()
        for journal in journals:
            self.db.delete(journal)
        tags = self.db.query(Tag).filter(Tag.user_id.in_(ids)).all()
        for tag in tags:
            self.db.delete(tag)
        posts = self.db.query(BlogPost).filter(BlogPost.author_id.in_(ids)).all()
        for post in posts:
            self.db.delete(post)
        self.db.flush()

        logger.info(
            f"Deleted existing data for {len(ids)} user(s): {len(journals)} journals, "
            f"{len(tags)} tags, {len(posts)} blog posts"
        )

    def _claim_id(self, model, original_id: Optional[str]) -> str:
        """Keep ``original_id`` unless it is missing or already used by another row."""
        if original_id and self.db.get(model, original_id) is None:
            return original_id
        return generate_uuid()

    def _claim_slug(self, slug: Optional[str], fallback: str) -> str:
        base = slug or fallback

        def taken(candidate: str) -> bool:
            return self.db.query(BlogPost.id).filter(BlogPost.slug == candidate).first() is not None

        if not taken(base):
            return base
        counter = 2
        while taken(f"{base}-{counter}"):
            counter += 1
        return f"{base}-{counter}"

    # ------------------------------------------------------------------
    # Record creation
    # ------------------------------------------------------------------

    def _create_journal(
        self,
        record: Dict[str, Any],
        owner_id: str,
        keep_ids: bool,
        title: Optional[str] = None,
    ) -> Journal:
        """
        Create a journal with its entries, assets and tag links.

        With ``keep_ids`` the archived identifiers are reused where free;
        otherwise every row gets a fresh UUID. The rows are flushed, not committed.
        """
        def new_id(model, original_id):
            return self._claim_id(model, original_id) if keep_ids else generate_uuid()

        journal = Journal(
            id=new_id(Journal, record.get("id")),
            user_id=owner_id,
            title=title or record.get("title") or DEFAULT_JOURNAL_TITLE,
            description=record.get("description"),
            color=record.get("color") or DEFAULT_JOURNAL_COLOR,
            icon=record.get("icon"),
            cover_image=record.get("cover_image"),
            created_at=parse_timestamp(record.get("created_at")) or utcnow(),
        )
        self.db.add(journal)

        tags = TagRepository(self.db)
        for entry_record in record.get("entries") or []:
            entry = Entry(
                id=new_id(Entry, entry_record.get("id")),
                title=entry_record.get("title") or "",
                content=normalize_content(entry_record.get("content")),
                date=parse_timestamp(entry_record.get("date")) or utcnow(),
                mood=entry_record.get("mood"),
                location_name=entry_record.get("location_name"),
                created_at=parse_timestamp(entry_record.get("created_at")) or utcnow(),
            )
            journal.entries.append(entry)
            for asset_record in entry_record.get("images") or []:
                if not asset_record.get("url"):
                    continue
                entry.images.append(Asset(
                    id=new_id(Asset, asset_record.get("id")),
                    url=asset_record["url"],
                    type=asset_record.get("type") or "image",
                ))
            for tag_record in entry_record.get("tags") or []:
                name = tag_record.get("name")
                if not name:
                    continue
                tag = tags.find_or_create(
                    name, owner_id, tag_id=new_id(Tag, tag_record.get("id"))
                )
                if tag not in entry.tags:
                    entry.tags.append(tag)

        self.db.flush()
        return journal

    def _create_blog_post(self, record: Dict[str, Any], author_id: str) -> BlogPost:
        post_id = self._claim_id(BlogPost, record.get("id"))
        post = BlogPost(
            id=post_id,
            author_id=author_id,
            title=record.get("title") or DEFAULT_JOURNAL_TITLE,
            slug=self._claim_slug(record.get("slug"), fallback=post_id),
            content=normalize_content(record.get("content")),
            featured_image=record.get("featured_image"),
            published=bool(record.get("published")),
            created_at=parse_timestamp(record.get("created_at")) or utcnow(),
        )
        self.db.add(post)
        self.db.flush()
        return post

    # ------------------------------------------------------------------
    # MERGE_WITH_RENAME
    # ------------------------------------------------------------------

    def _merge_with_rename(
        self, document: BackupDocument, actor: Actor, today: date
    ) -> Tuple[Dict[str, int], List[PartialRestoreWarning]]:
        counts = {"journals": 0, "entries": 0, "assets": 0}
        warnings: List[PartialRestoreWarning] = []
        journals = JournalRepository(self.db)

        for record in document.journals:
            original_title = record.get("title") or DEFAULT_JOURNAL_TITLE
            try:
                title = resolve_restored_title(
                    original_title,
                    lambda candidate: journals.title_exists(candidate, actor.user_id),
                    today,
                )
                journal = self._create_journal(record, actor.user_id, keep_ids=False, title=title)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.warning(f"Failed to restore journal '{original_title}': {e}", exc_info=True)
                warnings.append(PartialRestoreWarning(title=original_title, error=str(e)))
                continue

            if title != original_title:
                logger.info(f"Journal '{original_title}' restored as '{title}'")
            counts["journals"] += 1
            counts["entries"] += len(journal.entries)
            counts["assets"] += sum(len(entry.images) for entry in journal.entries)

        return counts, warnings

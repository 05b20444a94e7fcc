"""
Tests for RestoreService: merge-with-rename, wipe-and-replace, ownership and errors.

Usage:
    pytest testing/test_restore_service.py
"""

import io
import json
import zipfile
from datetime import date, datetime, timezone

import pytest

from odyssi.models import BlogPost, Entry, Journal, Tag, User
from odyssi.services import archive_codec
from odyssi.services.backup_document import BackupDocument, BackupScope
from odyssi.services.backup_errors import (
    BackupNotFoundError,
    CorruptArchiveError,
    RestoreFailedError,
)
from odyssi.services.backup_service import BackupOptions, BackupService
from odyssi.services.restore_service import (
    Actor,
    RestoreService,
    format_restored_date,
    resolve_restored_title,
)

TODAY = date(2024, 5, 1)
NOW = datetime(2024, 5, 1, 8, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def exporter(db, blob_store, backup_dir):
    return BackupService(db=db, blob_store=blob_store, backup_dir=backup_dir)


@pytest.fixture
def restorer(db, blob_store, backup_dir):
    return RestoreService(db=db, blob_store=blob_store, backup_dir=backup_dir)


def actor_for(user, is_admin=False):
    return Actor(user_id=user.id, email=user.email, is_admin=is_admin)


def export_journal(exporter, user, journal):
    return exporter.export_backup(
        BackupOptions(scope=BackupScope.SINGLE_COLLECTION, owner_id=user.id, journal_id=journal.id),
        now=NOW,
    ).filename


def titles_of(db, user):
    return sorted(j.title for j in db.query(Journal).filter(Journal.user_id == user.id))


# ----------------------------------------------------------------------------
# MERGE_WITH_RENAME
# ----------------------------------------------------------------------------

def test_single_journal_restore_into_fresh_account(db, factory, make_doc, blob_store, exporter, restorer, uploads_dir):
    blob_store.write_blob("/uploads/a.png", b"image a")
    blob_store.write_blob("/uploads/b.png", b"image b")
    owner = factory.user(email="owner@example.com")
    journal = factory.journal(owner, title="J", entries=[
        {"content": make_doc("/uploads/a.png"), "tags": ["travel"]},
        {"content": make_doc("/uploads/b.png")},
        {"content": make_doc("https://example.com/remote.png")},
    ])
    original_entry_ids = {e.id for e in journal.entries}
    filename = export_journal(exporter, owner, journal)

    (uploads_dir / "a.png").unlink()
    reader = factory.user(email="reader@example.com")
    result = restorer.restore_backup(filename, actor_for(reader), today=TODAY)

    assert result.status == "success"
    assert result.scope == BackupScope.SINGLE_COLLECTION
    assert result.media_restored == 2
    assert (uploads_dir / "a.png").read_bytes() == b"image a"

    restored = db.query(Journal).filter(Journal.user_id == reader.id).one()
    assert restored.title == "J"
    assert restored.id != journal.id
    assert len(restored.entries) == 3
    assert not original_entry_ids & {e.id for e in restored.entries}

    tag = db.query(Tag).filter(Tag.user_id == reader.id).one()
    assert tag.name == "travel"


def test_collision_chain(db, factory, exporter, restorer):
    user = factory.user()
    trips = factory.journal(user, title="Trips", entries=[{}])
    filename = export_journal(exporter, user, trips)
    factory.journal(user, title=f"Trips - Restored {format_restored_date(TODAY)}")
    factory.journal(user, title="Trips-2")

    restorer.restore_backup(filename, actor_for(user), today=TODAY)

    assert titles_of(db, user) == ["Trips", "Trips - Restored 5-1-2024", "Trips-2", "Trips-3"]


def test_first_collision_uses_restored_date(db, factory, exporter, restorer):
    user = factory.user()
    trips = factory.journal(user, title="Trips")
    filename = export_journal(exporter, user, trips)

    restorer.restore_backup(filename, actor_for(user), today=TODAY)

    assert titles_of(db, user) == ["Trips", "Trips - Restored 5-1-2024"]


def test_resolve_restored_title():
    taken = {"A", "A - Restored 12-25-2023", "A-2", "A-3"}
    assert resolve_restored_title("B", taken.__contains__, date(2023, 12, 25)) == "B"
    assert resolve_restored_title("A", taken.__contains__, date(2023, 12, 25)) == "A-4"
    assert resolve_restored_title("A", taken.__contains__, date(2024, 1, 2)) == "A - Restored 1-2-2024"


def _write_archive(backup_dir, name, document, blobs=None):
    (backup_dir / name).write_bytes(archive_codec.encode(document, blobs or {}))
    return name


def test_partial_merge(db, factory, backup_dir, restorer, monkeypatch):
    user = factory.user()
    document = BackupDocument(
        scope=BackupScope.SINGLE_COLLECTION,
        created_at="2024-05-01T08:00:00.000Z",
        journals=[
            {"id": "j-good", "title": "Good", "entries": [{"title": "ok", "content": None}]},
            {"id": "j-bad", "title": "Bad", "entries": []},
            {"id": "j-also", "title": "Also good", "entries": []},
        ],
        loose_records={"tags": [], "blog_posts": []},
    )
    name = _write_archive(backup_dir, "backup-JOURNAL-2024-05-01T08-00-00-000Z.zip", document)

    original = RestoreService._create_journal

    def fail_on_bad(self, record, *args, **kwargs):
        if record["title"] == "Bad":
            raise ValueError("bad journal")
        return original(self, record, *args, **kwargs)

    monkeypatch.setattr(RestoreService, "_create_journal", fail_on_bad)

    result = restorer.restore_backup(name, actor_for(user), today=TODAY)

    assert result.status == "partial"
    assert result.failed_journals == ["Bad"]
    assert result.warnings[0].error == "bad journal"
    assert result.restored_counts["journals"] == 2
    assert titles_of(db, user) == ["Also good", "Good"]


def test_legacy_content_is_normalised(db, factory, backup_dir, restorer):
    user = factory.user()
    document = BackupDocument(
        scope=BackupScope.SINGLE_COLLECTION,
        created_at="2024-05-01T08:00:00.000Z",
        journals=[{"title": "Old", "entries": [
            {"title": "md", "content": {"type": "markdown", "text": "Hi\n\n![p](/uploads/p.png)"}, "date": "2020-02-03T10:00:00.000Z"},
            {"title": "plain", "content": "Just text"},
        ]}],
    )
    name = _write_archive(backup_dir, "backup-JOURNAL-Old-2024-05-01T08-00-00-000Z.zip", document)

    restorer.restore_backup(name, actor_for(user), today=TODAY)

    entries = {e.title: e for e in db.query(Entry).all()}
    assert entries["md"].content["type"] == "doc"
    assert {"type": "image", "attrs": {"src": "/uploads/p.png", "alt": "p"}} in entries["md"].content["content"]
    assert entries["md"].date == datetime(2020, 2, 3, 10, 0)
    assert entries["plain"].content["content"][0]["content"][0]["text"] == "Just text"


# ----------------------------------------------------------------------------
# WIPE_AND_REPLACE
# ----------------------------------------------------------------------------

def test_non_admin_restore_rebinds_ownership(db, factory, exporter, restorer):
    alice = factory.user(email="alice@example.com")
    bob = factory.user(email="bob@example.com")
    factory.journal(alice, title="Alice diary", entries=[{"tags": ["travel"]}])
    factory.journal(bob, title="Bob diary", entries=[{"tags": ["travel"]}])
    factory.post(alice, slug="hello")
    filename = exporter.export_backup(BackupOptions(scope=BackupScope.INSTALLATION), now=NOW).filename

    carol = factory.user(email="carol@example.com")
    factory.journal(carol, title="Carol old")

    result = restorer.restore_backup(filename, actor_for(carol))

    assert result.status == "success"
    assert titles_of(db, carol) == ["Alice diary", "Bob diary"]
    assert titles_of(db, alice) == ["Alice diary"]
    assert titles_of(db, bob) == ["Bob diary"]
    assert [t.name for t in db.query(Tag).filter(Tag.user_id == carol.id)] == ["travel"]

    carol_post = db.query(BlogPost).filter(BlogPost.author_id == carol.id).one()
    assert carol_post.slug == "hello-2"
    assert db.query(User).count() == 3


def test_wipe_is_atomic(db, factory, exporter, restorer, monkeypatch):
    source = factory.user(email="source@example.com")
    for i in range(5):
        factory.journal(source, title=f"Archived {i}", entries=[{}])
    filename = exporter.export_backup(
        BackupOptions(scope=BackupScope.INSTALLATION, owner_id=source.id), now=NOW
    ).filename

    target = factory.user(email="target@example.com")
    old_ids = {factory.journal(target, title="Old 1", entries=[{"tags": ["keep"]}]).id,
               factory.journal(target, title="Old 2").id}
    journal_count = db.query(Journal).count()

    original = RestoreService._create_journal
    calls = []

    def fail_third(self, *args, **kwargs):
        calls.append(1)
        if len(calls) == 3:
            raise RuntimeError("disk on fire")
        return original(self, *args, **kwargs)

    monkeypatch.setattr(RestoreService, "_create_journal", fail_third)

    with pytest.raises(RestoreFailedError):
        restorer.restore_backup(filename, actor_for(target))

    assert {j.id for j in db.query(Journal).filter(Journal.user_id == target.id)} == old_ids
    assert titles_of(db, target) == ["Old 1", "Old 2"]
    assert db.query(Journal).count() == journal_count
    assert [t.name for t in db.query(Tag).filter(Tag.user_id == target.id)] == ["keep"]


def test_admin_restore_preserves_ownership(db, factory, exporter, restorer):
    admin = factory.user(email="admin@example.com", name="Admin")
    bob = factory.user(email="bob@example.com", name="Bob", image="/uploads/bob.png")
    admin_journal = factory.journal(admin, title="Admin notes", entries=[{}])
    bob_journal = factory.journal(bob, title="Bob diary", entries=[{"tags": ["x"]}, {}])
    bob_id, bob_journal_id, admin_journal_id = bob.id, bob_journal.id, admin_journal.id
    filename = exporter.export_backup(BackupOptions(scope=BackupScope.INSTALLATION), now=NOW).filename

    admin_journal.title = "Renamed since backup"
    db.delete(bob)
    db.commit()

    result = restorer.restore_backup(filename, actor_for(admin, is_admin=True))

    restored_bob = db.get(User, bob_id)
    assert restored_bob is not None
    assert restored_bob.email == "bob@example.com"
    assert restored_bob.image == "/uploads/bob.png"
    assert db.get(Journal, bob_journal_id).user_id == bob_id
    assert len(db.get(Journal, bob_journal_id).entries) == 2
    assert db.get(Journal, admin_journal_id).title == "Admin notes"
    assert result.restored_counts["users"] == 2
    assert result.restored_counts["journals"] == 2


def test_admin_without_users_in_archive_rebinds(db, factory, exporter, restorer):
    admin = factory.user(email="admin@example.com")
    other = factory.user(email="other@example.com")
    factory.journal(other, title="Other diary")
    filename = exporter.export_backup(
        BackupOptions(scope=BackupScope.INSTALLATION, owner_id=other.id), now=NOW
    ).filename

    restorer.restore_backup(filename, actor_for(admin, is_admin=True))

    assert titles_of(db, admin) == ["Other diary"]


# ----------------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------------

def test_missing_backup(factory, restorer):
    user = factory.user()
    with pytest.raises(BackupNotFoundError):
        restorer.restore_backup("backup-EVERYTHING-2024-01-01T00-00-00-000Z.zip", actor_for(user))


def test_corrupt_backup(factory, restorer, backup_dir):
    user = factory.user()
    (backup_dir / "broken.zip").write_bytes(b"garbage")
    with pytest.raises(CorruptArchiveError):
        restorer.restore_backup("broken.zip", actor_for(user))


def test_unsupported_version(db, factory, restorer, backup_dir):
    user = factory.user()
    factory.journal(user, title="Untouched")
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zipf:
        zipf.writestr("data.json", json.dumps({"format_version": 2, "scope": "EVERYTHING", "journals": []}))
    (backup_dir / "future.zip").write_bytes(buffer.getvalue())

    with pytest.raises(CorruptArchiveError):
        restorer.restore_backup("future.zip", actor_for(user))
    assert titles_of(db, user) == ["Untouched"]


def test_malformed_journal_list_is_corrupt(db, factory, restorer, backup_dir):
    user = factory.user()
    factory.journal(user, title="Untouched")
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zipf:
        zipf.writestr("data.json", json.dumps({"format_version": 1, "scope": "EVERYTHING", "journals": [None]}))
    (backup_dir / "malformed.zip").write_bytes(buffer.getvalue())

    with pytest.raises(CorruptArchiveError):
        restorer.restore_backup("malformed.zip", actor_for(user))
    assert titles_of(db, user) == ["Untouched"]


def test_restore_from_parts(db, factory, exporter, restorer, backup_dir):
    from odyssi.services.backup_service import SplitPolicy

    user = factory.user()
    journal = factory.journal(user, title="Long", entries=[{}])
    result = exporter.export_backup(
        BackupOptions(
            scope=BackupScope.SINGLE_COLLECTION, owner_id=user.id, journal_id=journal.id,
            split_policy=SplitPolicy.of_bytes(64),
        ),
        now=NOW,
    )
    assert result.part_count > 1

    restorer.restore_backup(result.filenames[1], actor_for(user), today=TODAY)

    assert titles_of(db, user) == ["Long", "Long - Restored 5-1-2024"]

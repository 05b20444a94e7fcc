"""
Tests for the backup HTTP API.

Runs the FastAPI app against an in-memory database without the startup
lifespan; configuration and blob storage are injected through app_state.

Usage:
    pytest testing/test_backup_routes.py
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from odyssi.api.app import app
from odyssi.api.dependencies import app_state
from odyssi.config import SystemConfig
from odyssi.config.models import PathsConfig
from odyssi.db.database import get_db
from odyssi.models import Journal

ADMIN_EMAIL = "admin@example.com"


@pytest.fixture
def client(engine, blob_store, backup_dir, uploads_dir):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app_state["system_config"] = SystemConfig(
        admin_email=ADMIN_EMAIL,
        paths=PathsConfig(backups=backup_dir, uploads=uploads_dir),
    )
    app_state["blob_store"] = blob_store

    yield TestClient(app)

    app.dependency_overrides.clear()
    app_state["system_config"] = None
    app_state["blob_store"] = None


@pytest.fixture
def writer(factory):
    return factory.user(email="writer@example.com")


@pytest.fixture
def admin(factory):
    return factory.user(email=ADMIN_EMAIL, name="Admin")


def as_user(user):
    return {"X-User-Id": user.id}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requires_user_header(client):
    assert client.get("/api/backups").status_code == 401
    assert client.get("/api/backups", headers={"X-User-Id": "nobody"}).status_code == 401


def test_create_and_list(client, factory, writer):
    factory.journal(writer, title="Notes", entries=[{}])

    response = client.post("/api/backups/create", json={"type": "EVERYTHING"}, headers=as_user(writer))

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Backup created successfully"
    assert body["parts"] == 1
    assert body["filename"].startswith("backup-EVERYTHING-")

    listed = client.get("/api/backups", headers=as_user(writer)).json()["backups"]
    assert [b["name"] for b in listed] == [body["filename"]]
    assert listed[0]["source"] == "MANUAL"


def test_journal_backup_needs_existing_journal(client, writer):
    response = client.post(
        "/api/backups/create",
        json={"type": "JOURNAL", "journal_id": "missing"},
        headers=as_user(writer),
    )

    assert response.status_code == 404


def test_all_users_backup_is_admin_only(client, writer, admin):
    denied = client.post("/api/backups/create", json={"type": "EVERYTHING", "all_users": True}, headers=as_user(writer))
    allowed = client.post("/api/backups/create", json={"type": "EVERYTHING", "all_users": True}, headers=as_user(admin))

    assert denied.status_code == 403
    assert allowed.status_code == 200


def test_invalid_split_size_is_rejected(client, writer):
    response = client.post(
        "/api/backups/create",
        json={"type": "EVERYTHING", "multipart": True, "split_size": "1GB"},
        headers=as_user(writer),
    )

    assert response.status_code == 422


def test_restore_error_mapping(client, writer, backup_dir):
    (backup_dir / "backup-EVERYTHING-2024-05-01T00-00-00-000Z.zip").write_bytes(b"garbage")

    missing = client.post("/api/backups/restore", json={"filename": "nope.zip"}, headers=as_user(writer))
    corrupt = client.post(
        "/api/backups/restore",
        json={"filename": "backup-EVERYTHING-2024-05-01T00-00-00-000Z.zip"},
        headers=as_user(writer),
    )
    traversal = client.post("/api/backups/restore", json={"filename": "../secret.zip"}, headers=as_user(writer))

    assert missing.status_code == 404
    assert corrupt.status_code == 400
    assert traversal.status_code == 404


def test_restore_journal_backup_into_another_account(client, factory, db, writer):
    journal = factory.journal(writer, title="Trips", entries=[{"title": "Day one"}])
    reader = factory.user(email="reader@example.com")
    created = client.post(
        "/api/backups/create",
        json={"type": "JOURNAL", "journal_id": journal.id},
        headers=as_user(writer),
    ).json()

    response = client.post("/api/backups/restore", json={"filename": created["filename"]}, headers=as_user(reader))

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Restore successful"
    assert body["scope"] == "JOURNAL"
    assert body["restored_counts"]["journals"] == 1
    db.expire_all()
    assert [j.title for j in db.query(Journal).filter_by(user_id=reader.id)] == ["Trips"]


def test_media_cleanup_is_admin_only(client, writer, admin, uploads_dir):
    (uploads_dir / "orphan.png").write_bytes(b"x" * 2048)

    denied = client.post("/api/media/cleanup", headers=as_user(writer))
    preview = client.post("/api/media/cleanup?dry_run=true", headers=as_user(admin))

    assert denied.status_code == 403
    body = preview.json()
    assert body["dry_run"] is True
    assert body["moved_count"] == 1
    assert body["message"].startswith("Cleanup complete. Would move 1 files")
    assert (uploads_dir / "orphan.png").exists()


def test_cron_skips_when_disabled(client):
    response = client.get("/api/cron/backup")

    assert response.status_code == 200
    assert response.json() == {"message": "Auto backup disabled", "skipped": True}

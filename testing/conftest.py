"""Shared fixtures: in-memory database, temporary uploads and backups directories."""

from datetime import datetime

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from odyssi.db.database import Base, create_db_engine
from odyssi.models import Asset, BlogPost, Entry, Journal, Tag, User
from odyssi.services.blob_storage import LocalBlobStore


@pytest.fixture
def engine():
    # StaticPool keeps one connection, so every thread sees the same in-memory database
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def uploads_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def blob_store(uploads_dir):
    return LocalBlobStore(uploads_dir)


@pytest.fixture
def backup_dir(tmp_path):
    path = tmp_path / "backups"
    path.mkdir()
    return path


class Factory:
    """Small helpers for building rows in tests."""

    def __init__(self, db):
        self.db = db

    def user(self, email="writer@example.com", name="Writer", **kwargs) -> User:
        user = User(email=email, name=name, **kwargs)
        self.db.add(user)
        self.db.commit()
        return user

    def journal(self, user, title="Journal", entries=(), **kwargs) -> Journal:
        """``entries`` is a list of dicts passed to ``entry``."""
        journal = Journal(user_id=user.id, title=title, **kwargs)
        self.db.add(journal)
        self.db.flush()
        for index, fields in enumerate(entries):
            fields = dict(fields)
            tag_names = fields.pop("tags", [])
            image_urls = fields.pop("images", [])
            entry = Entry(
                journal_id=journal.id,
                title=fields.pop("title", f"Entry {index + 1}"),
                date=fields.pop("date", datetime(2024, 1, index + 1, 9, 0)),
                **fields,
            )
            for name in tag_names:
                tag = self.db.query(Tag).filter_by(name=name, user_id=user.id).first()
                if tag is None:
                    tag = Tag(name=name, user_id=user.id)
                    self.db.add(tag)
                    self.db.flush()
                entry.tags.append(tag)
            for url in image_urls:
                entry.images.append(Asset(url=url))
            journal.entries.append(entry)
        self.db.commit()
        return journal

    def post(self, author, title="Post", slug="post", **kwargs) -> BlogPost:
        post = BlogPost(author_id=author.id, title=title, slug=slug, **kwargs)
        self.db.add(post)
        self.db.commit()
        return post


@pytest.fixture
def factory(db):
    return Factory(db)


def image_doc(*sources):
    """A content tree with one image node per source."""
    return {
        "type": "doc",
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": "Some words"}]},
            *({"type": "image", "attrs": {"src": src}} for src in sources),
        ],
    }


@pytest.fixture
def make_doc():
    return image_doc

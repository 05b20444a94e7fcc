"""Database models for users, journals, entries, tags and blog posts."""

from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, JSON, String, Table, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from odyssi.db.database import Base


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how SQLite stores DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


entry_tags = Table(
    "entry_tags",
    Base.metadata,
    Column("entry_id", String(36), ForeignKey("entries.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    """
    An account on the installation.

    The administrator is not a column: it is whichever user's email matches
    the configured admin email.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(200), nullable=True)
    password_hash = Column(String(255), nullable=True)
    image = Column(String(500), nullable=True)  # avatar, usually /uploads/<file>
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    journals = relationship("Journal", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"


class Journal(Base):
    """
    A journal groups diary entries for one user.

    Each journal:
    - Belongs to exactly one user
    - Owns its entries (deleting the journal deletes them)
    - Has a title that the restore path keeps unique per user
    """
    __tablename__ = "journals"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(20), nullable=False, default="#4F46E5")
    icon = Column(String(50), nullable=True)
    cover_image = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="journals")
    entries = relationship(
        "Entry",
        back_populates="journal",
        cascade="all, delete-orphan",
        order_by="Entry.date",
    )

    def __repr__(self):
        return f"<Journal(id={self.id}, user={self.user_id}, title={self.title})>"


class Entry(Base):
    """A dated diary entry. ``content`` is a rich-text JSON tree."""
    __tablename__ = "entries"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    journal_id = Column(String(36), ForeignKey("journals.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(300), nullable=False, default="")
    content = Column(JSON, nullable=True)
    date = Column(DateTime, nullable=False, default=utcnow)
    mood = Column(String(50), nullable=True)
    location_name = Column(String(300), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    journal = relationship("Journal", back_populates="entries")
    tags = relationship("Tag", secondary=entry_tags, back_populates="entries")
    images = relationship("Asset", back_populates="entry", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Entry(id={self.id}, journal={self.journal_id}, title={self.title})>"


class Tag(Base):
    """A per-user tag; ``(name, user_id)`` is unique."""
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("name", "user_id", name="uq_tags_name_user"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    entries = relationship("Entry", secondary=entry_tags, back_populates="tags")

    def __repr__(self):
        return f"<Tag(id={self.id}, name={self.name}, user={self.user_id})>"


class Asset(Base):
    """Media row attached to an entry (legacy uploads recorded outside the content tree)."""
    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = Column(String(36), ForeignKey("entries.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String(500), nullable=False)
    type = Column(String(20), nullable=False, default="image")

    entry = relationship("Entry", back_populates="images")


class BlogPost(Base):
    """A blog post. Posts are not part of any journal."""
    __tablename__ = "blog_posts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    slug = Column(String(300), nullable=False, unique=True)
    content = Column(JSON, nullable=True)
    featured_image = Column(String(500), nullable=True)
    published = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<BlogPost(id={self.id}, slug={self.slug})>"

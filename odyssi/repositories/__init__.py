"""Repository pattern for database operations."""

from .journal_repository import JournalRepository
from .tag_repository import TagRepository
from .user_repository import UserRepository
from .app_config_repository import AppConfigRepository

__all__ = [
    "JournalRepository",
    "TagRepository",
    "UserRepository",
    "AppConfigRepository",
]

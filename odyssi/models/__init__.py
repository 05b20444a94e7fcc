"""Models package for Odyssi."""

from .journal import User, Journal, Entry, Tag, Asset, BlogPost, entry_tags
from .app_config import AppConfig, APP_CONFIG_ID, AUTO_BACKUP_INTERVALS

__all__ = [
    "User",
    "Journal",
    "Entry",
    "Tag",
    "Asset",
    "BlogPost",
    "entry_tags",
    "AppConfig",
    "APP_CONFIG_ID",
    "AUTO_BACKUP_INTERVALS",
]

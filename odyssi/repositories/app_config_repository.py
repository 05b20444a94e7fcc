"""Repository for the application settings row."""

import logging

from sqlalchemy.orm import Session

from odyssi.models.app_config import AppConfig, APP_CONFIG_ID

logger = logging.getLogger(__name__)


class AppConfigRepository:
    """
    Load and save the single AppConfig row.

    The row is addressed by its well-known primary key, never by
    "first row found", so there is nothing to deduplicate.
    """

    def __init__(self, db: Session):
        self.db = db

    def load(self) -> AppConfig:
        """Return the settings row, creating it with defaults on first use."""
        config = self.db.get(AppConfig, APP_CONFIG_ID)
        if config is None:
            config = AppConfig(id=APP_CONFIG_ID)
            self.db.add(config)
            self.db.commit()
            self.db.refresh(config)
            logger.info("Created default application config row")
        return config

    def save(self, config: AppConfig) -> AppConfig:
        config.id = APP_CONFIG_ID
        merged = self.db.merge(config)
        self.db.commit()
        self.db.refresh(merged)
        return merged

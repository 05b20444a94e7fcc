"""Database model for the installation-wide application settings row."""

from sqlalchemy import Boolean, Column, DateTime, String

from odyssi.db.database import Base
from odyssi.models.journal import utcnow

# The settings live in exactly one row with this primary key.
APP_CONFIG_ID = "app-config"

AUTO_BACKUP_INTERVALS = ("1Day", "1Week", "1Month", "6Month", "1Year")


class AppConfig(Base):
    """Application settings read by the scheduler and the settings page."""

    __tablename__ = "app_config"

    id = Column(String(20), primary_key=True, default=APP_CONFIG_ID)
    enable_auto_backup = Column(Boolean, nullable=False, default=False)
    auto_backup_interval = Column(String(10), nullable=False, default="1Week")
    last_auto_backup_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return (
            f"<AppConfig(auto_backup={self.enable_auto_backup}, "
            f"interval={self.auto_backup_interval}, last={self.last_auto_backup_at})>"
        )

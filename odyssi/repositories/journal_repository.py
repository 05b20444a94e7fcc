"""Repository for journal operations."""

from typing import List, Optional

from sqlalchemy.orm import Session

from odyssi.models.journal import Journal


class JournalRepository:
    """Handle database operations for journals."""

    def __init__(self, db: Session):
        self.db = db

    def get_for_owner(self, journal_id: str, user_id: str) -> Optional[Journal]:
        """
        Get a journal by ID, only if it belongs to the given user.

        Args:
            journal_id: Journal ID
            user_id: Owner ID

        Returns:
            Journal or None if not found under that owner
        """
        return (
            self.db.query(Journal)
            .filter(Journal.id == journal_id, Journal.user_id == user_id)
            .first()
        )

    def list_by_owner(self, user_id: Optional[str] = None) -> List[Journal]:
        """List journals for one user, or for everyone when ``user_id`` is None."""
        query = self.db.query(Journal)
        if user_id is not None:
            query = query.filter(Journal.user_id == user_id)
        return query.order_by(Journal.created_at).all()

    def title_exists(self, title: str, user_id: str) -> bool:
        """Check whether the user already has a journal with exactly this title."""
        return (
            self.db.query(Journal.id)
            .filter(Journal.title == title, Journal.user_id == user_id)
            .first()
            is not None
        )

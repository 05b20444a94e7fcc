"""Repository for user operations."""

from typing import List, Optional

from sqlalchemy.orm import Session

from odyssi.models.journal import User


class UserRepository:
    """Handle database operations for users."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def list_all(self) -> List[User]:
        return self.db.query(User).order_by(User.created_at).all()

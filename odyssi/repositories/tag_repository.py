"""Repository for tag operations."""

from typing import Optional

from sqlalchemy.orm import Session

from odyssi.models.journal import Tag, generate_uuid


class TagRepository:
    """Handle database operations for tags."""

    def __init__(self, db: Session):
        self.db = db

    def find(self, name: str, user_id: str) -> Optional[Tag]:
        return self.db.query(Tag).filter(Tag.name == name, Tag.user_id == user_id).first()

    def find_or_create(self, name: str, user_id: str, tag_id: Optional[str] = None) -> Tag:
        """
        Return the user's tag with this name, creating it when missing.

        Tags are unique per ``(name, user_id)``, so linking the same name twice
        never produces a second row. The new row is flushed but not committed.

        Args:
            name: Tag name
            user_id: Owner ID
            tag_id: Identifier to use if the tag has to be created

        Returns:
            Existing or newly created tag
        """
        tag = self.find(name, user_id)
        if tag:
            return tag

        tag = Tag(id=tag_id or generate_uuid(), name=name, user_id=user_id)
        self.db.add(tag)
        self.db.flush()
        return tag

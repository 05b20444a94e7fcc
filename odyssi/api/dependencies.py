"""Shared application state and FastAPI dependencies."""

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from odyssi.config import SystemConfig
from odyssi.db.database import get_db
from odyssi.repositories import UserRepository
from odyssi.services.blob_storage import BlobStore, LocalBlobStore
from odyssi.services.restore_service import Actor

logger = logging.getLogger(__name__)

# Global state, filled in by the app lifespan
app_state: Dict[str, Any] = {
    "system_config": None,
    "blob_store": None,
}


def get_system_config() -> SystemConfig:
    config = app_state.get("system_config")
    if config is None:
        config = SystemConfig()
        app_state["system_config"] = config
    return config


def get_blob_store(config: SystemConfig = Depends(get_system_config)) -> BlobStore:
    store = app_state.get("blob_store")
    if store is None:
        store = LocalBlobStore(config.paths.uploads)
        app_state["blob_store"] = store
    return store


def get_actor(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    config: SystemConfig = Depends(get_system_config),
) -> Actor:
    """Resolve the calling user from the ``X-User-Id`` header."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user = UserRepository(db).get_by_id(x_user_id)
    if not user:
        logger.warning(f"Request with unknown user id: {x_user_id}")
        raise HTTPException(status_code=401, detail="Unauthorized")

    return Actor(user_id=user.id, email=user.email, is_admin=config.is_admin(user.email))

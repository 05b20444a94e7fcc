"""FastAPI application for Odyssi."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from odyssi.api.backup_routes import router as backup_router
from odyssi.api.dependencies import app_state
from odyssi.config import ConfigLoader
from odyssi.db.database import (
    DATABASE_URL,
    SessionLocal,
    create_db_engine,
    engine as default_engine,
    ensure_database_dir,
    init_db,
)
from odyssi.db.migrations import DEFAULT_MIGRATIONS_DIR, ensure_database_ready
from odyssi.services.blob_storage import LocalBlobStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting Odyssi...")

    # Logging is already configured by main.py - no need to reconfigure here
    loader = ConfigLoader()
    system_config = loader.load_system_config()

    database_url = system_config.database_url or DATABASE_URL
    engine = create_db_engine(database_url) if system_config.database_url else default_engine
    SessionLocal.configure(bind=engine)
    ensure_database_dir(engine)
    if DEFAULT_MIGRATIONS_DIR.exists():
        ensure_database_ready(database_url, engine=engine)
    init_db(engine)
    logger.info("✓ Database initialized")

    system_config.paths.backups.mkdir(parents=True, exist_ok=True)

    app_state["system_config"] = system_config
    app_state["blob_store"] = LocalBlobStore(system_config.paths.uploads)

    if not system_config.admin_email:
        logger.warning("No admin_email configured - admin-only operations are unavailable")

    logger.info(f"✓ Backups directory: {system_config.paths.backups}")
    logger.info(f"✓ Uploads directory: {system_config.paths.uploads}")

    yield

    logger.info("Shutting down Odyssi...")
    app_state["blob_store"] = None


# Create FastAPI app
app = FastAPI(
    title="Odyssi",
    description="Self-hosted journaling and blogging: backup and restore",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(backup_router)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="ok")

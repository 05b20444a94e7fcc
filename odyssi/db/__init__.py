"""Database package for Odyssi."""

from .database import get_db, init_db, run_in_transaction

__all__ = ["get_db", "init_db", "run_in_transaction"]

"""Process-wide named locks."""

from threading import Lock, RLock
from typing import Dict

# Held by export and restore; a second caller waits for the first to finish.
BACKUP_LOCK_NAME = "backup-subsystem"

_locks: Dict[str, RLock] = {}
_locks_guard = Lock()


def named_lock(name: str) -> RLock:
    """Return the lock registered under ``name``, creating it on first use."""
    with _locks_guard:
        lock = _locks.get(name)
        if lock is None:
            lock = RLock()
            _locks[name] = lock
        return lock


def backup_lock() -> RLock:
    return named_lock(BACKUP_LOCK_NAME)

"""The structured-data document stored as data.json inside every backup archive."""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from odyssi.services.backup_errors import CorruptArchiveError

# Current backup format version - increment when format changes
BACKUP_FORMAT_VERSION = 1
SUPPORTED_BACKUP_VERSIONS = [1]


class BackupScope(str, enum.Enum):
    """What an archive covers. Values appear in filenames and in data.json."""
    INSTALLATION = "EVERYTHING"
    SINGLE_COLLECTION = "JOURNAL"


class BackupSource(str, enum.Enum):
    """Who triggered the export."""
    MANUAL = "MANUAL"
    AUTO = "AUTO"


def _check_records(records: Any, label: str) -> None:
    """A record list must be a JSON array of objects."""
    if not isinstance(records, list):
        raise CorruptArchiveError(f"data.json has malformed {label}: expected a list")
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise CorruptArchiveError(f"data.json has malformed {label}: item {index} is not an object")


@dataclass
class BackupDocument:
    """
    Snapshot of journals, loose records and (optionally) users.

    Built once at export time and never mutated after encoding; parsed once
    at restore time and discarded afterwards.
    """
    scope: BackupScope
    created_at: str
    journals: List[Dict[str, Any]] = field(default_factory=list)
    loose_records: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    users: Optional[List[Dict[str, Any]]] = None
    origin_user_id: Optional[str] = None
    source: BackupSource = BackupSource.MANUAL
    format_version: int = BACKUP_FORMAT_VERSION

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "format_version": self.format_version,
            "created_at": self.created_at,
            "scope": self.scope.value,
            "source": self.source.value,
            "origin_user_id": self.origin_user_id,
            "journals": self.journals,
            "loose_records": self.loose_records,
        }
        if self.users is not None:
            data["users"] = self.users
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "BackupDocument":
        """
        Parse a decoded data.json object.

        Raises:
            CorruptArchiveError: wrong shape, unknown scope, or a format
                version this code does not understand
        """
        if not isinstance(data, dict):
            raise CorruptArchiveError("data.json is not a JSON object")

        version = data.get("format_version")
        if version is None:
            raise CorruptArchiveError("data.json is missing format_version")
        # bool is an int subclass; true and 1.0 must not pass as version 1
        if type(version) is not int or version not in SUPPORTED_BACKUP_VERSIONS:
            raise CorruptArchiveError(
                f"Unsupported backup version {version}. "
                f"Supported versions: {SUPPORTED_BACKUP_VERSIONS}"
            )

        try:
            scope = BackupScope(data.get("scope"))
        except ValueError:
            raise CorruptArchiveError(f"Unknown backup scope: {data.get('scope')!r}")

        try:
            source = BackupSource(data.get("source") or BackupSource.MANUAL.value)
        except ValueError:
            source = BackupSource.MANUAL

        journals = data.get("journals") or []
        loose_records = data.get("loose_records") or {}
        users = data.get("users")
        if not isinstance(journals, list) or not isinstance(loose_records, dict):
            raise CorruptArchiveError("data.json has malformed journals or loose_records")
        if users is not None and not isinstance(users, list):
            raise CorruptArchiveError("data.json has malformed users")

        _check_records(journals, "journals")
        for journal in journals:
            entries = journal.get("entries") or []
            _check_records(entries, "journal entries")
            for entry in entries:
                _check_records(entry.get("tags") or [], "entry tags")
                _check_records(entry.get("images") or [], "entry images")
        for kind, records in loose_records.items():
            _check_records(records, kind)
        if users is not None:
            _check_records(users, "users")

        return cls(
            scope=scope,
            created_at=data.get("created_at") or "",
            journals=journals,
            loose_records=loose_records,
            users=users,
            origin_user_id=data.get("origin_user_id"),
            source=source,
            format_version=version,
        )

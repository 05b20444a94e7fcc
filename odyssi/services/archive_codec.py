"""
Archive codec: one data.json document plus uploaded media in a ZIP.

Layout::

    data.json              serialized BackupDocument (UTF-8 JSON)
    uploads/<basename>     raw bytes of each referenced blob

Blob paths are flattened to their basename. Two different source paths with
the same basename collide; the later one wins and a warning is logged.
"""

import io
import json
import logging
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, List, Mapping

from odyssi.services.backup_document import BackupDocument
from odyssi.services.backup_errors import CorruptArchiveError

logger = logging.getLogger(__name__)

DATA_ENTRY_NAME = "data.json"
ARCHIVE_BLOB_PREFIX = "uploads/"
LOCAL_BLOB_PREFIX = "/uploads/"


@dataclass
class DecodedArchive:
    document: BackupDocument
    blobs: Dict[str, bytes] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


def archive_blob_name(path: str) -> str:
    """``/uploads/2024/a.png`` -> ``uploads/a.png``"""
    return f"{ARCHIVE_BLOB_PREFIX}{PurePosixPath(path).name}"


def encode(document: BackupDocument, blobs: Mapping[str, bytes]) -> bytes:
    """
    Build a ZIP archive from a document and a mapping of blob path -> bytes.

    Entries are written in a fixed order (data.json, then blobs sorted by
    archive name) so the entry list is stable for the same input.
    """
    flattened: Dict[str, bytes] = {}
    origins: Dict[str, str] = {}
    for path in sorted(blobs):
        name = archive_blob_name(path)
        if name == ARCHIVE_BLOB_PREFIX:
            logger.warning(f"Skipping blob with empty filename: {path!r}")
            continue
        if name in flattened:
            logger.warning(
                f"Blob filename collision: {path} overwrites {origins[name]} as {name}"
            )
        flattened[name] = blobs[path]
        origins[name] = path

    payload = json.dumps(document.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zipf:
        zipf.writestr(DATA_ENTRY_NAME, payload)
        for name in sorted(flattened):
            zipf.writestr(name, flattened[name])

    logger.debug(f"Encoded archive: {len(flattened)} blobs, {buffer.tell()} bytes")
    return buffer.getvalue()


def decode(buffer: bytes) -> DecodedArchive:
    """
    Read an archive produced by ``encode``.

    Blob keys in the result are local reference paths (``/uploads/<name>``).

    Raises:
        CorruptArchiveError: not a ZIP, data.json missing or unparseable, or
            an unsupported format version. Individual blob read failures are
            returned in ``errors`` instead.
    """
    try:
        zipf = zipfile.ZipFile(io.BytesIO(buffer), "r")
    except zipfile.BadZipFile as e:
        raise CorruptArchiveError(f"Invalid backup file (not a valid ZIP): {e}") from e

    with zipf:
        try:
            raw = zipf.read(DATA_ENTRY_NAME)
        except KeyError:
            raise CorruptArchiveError(f"Invalid backup: missing {DATA_ENTRY_NAME}")
        except (zipfile.BadZipFile, zlib.error, OSError, RuntimeError) as e:
            raise CorruptArchiveError(f"Could not read {DATA_ENTRY_NAME}: {e}") from e

        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise CorruptArchiveError(f"Invalid {DATA_ENTRY_NAME}: {e}") from e

        document = BackupDocument.from_dict(data)
        result = DecodedArchive(document=document)

        for info in zipf.infolist():
            if info.is_dir() or not info.filename.startswith(ARCHIVE_BLOB_PREFIX):
                continue
            name = PurePosixPath(info.filename).name
            if not name:
                continue
            try:
                result.blobs[f"{LOCAL_BLOB_PREFIX}{name}"] = zipf.read(info)
            except (zipfile.BadZipFile, zlib.error, OSError, RuntimeError) as e:
                logger.warning(f"Could not read {info.filename} from archive: {e}")
                result.errors.append(f"{info.filename}: {e}")

    logger.debug(
        f"Decoded archive: scope={document.scope.value}, "
        f"{len(result.blobs)} blobs, {len(result.errors)} unreadable"
    )
    return result

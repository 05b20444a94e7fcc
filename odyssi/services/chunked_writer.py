"""Split large archives into numbered part files and join them back."""

import logging
import math
import re
from pathlib import Path
from typing import List, Optional

from odyssi.services.backup_errors import BackupNotFoundError

logger = logging.getLogger(__name__)

MiB = 1024 * 1024
SPLIT_SIZES = {
    "250MB": 250 * MiB,
    "500MB": 500 * MiB,
}

PART_SUFFIX_RE = re.compile(r"\.part(\d+)$")


def chunk_size_for(split_size: str) -> int:
    """Byte size of a named split tier."""
    try:
        return SPLIT_SIZES[split_size]
    except KeyError:
        raise ValueError(f"Unknown split size {split_size!r}, expected one of {list(SPLIT_SIZES)}")


def base_name_of(name: str) -> str:
    """``x.zip.part3`` -> ``x.zip``; other names are returned unchanged."""
    return PART_SUFFIX_RE.sub("", name)


def part_number(name: str) -> Optional[int]:
    match = PART_SUFFIX_RE.search(name)
    return int(match.group(1)) if match else None


def _check_name(name: str) -> None:
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        raise BackupNotFoundError(f"Invalid backup name: {name!r}")


def write(buffer: bytes, destination_dir: Path, base_name: str, chunk_size: Optional[int] = None) -> List[str]:
    """
    Write ``buffer`` as one file, or as ``<base_name>.partN`` files.

    A buffer that fits in one chunk (or no ``chunk_size``) is written as a
    single ``base_name`` file. Otherwise every part is exactly ``chunk_size``
    bytes except the last. If any write fails, every file started so far is
    removed before the error propagates.

    Returns:
        Filenames written, in order
    """
    _check_name(base_name)
    if chunk_size is not None and chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    destination_dir = Path(destination_dir)
    destination_dir.mkdir(parents=True, exist_ok=True)

    if chunk_size is None or len(buffer) <= chunk_size:
        pieces = [(base_name, buffer)]
    else:
        pieces = [
            (f"{base_name}.part{index + 1}", buffer[index * chunk_size:(index + 1) * chunk_size])
            for index in range(math.ceil(len(buffer) / chunk_size))
        ]

    # A name is recorded before its write so a half-written file is removed too
    written: List[str] = []
    try:
        for name, data in pieces:
            written.append(name)
            (destination_dir / name).write_bytes(data)
    except OSError:
        for name in written:
            (destination_dir / name).unlink(missing_ok=True)
        raise

    if len(written) == 1:
        logger.debug(f"Wrote {base_name} ({len(buffer)} bytes)")
    else:
        logger.info(f"Wrote {base_name} as {len(written)} parts of up to {chunk_size} bytes")
    return written


def find_parts(destination_dir: Path, base_name: str) -> List[Path]:
    """Part files of ``base_name``, ordered by part number."""
    destination_dir = Path(destination_dir)
    if not destination_dir.is_dir():
        return []
    prefix = f"{base_name}.part"
    parts = [
        path for path in destination_dir.iterdir()
        if path.is_file() and path.name.startswith(prefix) and part_number(path.name) is not None
        and path.name[len(prefix):].isdigit()
    ]
    return sorted(parts, key=lambda path: part_number(path.name))


def read(destination_dir: Path, name: str) -> bytes:
    """
    Read a backup by name, joining part files when there is no single file.

    ``name`` may be the base name or the name of any one of its parts.

    Raises:
        BackupNotFoundError: neither the file nor any part exists
    """
    _check_name(name)
    destination_dir = Path(destination_dir)
    base_name = base_name_of(name)

    single = destination_dir / base_name
    if single.is_file():
        return single.read_bytes()

    parts = find_parts(destination_dir, base_name)
    if not parts:
        raise BackupNotFoundError(f"Backup file not found: {name}")

    logger.info(f"Reassembling {base_name} from {len(parts)} parts")
    return b"".join(part.read_bytes() for part in parts)

"""
Small helpers shared by the indexer, the store and the server.

Timestamps are Unix milliseconds everywhere; document paths are POSIX paths
relative to the watch root.
"""

import time
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from mdreader.errors import InvalidInputError


def now_ms() -> int:
    """Current wall-clock time in Unix milliseconds."""
    return int(time.time() * 1000)


def stat_times_ms(stat_result) -> tuple:
    """
    Return (created_at, modified_at) in milliseconds for an os.stat() result.

    st_birthtime only exists on some platforms; elsewhere the inode change
    time is the closest approximation.
    """
    modified = int(stat_result.st_mtime_ns // 1_000_000)
    birth = getattr(stat_result, "st_birthtime", None)
    if birth is not None:
        created = int(birth * 1000)
    else:
        created = int(stat_result.st_ctime_ns // 1_000_000)
    return min(created, modified), modified


def to_relative_path(root: Union[str, Path], file_path: Union[str, Path]) -> Optional[str]:
    """
    Convert an absolute path to a document key relative to root.

    Returns None when file_path is not inside root.
    """
    root_path = Path(root).resolve()
    candidate = Path(file_path)
    if not candidate.is_absolute():
        candidate = root_path / candidate
    try:
        rel = candidate.resolve().relative_to(root_path)
    except ValueError:
        return None
    return rel.as_posix()


def resolve_document_path(root: Union[str, Path], document_path: str) -> Path:
    """
    Map a document key back to a filesystem path under root.

    Raises InvalidInputError for empty keys, absolute keys or keys that
    escape the root through "..".
    """
    if not document_path or not document_path.strip():
        raise InvalidInputError("Document path is required")
    posix = PurePosixPath(document_path.replace("\\", "/"))
    if posix.is_absolute() or ".." in posix.parts or not posix.parts:
        raise InvalidInputError(f"Invalid document path: {document_path}")
    root_path = Path(root).resolve()
    full = (root_path / Path(*posix.parts)).resolve()
    try:
        full.relative_to(root_path)
    except ValueError:
        raise InvalidInputError(f"Invalid document path: {document_path}")
    return full

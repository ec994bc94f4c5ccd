"""
I/O Utilities

Working directories, cleanup, file listing and JSON handling.
"""

import json
import secrets
import shutil
import time
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Iterable, Optional

from ..errors import StorageFailure
from ..logging import get_logger

logger = get_logger(__name__)


def ensure_dir(path: Path) -> Path:
    """
    Create path (and parents) if missing; return it.

    Raises:
        StorageFailure: path cannot be created or is not a directory
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageFailure(f"Cannot create directory {path}: {e}", path=path) from e
    if not path.is_dir():
        raise StorageFailure(f"{path} exists but is not a directory", path=path)
    return path


def create_tmp_dir(base_dir: Path, prefix: str) -> Path:
    """
    Create a unique working directory: <base_dir>/<prefix><millis>-<random>.

    Args:
        base_dir: Parent directory (created if missing)
        prefix: Directory name prefix

    Returns:
        Path to the new directory
    """
    name = f"{prefix}{int(time.time() * 1000)}-{secrets.token_hex(3)}"
    tmp_dir = ensure_dir(Path(base_dir)) / name
    try:
        tmp_dir.mkdir()
    except OSError as e:
        raise StorageFailure(f"Cannot create working directory {tmp_dir}: {e}", path=tmp_dir) from e

    logger.debug(f"Created working directory: {tmp_dir}")
    return tmp_dir


def cleanup_dir(path: Path, patterns: Optional[Iterable[str]] = None) -> int:
    """
    Best-effort cleanup. Never raises; failures are logged.

    Args:
        path: Directory to clean
        patterns: Glob patterns of files to delete. If None, the whole
            directory is removed.

    Returns:
        Number of files removed (-1 when the whole tree was removed)
    """
    path = Path(path)
    if not path.exists():
        return 0

    if patterns is None:
        try:
            shutil.rmtree(path)
            logger.debug(f"Removed working directory: {path}")
            return -1
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")
            return 0

    patterns = list(patterns)
    removed = 0
    try:
        candidates = [p for p in path.iterdir() if p.is_file()]
    except OSError as e:
        logger.warning(f"Failed to list {path} for cleanup: {e}")
        return 0

    for file_path in candidates:
        if not any(fnmatch(file_path.name, pattern) for pattern in patterns):
            continue
        try:
            file_path.unlink()
            removed += 1
        except OSError as e:
            logger.warning(f"Failed to delete {file_path}: {e}")

    logger.debug(f"Cleaned up {removed} files in {path}")
    return removed


def list_files(location: Path, prefix: str = "", suffix: str = "") -> list[Path]:
    """List regular files in a directory by name prefix/suffix, sorted by name."""
    location = Path(location)
    return sorted(
        p for p in location.iterdir()
        if p.is_file() and p.name.startswith(prefix) and p.name.endswith(suffix)
    )


def save_json(data: Any, path: Path, indent: int = 2) -> None:
    """Write data as UTF-8 JSON, creating parent directories. Non-JSON values go through str()."""
    path = Path(path)
    ensure_dir(path.parent)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False, default=str)

    logger.debug(f"Saved JSON to {path}")


def load_json(path: Path) -> Any:
    """
    Read a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
    """
    with open(Path(path), encoding="utf-8") as f:
        return json.load(f)

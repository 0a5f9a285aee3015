"""Filesystem helpers for safe path operations and atomic writes."""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Union

from ..core.errors import AtomicWriteError, FilesystemError
from ..core.log import get_logger

logger = get_logger(__name__)


def atomic_write(path: Path, data: Union[str, bytes], mode: str = "w") -> None:
    """Atomically write data to a file."""
    path = Path(path)
    is_binary = isinstance(data, bytes) or "b" in mode
    write_mode = "wb" if is_binary else "w"
    tmp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode=write_mode,
            dir=path.parent,
            delete=False,
            prefix=f".{path.name}.tmp",
        ) as tmp_file:
            tmp_path = Path(tmp_file.name)
            tmp_file.write(data)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        tmp_path.replace(path)
        logger.debug(
            "Atomically wrote %s %s to %s",
            len(data),
            "bytes" if is_binary else "chars",
            path,
        )
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass
        raise AtomicWriteError(f"Failed to atomically write to {path}: {e}") from e


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists and return it."""
    try:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path
    except PermissionError as e:
        raise FilesystemError(f"Permission denied creating directory {path}") from e
    except OSError as e:
        raise FilesystemError(f"Error creating directory {path}: {e}") from e


def make_temp_dir(parent: Path, prefix: str) -> Path:
    """Create a fresh uniquely named directory under ``parent``."""
    try:
        return Path(tempfile.mkdtemp(prefix=prefix, dir=parent))
    except OSError as e:
        raise FilesystemError(f"Error creating temp directory in {parent}: {e}") from e


def safe_remove(path: Path) -> bool:
    """Safely remove a file or directory tree, returning success status."""
    try:
        path = Path(path)
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
            return True
        if path.exists() or path.is_symlink():
            path.unlink()
            return True
        return False
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)
        return False


def remove_empty_dir(path: Path) -> bool:
    """Remove ``path`` only if it is an empty directory."""
    try:
        Path(path).rmdir()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.debug("Left directory %s in place: %s", path, e)
        return False

"""File I/O helpers for server artifacts (logs, generated Thing Description)."""

import os
import stat
from pathlib import Path

# Log directories are owner-only; they may contain request details
LOG_DIR_MODE: int = stat.S_IRWXU  # 0o700


def ensure_log_dir(path: Path) -> None:
    """Create a log directory (and parents) with owner-only permissions.

    Unlike Path.mkdir(), this also tightens the mode of an existing directory.

    Args:
        path: Directory path to create.
    """
    path.mkdir(mode=LOG_DIR_MODE, parents=True, exist_ok=True)
    os.chmod(path, LOG_DIR_MODE)


def write_atomic(path: Path, content: str | bytes) -> None:
    """Write a file by writing a sibling temp file and renaming it over the target.

    Readers never observe a half-written file. Parent directories are created
    as needed.

    Args:
        path: Path to the file to write.
        content: Content to write (str is encoded as UTF-8).

    Raises:
        OSError: If the directory cannot be created or the write fails.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")

    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(temp_path, "wb") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(temp_path, path)
    except OSError:
        # Clean up temp file on error
        if temp_path.exists():
            temp_path.unlink()
        raise

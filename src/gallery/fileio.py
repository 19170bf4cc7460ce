"""Whole-file reads and atomic writes for the registry and notes documents.

Both documents are treated as databases: every request re-reads the file and
every write replaces it in one rename, so a reader never sees a torn file.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path

from gallery.errors import StorageError

logger = logging.getLogger(__name__)


def read_text(path: Path) -> str:
    """Read a whole file without newline translation."""
    try:
        with open(path, encoding="utf-8", newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Failed to read %s: %s", path, exc)
        raise StorageError() from exc


def write_atomic(path: Path, content: str) -> None:
    """Write text atomically via unique tmp + rename."""
    try:
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix=f".{path.name}-")
    except OSError as exc:
        logger.error("Failed to create temp file next to %s: %s", path, exc)
        raise StorageError() from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        if path.exists():
            # mkstemp creates 0600; keep the original mode
            os.chmod(tmp_path, stat.S_IMODE(path.stat().st_mode))
        os.replace(tmp_path, path)
    except OSError as exc:
        logger.error("Failed to write %s: %s", path, exc)
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise StorageError() from exc

"""
release-train-planner — filesystem utilities

File: src/release_train/utils/fs.py
Last updated: 2026-10-18

Purpose
- Write rendered plan artifacts so readers never observe a half-written file.

Functional requirements
- The temp file lives in the destination directory and replaces the target in one step.
- A failed write leaves the previous artifact untouched and removes the temp file.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = ["atomic_write"]


def atomic_write(path: PathLike, data: str, *, encoding: str = "utf-8") -> Path:
    """Atomically write text ``data`` to ``path`` and return the resolved target."""

    target = Path(path)
    parent = target.parent.resolve(strict=True)
    if not parent.is_dir():
        raise NotADirectoryError(f"{parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(parent))
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise
    return parent / target.name

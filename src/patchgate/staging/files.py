"""Atomic file replacement for the JSON stores."""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path


def write_atomic(path: Path, text: str) -> None:
    """Replace path with text, all or nothing.

    The text goes to a temporary file in the same directory, is flushed to
    disk, then renamed over the target. Readers see either the old file or
    the new one, never a partial write.

    Raises:
        OSError: If any step fails. The previous file is left untouched and
            the temporary file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(temp_name)
        raise


__all__ = ["write_atomic"]

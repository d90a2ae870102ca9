"""Durable store of tracking entries.

Layout:
    <data_dir>/staged-approvals.json    TrackingCollection (entries + last_updated)

The file is the only state carried between runs. Each phase loads it once
at the start and saves the full collection once at the end; a save either
replaces the file completely or leaves the previous version in place.

Example:
    >>> store = TrackingStore(Path("/var/lib/patchgate"))
    >>> entries = store.load()
    >>> store.save(entries + [new_entry])
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path

import structlog
from pydantic import ValidationError

from patchgate.errors import TrackingStoreError
from patchgate.schemas.tracking import TrackingCollection, TrackingEntry
from patchgate.staging.files import write_atomic

logger = structlog.get_logger(__name__)

TRACKING_FILE_NAME = "staged-approvals.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackingStore:
    """JSON-file persistence for TrackingEntry records.

    Attributes:
        path: Location of the tracking file.
    """

    def __init__(
        self,
        data_dir: Path | str,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize TrackingStore.

        Args:
            data_dir: Directory holding the tracking file. Created on save.
            clock: Source of the last_updated timestamp.
        """
        self._path = Path(data_dir) / TRACKING_FILE_NAME
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[TrackingEntry]:
        """Read every entry.

        Returns:
            Stored entries in file order, or an empty list if the file does
            not exist yet.

        Raises:
            TrackingStoreError: If the file is unreadable, malformed, or holds
                two entries for the same (update_id, task_id).
        """
        collection = self._read()
        if collection is None:
            return []
        return list(collection.entries)

    def last_updated(self) -> datetime | None:
        """Timestamp of the last save, or None if nothing was saved yet."""
        collection = self._read()
        return collection.last_updated if collection is not None else None

    def entries_for_task(self, task_id: str) -> list[TrackingEntry]:
        """Entries of one task, most recently approved first."""
        entries = [e for e in self.load() if e.task_id == task_id]
        entries.sort(key=lambda e: e.approved_for_test_at, reverse=True)
        return entries

    def save(self, entries: Sequence[TrackingEntry]) -> None:
        """Replace the stored collection with entries.

        Args:
            entries: The full set of entries, across all tasks.

        Raises:
            TrackingStoreError: If entries contain duplicate keys or the write
                fails. A failed write leaves the previous file intact.
        """
        collection = TrackingCollection(entries=list(entries), last_updated=self._clock())
        duplicates = collection.duplicate_keys()
        if duplicates:
            raise TrackingStoreError(
                "save", str(self._path), f"duplicate entries for {_format_keys(duplicates)}"
            )

        try:
            write_atomic(self._path, collection.model_dump_json(indent=2))
        except OSError as e:
            logger.error("tracking_store_save_failed", path=str(self._path), error=str(e))
            raise TrackingStoreError("save", str(self._path), str(e)) from e

        logger.debug("tracking_store_saved", path=str(self._path), entries=len(entries))

    def _read(self) -> TrackingCollection | None:
        if not self._path.exists():
            return None

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise TrackingStoreError("load", str(self._path), str(e)) from e

        try:
            collection = TrackingCollection.model_validate_json(raw)
        except ValidationError as e:
            raise TrackingStoreError(
                "load", str(self._path), f"invalid tracking file: {e.error_count()} error(s)"
            ) from e

        duplicates = collection.duplicate_keys()
        if duplicates:
            raise TrackingStoreError(
                "load", str(self._path), f"duplicate entries for {_format_keys(duplicates)}"
            )
        return collection


def _format_keys(keys: Sequence[tuple[str, str]]) -> str:
    return ", ".join(f"{update_id}/{task_id}" for update_id, task_id in keys)


__all__ = ["TRACKING_FILE_NAME", "TrackingStore"]

"""Metadata index: the ordered collection of blob records.

The whole collection is the unit of persistence. Every operation reads the
full snapshot; every mutation writes the full snapshot back. Mutations are
serialized by a lock held across load, modify and persist so concurrent
uploads and deletes never drop each other's changes.

Backends:
- JsonSnapshotIndex: one JSON array file next to the blobs (default)
- InMemoryMetadataIndex: in-process records, no snapshot file (tests)
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import Any

from imgstore.storage.errors import (
    BlobNotFoundError,
    CorruptIndexError,
    DeleteIncompleteError,
    DuplicateIdError,
    IndexWriteError,
)
from imgstore.storage.models import MetadataRecord

logger = logging.getLogger(__name__)

DELETED_SUFFIX = ".deleted"

RecordPredicate = Callable[[MetadataRecord], bool]


class MetadataIndex(ABC):
    """Abstract base class for metadata index backends.

    Implementations:
    - JsonSnapshotIndex: JSON snapshot file (production)
    - InMemoryMetadataIndex: in-process list (tests)
    """

    @abstractmethod
    def load_all(self) -> list[MetadataRecord]:
        """Return every record, deleted ones included, in insertion order.

        Raises:
            CorruptIndexError: If the persisted snapshot cannot be parsed.
        """
        ...

    @abstractmethod
    def append(self, record: MetadataRecord) -> None:
        """Add a record at the end of the index.

        Raises:
            DuplicateIdError: If a record with the same id already exists.
            CorruptIndexError: If the current snapshot cannot be parsed.
            IndexWriteError: If the new snapshot cannot be persisted.
        """
        ...

    @abstractmethod
    def soft_delete(self, blob_id: str) -> MetadataRecord:
        """Mark the first non-deleted record with this id as deleted.

        Returns:
            The record as it now stands in the index.

        Raises:
            BlobNotFoundError: If no non-deleted record has this id.
            DeleteIncompleteError: If the index was updated but the blob file
                could not be renamed.
        """
        ...

    @abstractmethod
    def query(self, predicate: RecordPredicate) -> list[MetadataRecord]:
        """Return non-deleted records matching predicate, in insertion order."""
        ...


class SnapshotMetadataIndex(MetadataIndex):
    """Load-modify-persist index logic shared by the snapshot backends.

    Subclasses provide load_all() and _persist(); soft deletion retires the
    blob file by renaming it with the ".deleted" suffix.
    """

    def __init__(self, lock: threading.Lock | None = None) -> None:
        """Initialize the index.

        Args:
            lock: Mutation lock. Pass a shared lock when several index objects
                front the same snapshot within one process.
        """
        self._lock = lock if lock is not None else threading.Lock()

    @abstractmethod
    def _persist(self, records: list[MetadataRecord], *, blob_id: str) -> None:
        """Replace the persisted snapshot with records."""
        ...

    def append(self, record: MetadataRecord) -> None:
        """Add a record at the end of the index."""
        with self._lock:
            records = self.load_all()
            if any(existing.id == record.id for existing in records):
                raise DuplicateIdError(blob_id=record.id)
            records.append(record)
            self._persist(records, blob_id=record.id)

        logger.debug("Indexed blob %s (%d records)", record.id, len(records))

    def soft_delete(self, blob_id: str) -> MetadataRecord:
        """Mark a record deleted, persist, then rename its blob file."""
        with self._lock:
            records = self.load_all()
            position = _find_active(records, blob_id)
            if position is None:
                raise BlobNotFoundError(blob_id=blob_id)

            deleted = records[position].mark_deleted()
            records[position] = deleted
            self._persist(records, blob_id=blob_id)
            self._retire_blob(deleted)

        logger.info("Marked blob as deleted: %s", blob_id)
        return deleted

    def query(self, predicate: RecordPredicate) -> list[MetadataRecord]:
        """Return non-deleted records matching predicate."""
        return [record for record in self.load_all() if not record.deleted and predicate(record)]

    def _retire_blob(self, record: MetadataRecord) -> None:
        """Rename a deleted record's blob file so it can no longer be served.

        A file that is already gone leaves nothing to serve and is only logged.
        """
        source = Path(record.path)
        try:
            os.rename(source, source.with_name(source.name + DELETED_SUFFIX))
        except FileNotFoundError:
            logger.warning("Blob file for deleted record %s was already missing", record.id)
        except OSError as e:
            logger.error(
                "Index marks blob %s deleted but its file could not be renamed: %s",
                record.id,
                e,
            )
            raise DeleteIncompleteError(
                blob_id=record.id,
                stored_name=record.stored_name,
                cause=e,
            ) from e


class JsonSnapshotIndex(SnapshotMetadataIndex):
    """Metadata index persisted as a single JSON array file.

    The file holds one object per record with keys
    ``id, name, path, size, originalname, deleted``. Writes go to a temporary
    file in the same directory and are swapped in with os.replace, so
    readers never observe a half-written snapshot.
    """

    def __init__(self, path: str | Path, lock: threading.Lock | None = None) -> None:
        """Initialize the index.

        Args:
            path: Snapshot file path. A missing file is an empty index.
            lock: Optional shared mutation lock.
        """
        super().__init__(lock)
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """Return the snapshot file path."""
        return self._path

    def load_all(self) -> list[MetadataRecord]:
        """Read and parse the whole snapshot."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise CorruptIndexError(message="Failed to read metadata index", cause=e) from e

        try:
            data: Any = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptIndexError(message="Metadata index is not valid JSON", cause=e) from e

        if not isinstance(data, list):
            raise CorruptIndexError(message="Metadata index is not a list")

        return [MetadataRecord.from_dict(entry) for entry in data]

    def _persist(self, records: list[MetadataRecord], *, blob_id: str) -> None:
        """Write the snapshot atomically."""
        payload = json.dumps([record.to_dict() for record in records], separators=(",", ":"))
        tmp_file = self._path.with_name(f"{self._path.name}.{uuid.uuid4().hex}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(payload, encoding="utf-8")
            tmp_file.replace(self._path)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise IndexWriteError(blob_id=blob_id, cause=e) from e


class InMemoryMetadataIndex(SnapshotMetadataIndex):
    """In-memory metadata index for testing (no snapshot file).

    Records are copied on every load and persist, matching the snapshot
    semantics of the file backend. Soft deletion still retires blob files
    that exist on disk.
    """

    def __init__(self, records: list[MetadataRecord] | None = None) -> None:
        """Initialize the index with optional seed records."""
        super().__init__()
        self._records: list[MetadataRecord] = list(records or [])

    def load_all(self) -> list[MetadataRecord]:
        """Return a copy of the stored records."""
        return list(self._records)

    def _persist(self, records: list[MetadataRecord], *, blob_id: str) -> None:
        """Replace the stored records."""
        self._records = list(records)


def _find_active(records: list[MetadataRecord], blob_id: str) -> int | None:
    """Return the position of the first non-deleted record with blob_id."""
    for position, record in enumerate(records):
        if record.id == blob_id and not record.deleted:
            return position
    return None

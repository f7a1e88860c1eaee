"""Store facade: ingest, retrieve, remove and list blobs.

Composes the blob writer and a metadata index into the operations consumed by
the HTTP layer. Only PublicMeta and public ids leave this module; physical
paths are returned solely by fetch_by_id for the boundary to stream from.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

from imgstore.config import StoreConfig, load_store_config
from imgstore.storage.blob_writer import PARTIAL_SUFFIX, BlobWriter
from imgstore.storage.errors import (
    BlobNotFoundError,
    CorruptIndexError,
    DuplicateIdError,
    IndexWriteError,
    OrphanedBlobError,
)
from imgstore.storage.identifiers import new_id
from imgstore.storage.metadata_index import DELETED_SUFFIX, JsonSnapshotIndex, MetadataIndex
from imgstore.storage.models import MetadataRecord, PublicMeta
from imgstore.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)


class BlobStore:
    """Metadata-indexed blob store.

    The index decides whether a blob exists publicly. A file on disk without
    a non-deleted record is never served.
    """

    def __init__(
        self,
        writer: BlobWriter,
        index: MetadataIndex,
        *,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        """Initialize the store.

        Args:
            writer: Blob writer for the storage directory.
            index: Metadata index backend.
            id_factory: Generator for public blob ids.
        """
        self._writer = writer
        self._index = index
        self._id_factory = id_factory

    @property
    def index(self) -> MetadataIndex:
        """Return the metadata index backend."""
        return self._index

    @property
    def storage_dir(self) -> Path:
        """Return the blob storage directory."""
        return self._writer.storage_dir

    @traced_storage_operation("upload")
    def upload(
        self,
        stream: BinaryIO,
        original_name: str,
        declared_size: int | None = None,
    ) -> PublicMeta:
        """Persist an upload and index it.

        Raises:
            InvalidTypeError: Extension not whitelisted.
            TooLargeError: Upload above the size ceiling.
            WriteFailedError: Blob bytes could not be written.
            OrphanedBlobError: Blob written but its record could not be indexed
                (index write failure, unreadable index or id collision).
        """
        written = self._writer.ingest(stream, original_name, declared_size)

        record = MetadataRecord(
            id=self._id_factory(),
            name=written.stem,
            path=str(written.path),
            size=written.size,
            original_name=original_name,
        )

        try:
            self._index.append(record)
        except (IndexWriteError, CorruptIndexError, DuplicateIdError) as e:
            logger.error(
                "Blob %s written but not indexed, left as orphan: %s",
                written.stored_name,
                e,
            )
            raise OrphanedBlobError(stored_name=written.stored_name, cause=e) from e

        logger.info("Stored upload %s (%d bytes)", record.id, record.size)
        return record.to_public()

    @traced_storage_operation("fetch")
    def fetch_by_id(self, blob_id: str) -> Path:
        """Return the physical path of an active blob.

        Raises:
            BlobNotFoundError: No non-deleted record, or its file is missing.
            CorruptIndexError: The index cannot be read.
        """
        for record in self._index.query(lambda r: r.id == blob_id):
            path = Path(record.path)
            if path.is_file():
                return path
            logger.warning("Indexed blob %s has no file on disk", blob_id)
            break

        raise BlobNotFoundError(blob_id=blob_id)

    @traced_storage_operation("remove")
    def remove(self, blob_id: str) -> str:
        """Soft-delete a blob and return its id.

        Raises:
            BlobNotFoundError: No non-deleted record with this id.
            DeleteIncompleteError: Index updated but file rename failed.
        """
        return self._index.soft_delete(blob_id).id

    @traced_storage_operation("list")
    def list(self, name_filter: str | None = None) -> list[PublicMeta]:
        """List active blobs, optionally filtered by original-name substring.

        The filter is a case-sensitive substring match. An empty or missing
        filter matches everything.
        """
        if name_filter:
            records = self._index.query(lambda r: name_filter in r.original_name)
        else:
            records = self._index.query(lambda r: True)

        return [record.to_public() for record in records if not record.deleted]

    def find_orphans(self) -> list[str]:
        """Return stored file names that no index record references.

        The snapshot file, in-flight partial uploads, temporary files and
        retired ".deleted" files are not reported. Nothing is removed.
        """
        storage_dir = self._writer.storage_dir
        if not storage_dir.is_dir():
            return []

        referenced = {Path(record.path).name for record in self._index.load_all()}
        if isinstance(self._index, JsonSnapshotIndex):
            referenced.add(self._index.path.name)

        orphans: list[str] = []
        for entry in sorted(storage_dir.iterdir()):
            name = entry.name
            if not entry.is_file() or name in referenced:
                continue
            if name.endswith((DELETED_SUFFIX, PARTIAL_SUFFIX, ".tmp")):
                continue
            orphans.append(name)
        return orphans


def build_blob_store(config: StoreConfig | None = None) -> BlobStore:
    """Build a BlobStore backed by the JSON snapshot index.

    Args:
        config: Store configuration. If None, loads from environment.
    """
    if config is None:
        config = load_store_config()

    writer = BlobWriter(config.storage_dir, max_size_bytes=config.max_upload_bytes)
    index = JsonSnapshotIndex(config.index_path)
    logger.info("Blob store ready: storage_dir=%s", config.storage_dir)
    return BlobStore(writer, index)

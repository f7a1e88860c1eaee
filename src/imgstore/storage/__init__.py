"""imgstore blob storage.

Metadata-indexed blob store: blobs live as flat files named by a generated
identifier, and a JSON snapshot index maps public ids to them.

Environment Variables:
    IMGSTORE_STORAGE_DIR: Directory for blobs and the index (default: ./public)
    IMGSTORE_INDEX_FILENAME: Index snapshot file name (default: meta.json)
"""

from imgstore.storage.blob_store import BlobStore, build_blob_store
from imgstore.storage.blob_writer import BlobWriter
from imgstore.storage.errors import (
    BlobNotFoundError,
    BlobStoreError,
    CorruptIndexError,
    DeleteIncompleteError,
    InconsistentStateError,
    InvalidTypeError,
    OrphanedBlobError,
    TooLargeError,
    WriteFailedError,
)
from imgstore.storage.metadata_index import (
    InMemoryMetadataIndex,
    JsonSnapshotIndex,
    MetadataIndex,
)
from imgstore.storage.models import MetadataRecord, PublicMeta

__all__ = [
    "BlobStore",
    "build_blob_store",
    "BlobWriter",
    "MetadataIndex",
    "JsonSnapshotIndex",
    "InMemoryMetadataIndex",
    "MetadataRecord",
    "PublicMeta",
    "BlobStoreError",
    "InvalidTypeError",
    "TooLargeError",
    "WriteFailedError",
    "BlobNotFoundError",
    "CorruptIndexError",
    "InconsistentStateError",
    "OrphanedBlobError",
    "DeleteIncompleteError",
]

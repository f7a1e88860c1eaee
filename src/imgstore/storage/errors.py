"""imgstore blob storage error types.

Typed exceptions for the blob writer, metadata index and store facade.
Validation errors are raised before any storage side effect. Errors that
leave disk and index out of step derive from InconsistentStateError so
callers can tell them apart from a clean failure.
"""

from __future__ import annotations


class BlobStoreError(Exception):
    """Base exception for blob storage operations.

    Attributes:
        message: Human-readable error message.
        blob_id: Public blob id associated with the operation (if applicable).
    """

    def __init__(self, message: str, *, blob_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.blob_id = blob_id

    def __str__(self) -> str:
        parts = [self.message]
        if self.blob_id:
            parts.append(f"blob_id={self.blob_id}")
        return " ".join(parts)


class InvalidTypeError(BlobStoreError):
    """Raised when an upload's declared extension is not whitelisted.

    Attributes:
        extension: The rejected extension ("" when the name has none).
    """

    def __init__(
        self,
        message: str = "File is of the wrong type",
        *,
        extension: str = "",
    ) -> None:
        super().__init__(message)
        self.extension = extension


class TooLargeError(BlobStoreError):
    """Raised when an upload exceeds the configured size ceiling."""

    def __init__(
        self,
        message: str = "File is too large",
        *,
        max_size_bytes: int | None = None,
    ) -> None:
        super().__init__(message)
        self.max_size_bytes = max_size_bytes


class WriteFailedError(BlobStoreError):
    """Raised when blob bytes cannot be persisted (disk full, permissions).

    The underlying OSError is kept on ``cause`` and never rendered to clients.
    """

    def __init__(
        self,
        message: str = "Failed to write blob",
        *,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause


class BlobNotFoundError(BlobStoreError):
    """Raised when no non-deleted record matches the requested id."""

    def __init__(self, message: str = "Blob not found", *, blob_id: str | None = None) -> None:
        super().__init__(message, blob_id=blob_id)


class CorruptIndexError(BlobStoreError):
    """Raised when the persisted metadata snapshot cannot be parsed.

    Fatal for the request. Never treated as an empty index.
    """

    def __init__(
        self,
        message: str = "Metadata index is corrupt",
        *,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause


class IndexWriteError(BlobStoreError):
    """Raised when the metadata snapshot cannot be written back."""

    def __init__(
        self,
        message: str = "Failed to write metadata index",
        *,
        blob_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, blob_id=blob_id)
        self.cause = cause


class DuplicateIdError(BlobStoreError):
    """Raised when appending a record whose id is already in the index."""

    def __init__(self, message: str = "Blob id already exists", *, blob_id: str) -> None:
        super().__init__(message, blob_id=blob_id)


class InconsistentStateError(BlobStoreError):
    """Base for failures that leave the index and the filesystem out of step."""

    def __init__(
        self,
        message: str,
        *,
        blob_id: str | None = None,
        stored_name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, blob_id=blob_id)
        self.stored_name = stored_name
        self.cause = cause


class OrphanedBlobError(InconsistentStateError):
    """Raised when a blob was written but its record never reached the index."""

    def __init__(
        self,
        message: str = "Blob written but not indexed",
        *,
        stored_name: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, stored_name=stored_name, cause=cause)


class DeleteIncompleteError(InconsistentStateError):
    """Raised when a record was marked deleted but its file was not renamed."""

    def __init__(
        self,
        message: str = "Record marked deleted but blob file was not renamed",
        *,
        blob_id: str,
        stored_name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, blob_id=blob_id, stored_name=stored_name, cause=cause)

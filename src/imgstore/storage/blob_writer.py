"""Blob writer: validates an inbound stream and persists it under a generated name.

Blobs are written flat into the storage directory:
    {storage_dir}/
        {stem}.part     # in-flight upload, never referenced by the index
        {stem}{ext}     # completed blob, ext is one of the allowed extensions

The stem comes from the identifier generator. Nothing from the client-supplied
filename other than its whitelisted extension reaches the filesystem path.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import BinaryIO

from imgstore.config import ALLOWED_EXTENSIONS, DEFAULT_MAX_UPLOAD_BYTES
from imgstore.storage.errors import InvalidTypeError, TooLargeError, WriteFailedError
from imgstore.storage.identifiers import new_id
from imgstore.storage.metadata_index import DELETED_SUFFIX
from imgstore.storage.models import WrittenBlob

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"
DEFAULT_CHUNK_SIZE = 64 * 1024

_MAX_NAME_ATTEMPTS = 5


def extension_of(original_name: str) -> str:
    """Return the extension of a client-supplied filename.

    Only the last path component is considered, and a name made of a single
    leading-dot segment (".png") has no extension. The result is returned
    as-is; matching against the whitelist is case-sensitive.
    """
    base = original_name.replace("\\", "/").rsplit("/", 1)[-1]
    return os.path.splitext(base)[1]


class BlobWriter:
    """Writes upload streams into a flat storage directory.

    Enforces the extension whitelist before any byte is written and the
    size ceiling incrementally while streaming.
    """

    def __init__(
        self,
        storage_dir: str | Path,
        *,
        max_size_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        allowed_extensions: Iterable[str] = ALLOWED_EXTENSIONS,
        id_factory: Callable[[], str] = new_id,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the writer.

        Args:
            storage_dir: Directory that receives blob files (created on demand).
            max_size_bytes: Largest accepted upload in bytes (inclusive).
            allowed_extensions: Extensions accepted, with leading dot.
            id_factory: Generator for stored file stems.
            chunk_size: Read size used while streaming.
        """
        self._storage_dir = Path(storage_dir).resolve()
        self._max_size_bytes = max_size_bytes
        self._allowed_extensions = frozenset(allowed_extensions)
        self._id_factory = id_factory
        self._chunk_size = chunk_size

    @property
    def storage_dir(self) -> Path:
        """Return the storage directory path."""
        return self._storage_dir

    @property
    def max_size_bytes(self) -> int:
        """Return the upload size ceiling."""
        return self._max_size_bytes

    def validate(self, original_name: str, declared_size: int | None = None) -> str:
        """Check type and declared size policy without touching storage.

        Returns:
            The accepted extension.

        Raises:
            InvalidTypeError: If the extension is not whitelisted.
            TooLargeError: If the declared size is above the ceiling.
        """
        extension = extension_of(original_name)
        if extension not in self._allowed_extensions:
            raise InvalidTypeError(extension=extension)

        if declared_size is not None and declared_size > self._max_size_bytes:
            raise TooLargeError(max_size_bytes=self._max_size_bytes)

        return extension

    def ingest(
        self,
        stream: BinaryIO,
        original_name: str,
        declared_size: int | None = None,
    ) -> WrittenBlob:
        """Validate and persist an upload stream.

        Args:
            stream: Binary file-like object positioned at the start of the blob.
            original_name: Client-declared filename, used only for its extension.
            declared_size: Client-declared size in bytes, if known.

        Returns:
            WrittenBlob with the physical path, stored name and bytes written.

        Raises:
            InvalidTypeError: Extension not whitelisted (nothing written).
            TooLargeError: Declared or streamed size above the ceiling
                (partial file removed).
            WriteFailedError: The storage directory could not be written.
        """
        extension = self.validate(original_name, declared_size)
        self._ensure_storage_dir()

        stem = self._allocate_stem(extension)
        stored_name = f"{stem}{extension}"
        final_path = self._storage_dir / stored_name
        tmp_path = self._storage_dir / f"{stem}{PARTIAL_SUFFIX}"

        try:
            written = self._stream_to(tmp_path, stream)
            os.replace(tmp_path, final_path)
        except TooLargeError:
            _discard(tmp_path)
            logger.info("Rejected upload above %d bytes", self._max_size_bytes)
            raise
        except OSError as e:
            _discard(tmp_path)
            logger.error("Failed to write blob %s: %s", stored_name, e)
            raise WriteFailedError(cause=e) from e

        if declared_size is not None and written != declared_size:
            logger.warning(
                "Blob %s size mismatch: declared=%d written=%d",
                stored_name,
                declared_size,
                written,
            )

        logger.debug("Stored blob %s (%d bytes)", stored_name, written)
        return WrittenBlob(path=final_path, stored_name=stored_name, size=written)

    def _stream_to(self, tmp_path: Path, stream: BinaryIO) -> int:
        """Copy the stream into tmp_path, aborting once the ceiling is crossed."""
        written = 0
        with open(tmp_path, "xb") as out:
            while True:
                chunk = stream.read(self._chunk_size)
                if not chunk:
                    break
                written += len(chunk)
                if written > self._max_size_bytes:
                    raise TooLargeError(max_size_bytes=self._max_size_bytes)
                out.write(chunk)
        return written

    def _ensure_storage_dir(self) -> None:
        """Create the storage directory if it does not exist."""
        try:
            self._storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteFailedError(message="Failed to create storage directory", cause=e) from e

    def _allocate_stem(self, extension: str) -> str:
        """Generate a stem whose stored, partial and deleted names are all free."""
        for _ in range(_MAX_NAME_ATTEMPTS):
            stem = self._id_factory()
            candidates = (
                self._storage_dir / f"{stem}{extension}",
                self._storage_dir / f"{stem}{extension}{DELETED_SUFFIX}",
                self._storage_dir / f"{stem}{PARTIAL_SUFFIX}",
            )
            if not any(path.exists() for path in candidates):
                return stem
        raise WriteFailedError(message="Could not allocate a unique stored name")


def _discard(path: Path) -> None:
    """Remove a partial file, logging instead of raising if that fails."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to remove partial upload %s: %s", path.name, e)

"""imgstore blob storage data models.

Provides typed dataclasses for metadata records and the public view of a blob.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from imgstore.storage.errors import CorruptIndexError

_REQUIRED_KEYS = ("id", "name", "path", "size", "originalname")
_TEXT_KEYS = ("id", "name", "path", "originalname")


@dataclass(frozen=True)
class MetadataRecord:
    """Durable descriptor of one uploaded blob.

    Only ``deleted`` ever changes after creation, and only from False to True
    (see mark_deleted).

    Attributes:
        id: Public opaque handle, unique across the index including deleted records.
        name: Stored file stem (the generated identifier, no extension).
        path: Physical path of the blob on the storage volume.
        size: Number of bytes written.
        original_name: Client-supplied filename (untrusted, display only).
        deleted: Soft-delete flag.
    """

    id: str
    name: str
    path: str
    size: int
    original_name: str
    deleted: bool = False

    @property
    def stored_name(self) -> str:
        """Return the physical file name (generated stem plus extension)."""
        return Path(self.path).name

    def mark_deleted(self) -> MetadataRecord:
        """Return a copy of this record with the soft-delete flag set."""
        return replace(self, deleted=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert record to its snapshot dictionary form."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "size": self.size,
            "originalname": self.original_name,
            "deleted": self.deleted,
        }

    @classmethod
    def from_dict(cls, data: Any) -> MetadataRecord:
        """Create a record from its snapshot dictionary form.

        Raises:
            CorruptIndexError: If the entry is not a dict or misses/mistypes a field.
        """
        if not isinstance(data, dict):
            raise CorruptIndexError(message="Index entry is not an object")

        missing = [key for key in _REQUIRED_KEYS if key not in data]
        if missing:
            raise CorruptIndexError(message=f"Index entry missing fields: {', '.join(missing)}")

        mistyped = [key for key in _TEXT_KEYS if not isinstance(data[key], str)]
        if mistyped:
            raise CorruptIndexError(
                message=f"Index entry has non-string fields: {', '.join(mistyped)}"
            )

        size = data["size"]
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise CorruptIndexError(message="Index entry has an invalid size")

        deleted = data.get("deleted", False)
        if not isinstance(deleted, bool):
            raise CorruptIndexError(message="Index entry has an invalid deleted flag")

        return cls(
            id=data["id"],
            name=data["name"],
            path=data["path"],
            size=size,
            original_name=data["originalname"],
            deleted=deleted,
        )

    def to_public(self) -> PublicMeta:
        """Return the client-facing view of this record."""
        return PublicMeta(id=self.id, size=self.size, original_name=self.original_name)


@dataclass(frozen=True)
class PublicMeta:
    """Client-facing metadata for a blob. Never carries physical locations.

    Attributes:
        id: Public blob id.
        size: Size in bytes.
        original_name: Client-supplied filename.
    """

    id: str
    size: int
    original_name: str

    def to_dict(self) -> dict[str, str | int]:
        """Convert to the response shape ``{id, size, name}``."""
        return {"id": self.id, "size": self.size, "name": self.original_name}


@dataclass(frozen=True)
class WrittenBlob:
    """Result of a successful blob write.

    Attributes:
        path: Physical path of the written file.
        stored_name: File name on disk (generated stem plus extension).
        size: Number of bytes actually written.
    """

    path: Path
    stored_name: str
    size: int

    @property
    def stem(self) -> str:
        """Return the stored name without its extension."""
        return Path(self.stored_name).stem

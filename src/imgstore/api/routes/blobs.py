"""Blob routes for the imgstore API.

Provides the upload, retrieval, removal and listing endpoints:
- POST /upload (multipart form, file field "data")
- GET /static/{file_id}
- DELETE /removeupload/{file_id}
- GET /listuploads and GET /listuploads/{name}

Clients only ever see public ids. Storage errors raised by the blob store are
mapped to responses by the handlers registered in imgstore.api.errors.
"""

from __future__ import annotations

import time
from typing import Annotated

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from imgstore.api.errors import StoreHttpError
from imgstore.storage.blob_store import BlobStore
from imgstore.storage.models import PublicMeta

router = APIRouter(tags=["Blobs"])


class BlobMeta(BaseModel):
    """Public metadata of one blob."""

    id: str
    size: int
    name: str

    @classmethod
    def from_public(cls, meta: PublicMeta) -> BlobMeta:
        """Build the response model from the store's public view."""
        return cls(id=meta.id, size=meta.size, name=meta.original_name)


class RemovedBlob(BaseModel):
    """Response body for a successful removal."""

    id: str


def get_blob_store(request: Request) -> BlobStore:
    """Return the BlobStore attached to the application.

    Raises:
        StoreHttpError: 500 if the application was built without a store.
    """
    store: BlobStore | None = getattr(request.app.state, "blob_store", None)
    if store is None:
        raise StoreHttpError(
            status_code=500,
            code="INTERNAL_ERROR",
            message="An internal error occurred",
        )
    return store


BlobStoreDep = Annotated[BlobStore, Depends(get_blob_store)]


@router.post("/upload", response_model=BlobMeta)
def upload_blob(store: BlobStoreDep, data: Annotated[UploadFile, File()]) -> BlobMeta:
    """Store an uploaded image and return its public metadata."""
    meta = store.upload(data.file, data.filename or "", data.size)
    return BlobMeta.from_public(meta)


@router.get("/static/{file_id}", response_class=FileResponse)
def get_blob(file_id: str, store: BlobStoreDep) -> FileResponse:
    """Stream a stored blob by its public id."""
    path = store.fetch_by_id(file_id)
    return FileResponse(
        path,
        headers={
            "x-timestamp": str(int(time.time() * 1000)),
            "x-sent": "true",
        },
    )


@router.delete("/removeupload/{file_id}", response_model=RemovedBlob, status_code=202)
def remove_blob(file_id: str, store: BlobStoreDep) -> RemovedBlob:
    """Soft-delete a blob by its public id."""
    removed_id = store.remove(file_id)
    return RemovedBlob(id=removed_id)


@router.get("/listuploads", response_model=list[BlobMeta])
def list_blobs(store: BlobStoreDep) -> list[BlobMeta]:
    """List every active blob."""
    return [BlobMeta.from_public(meta) for meta in store.list()]


@router.get("/listuploads/{name}", response_model=list[BlobMeta])
def list_blobs_by_name(name: str, store: BlobStoreDep) -> list[BlobMeta]:
    """List active blobs whose original name contains ``name``."""
    return [BlobMeta.from_public(meta) for meta in store.list(name)]

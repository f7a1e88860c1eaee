"""imgstore FastAPI application factory.

This module provides the create_app() factory for bootstrapping the imgstore API.
"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

from imgstore.api.errors import (
    StoreHttpError,
    blob_store_error_handler,
    generic_exception_handler,
    http_exception_handler,
    request_validation_error_handler,
    store_http_error_handler,
)
from imgstore.api.middleware.request_id import RequestIdMiddleware
from imgstore.api.middleware.security_headers import SecurityHeadersMiddleware
from imgstore.api.middleware.upload_limit import UploadLimitMiddleware
from imgstore.api.routes.blobs import router as blobs_router
from imgstore.api.routes.health import IMGSTORE_VERSION
from imgstore.api.routes.health import router as health_router
from imgstore.config import StoreConfig, load_store_config
from imgstore.observability.tracing import configure_tracing, instrument_fastapi
from imgstore.storage.blob_store import BlobStore, build_blob_store
from imgstore.storage.errors import BlobStoreError


def create_app(
    blob_store: BlobStore | None = None,
    config: StoreConfig | None = None,
) -> FastAPI:
    """Create and configure the imgstore FastAPI application.

    This factory:
    - Builds the blob store from config (unless one is injected)
    - Registers middleware in correct order for request processing
    - Registers exception handlers for the error envelope
    - Mounts the health and blob routers

    Middleware ordering (outermost to innermost):
    1. RequestIdMiddleware - outermost, ensures request_id available everywhere
    2. SecurityHeadersMiddleware - hardening headers on every response
    3. CORSMiddleware - answers preflights for the configured origins
    4. UploadLimitMiddleware - 413 for oversized bodies before parsing

    Note: Starlette middleware is added in reverse order (last added = outermost).

    Args:
        blob_store: Optional pre-built BlobStore (for testing). If None, one is
            built from config.
        config: Optional store configuration. If None, loads from environment.

    Returns:
        Configured FastAPI application instance.
    """
    if config is None:
        config = load_store_config()
    if blob_store is None:
        blob_store = build_blob_store(config)

    app = FastAPI(
        title="imgstore API",
        description="Minimal image object store",
        version=IMGSTORE_VERSION,
    )

    app.state.blob_store = blob_store
    app.state.config = config

    configure_tracing()

    app.add_middleware(UploadLimitMiddleware, max_upload_bytes=config.max_upload_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    instrument_fastapi(app)

    app.add_exception_handler(StoreHttpError, store_http_error_handler)
    app.add_exception_handler(BlobStoreError, blob_store_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(blobs_router)

    return app

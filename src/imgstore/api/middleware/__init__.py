"""imgstore API middleware package."""

from imgstore.api.middleware.request_id import RequestIdMiddleware
from imgstore.api.middleware.security_headers import SecurityHeadersMiddleware
from imgstore.api.middleware.upload_limit import UploadLimitMiddleware

__all__ = ["RequestIdMiddleware", "SecurityHeadersMiddleware", "UploadLimitMiddleware"]

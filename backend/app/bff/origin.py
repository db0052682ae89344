"""
Backend origin resolution for the BFF proxy.
"""

import logging
from typing import Optional

from fastapi import status

from backend.app.core.config import settings
from backend.app.core.exceptions import AppException

logger = logging.getLogger(__name__)


class BackendOriginConfigError(AppException):
    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="backend_origin_config",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


def normalize_origin(raw: Optional[str]) -> Optional[str]:
    """Trim whitespace and trailing slashes and drop a trailing /api segment."""
    if raw is None:
        return None
    origin = raw.strip().rstrip("/")
    if origin.endswith("/api"):
        origin = origin[: -len("/api")].rstrip("/")
    return origin or None


def resolve_backend_origin() -> str:
    """
    Origin the BFF forwards to.

    Production requires an explicit origin from the allow-list; elsewhere a
    missing origin falls back to the local API server.

    Raises:
        BackendOriginConfigError: origin missing, or not allow-listed in production
    """
    origin = normalize_origin(settings.backend_api_origin)
    allowlist = {normalize_origin(o) for o in settings.backend_origin_allowlist if o}

    if settings.is_production:
        if not origin:
            raise BackendOriginConfigError("BACKEND_API_ORIGIN is required in production")
        if allowlist and origin not in allowlist:
            logger.error("Backend origin %s is not allow-listed", origin)
            raise BackendOriginConfigError("BACKEND_API_ORIGIN is not in the allow-list")
        if not origin.startswith("https://"):
            raise BackendOriginConfigError("BACKEND_API_ORIGIN must use https in production")
        return origin

    if not origin:
        return "http://localhost:8000"
    if allowlist and origin not in allowlist:
        raise BackendOriginConfigError("BACKEND_API_ORIGIN is not in the allow-list")
    return origin

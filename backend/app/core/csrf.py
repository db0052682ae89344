"""
CSRF protection middleware.

Double-submit check: on state-changing requests that carry a session cookie,
the X-CSRF-Token header must equal the vah_csrf_token cookie. Requests
without a session cookie (bearer clients, webhooks) are not subject to it.
"""

import hmac
import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from backend.app.core.config import settings
from backend.app.core.exceptions import error_body

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

EXEMPT_PREFIXES = (
    "/api/webhooks",
    "/api/bff/",
    "/api/auth/login",
    "/api/auth/signup",
)


def is_csrf_exempt(path: str) -> bool:
    return path.startswith(EXEMPT_PREFIXES)


class CSRFMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method in SAFE_METHODS or is_csrf_exempt(request.url.path):
            return await call_next(request)

        if settings.session_cookie_name not in request.cookies:
            return await call_next(request)

        cookie_token = request.cookies.get(settings.csrf_cookie_name)
        header_token = request.headers.get(settings.csrf_header_name)

        if not cookie_token or not header_token:
            logger.warning("CSRF token missing on %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=403,
                content=error_body("csrf_token_missing", "CSRF token missing")
            )

        if not hmac.compare_digest(cookie_token, header_token):
            logger.warning("CSRF token mismatch on %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=403,
                content=error_body("csrf_token_invalid", "CSRF token invalid")
            )

        return await call_next(request)

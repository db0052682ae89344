"""
BFF (backend-for-frontend) proxy routes.

/api/bff/{path} forwards the browser's cookies, CSRF token and JSON body to
the backend origin and relays the JSON answer and Set-Cookie headers back.
No business logic lives here.
"""

import logging
import re
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from backend.app.bff.origin import resolve_backend_origin
from backend.app.core.config import settings
from backend.app.core.exceptions import error_body
from backend.app.core.reliability import CircuitOpenError, upstream_circuit_breaker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bff", tags=["BFF"])

FORWARDED_HEADERS = ("cookie", "content-type", "authorization", "accept")
STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
}

_DOMAIN_ATTR = re.compile(r";\s*domain=[^;]*", re.IGNORECASE)


async def get_upstream_client():
    """Dependency yielding the HTTP client used to reach the backend."""
    async with httpx.AsyncClient(timeout=settings.upstream_timeout_seconds) as client:
        yield client


def rewrite_set_cookie(cookie: str) -> str:
    """
    Make an upstream cookie valid for the frontend host.

    Drops Domain, and adds Path=/, SameSite=Lax and Secure when absent.
    """
    rewritten = _DOMAIN_ATTR.sub("", cookie)
    lowered = rewritten.lower()
    if "path=" not in lowered:
        rewritten += "; Path=/"
    if "samesite=" not in lowered:
        rewritten += "; SameSite=Lax"
    if (settings.cookie_secure or settings.is_production) and "secure" not in [
        part.strip() for part in lowered.split(";")
    ]:
        rewritten += "; Secure"
    return rewritten


def build_upstream_headers(request: Request) -> dict:
    headers = {}
    for name in FORWARDED_HEADERS:
        value = request.headers.get(name)
        if value:
            headers[name] = value
    if request.method in STATE_CHANGING_METHODS:
        csrf = request.cookies.get(settings.csrf_cookie_name) or request.headers.get(settings.csrf_header_name)
        if csrf:
            headers[settings.csrf_header_name] = csrf
    correlation_id = getattr(request.state, "correlation_id", None)
    if correlation_id:
        headers["X-Correlation-ID"] = correlation_id
    return headers


def _proxy_error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(code, message), headers=NO_STORE_HEADERS)


def _relay(upstream: httpx.Response, content: Optional[object]) -> Response:
    if content is None:
        response = Response(status_code=upstream.status_code, headers=NO_STORE_HEADERS)
    else:
        response = JSONResponse(status_code=upstream.status_code, content=content, headers=NO_STORE_HEADERS)
    cookies: List[str] = upstream.headers.get_list("set-cookie")
    for cookie in cookies:
        response.headers.append("set-cookie", rewrite_set_cookie(cookie))
    return response


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def proxy(path: str, request: Request, client: httpx.AsyncClient = Depends(get_upstream_client)):
    origin = resolve_backend_origin()
    url = f"{origin}{settings.api_prefix}/{path.lstrip('/')}"
    body = await request.body()

    try:
        upstream = await upstream_circuit_breaker.call(
            client.request,
            request.method,
            url,
            params=list(request.query_params.multi_items()),
            headers=build_upstream_headers(request),
            content=body or None,
        )
    except CircuitOpenError:
        logger.warning("BFF circuit open, refusing %s %s", request.method, path)
        return _proxy_error(503, "upstream_unavailable", "Backend temporarily unavailable")
    except httpx.HTTPError as exc:
        logger.error("BFF upstream fetch failed for %s %s: %s", request.method, url, exc)
        return _proxy_error(502, "upstream_unreachable", "Upstream fetch failed")

    if upstream.status_code == 204 or not upstream.content:
        return _relay(upstream, None)

    try:
        data = upstream.json()
    except ValueError:
        logger.error(
            "BFF upstream returned non-JSON (%s, %s) for %s",
            upstream.status_code, upstream.headers.get("content-type"), url
        )
        return _proxy_error(502, "invalid_response", "Upstream returned a non-JSON response")

    return _relay(upstream, data)

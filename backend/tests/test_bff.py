"""
Tests for the BFF proxy and backend origin resolution.

The upstream backend is replaced with an httpx.MockTransport.
"""

import json
import time

import httpx
import pytest

from backend.app.bff.origin import BackendOriginConfigError, normalize_origin, resolve_backend_origin
from backend.app.bff.proxy import get_upstream_client, rewrite_set_cookie
from backend.app.core.config import settings
from backend.app.core.reliability import upstream_circuit_breaker
from backend.app.main import app

ORIGIN = "http://backend.test"


@pytest.fixture(autouse=True)
def bff_settings(monkeypatch):
    monkeypatch.setattr(settings, "backend_api_origin", ORIGIN + "/api/")
    monkeypatch.setattr(settings, "backend_origin_allowlist", [])
    monkeypatch.setattr(settings, "environment", "development")
    upstream_circuit_breaker.reset_state()
    yield
    upstream_circuit_breaker.reset_state()
    app.dependency_overrides.pop(get_upstream_client, None)


def use_upstream(handler):
    """Route BFF traffic to `handler` and collect the requests it saw."""
    seen = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    async def override():
        async with httpx.AsyncClient(transport=httpx.MockTransport(recording_handler)) as upstream:
            yield upstream

    app.dependency_overrides[get_upstream_client] = override
    return seen


@pytest.mark.parametrize("raw,expected", [
    ("https://api.example.com", "https://api.example.com"),
    ("  https://api.example.com/  ", "https://api.example.com"),
    ("https://api.example.com/api", "https://api.example.com"),
    ("https://api.example.com/api/", "https://api.example.com"),
    ("   ", None),
    (None, None),
])
def test_normalize_origin(raw, expected):
    assert normalize_origin(raw) == expected


def test_development_defaults_to_local_api(monkeypatch):
    monkeypatch.setattr(settings, "backend_api_origin", None)
    assert resolve_backend_origin() == "http://localhost:8000"


def test_production_requires_origin(monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "backend_api_origin", None)

    with pytest.raises(BackendOriginConfigError) as exc_info:
        resolve_backend_origin()
    assert exc_info.value.error_code == "backend_origin_config"


def test_production_rejects_origin_outside_allowlist(monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "backend_api_origin", "https://evil.example.com")
    monkeypatch.setattr(settings, "backend_origin_allowlist", ["https://api.example.com/"])

    with pytest.raises(BackendOriginConfigError):
        resolve_backend_origin()


def test_production_accepts_allowlisted_origin(monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "backend_api_origin", " https://api.example.com/api ")
    monkeypatch.setattr(settings, "backend_origin_allowlist", ["https://api.example.com"])

    assert resolve_backend_origin() == "https://api.example.com"


def test_rewrite_set_cookie_drops_domain():
    rewritten = rewrite_set_cookie("vah_session=abc; Domain=backend.test; HttpOnly")

    assert "domain" not in rewritten.lower()
    assert "Path=/" in rewritten
    assert "SameSite=Lax" in rewritten


@pytest.mark.asyncio
async def test_get_is_forwarded_with_cookies(client):
    seen = use_upstream(lambda request: httpx.Response(
        200,
        json={"items": [], "total": 0},
        headers={"set-cookie": "vah_session=fresh; Domain=backend.test; Path=/; HttpOnly"},
    ))
    client.cookies.set(settings.session_cookie_name, "session-token")

    response = await client.get("/api/bff/mail-items?limit=5&offset=0")

    assert response.status_code == 200
    assert response.json() == {"items": [], "total": 0}
    assert "no-store" in response.headers["cache-control"]
    set_cookie = response.headers["set-cookie"]
    assert set_cookie.startswith("vah_session=fresh")
    assert "domain" not in set_cookie.lower()

    upstream_request = seen[0]
    assert str(upstream_request.url) == f"{ORIGIN}/api/mail-items?limit=5&offset=0"
    assert "vah_session=session-token" in upstream_request.headers["cookie"]
    assert settings.csrf_header_name.lower() not in {k.lower() for k in upstream_request.headers}


@pytest.mark.asyncio
async def test_post_copies_csrf_cookie_into_header(client):
    seen = use_upstream(lambda request: httpx.Response(201, json={"ok": True}))
    client.cookies.set(settings.session_cookie_name, "session-token")
    client.cookies.set(settings.csrf_cookie_name, "csrf-123")

    response = await client.post("/api/bff/forwarding/requests", json={"mail_item_id": 1})

    assert response.status_code == 201
    upstream_request = seen[0]
    assert upstream_request.method == "POST"
    assert upstream_request.headers[settings.csrf_header_name] == "csrf-123"
    assert json.loads(upstream_request.content) == {"mail_item_id": 1}


@pytest.mark.asyncio
async def test_upstream_errors_are_relayed(client):
    use_upstream(lambda request: httpx.Response(
        403, json={"ok": False, "error": "KYC_REQUIRED", "message": "", "details": {}}
    ))

    response = await client.get("/api/bff/profile/registered-office-address")

    assert response.status_code == 403
    assert response.json()["error"] == "KYC_REQUIRED"


@pytest.mark.asyncio
async def test_non_json_upstream_is_502(client):
    use_upstream(lambda request: httpx.Response(
        500, text="<html>Bad Gateway</html>", headers={"content-type": "text/html"}
    ))

    response = await client.get("/api/bff/profile")

    assert response.status_code == 502
    assert response.json()["error"] == "invalid_response"


@pytest.mark.asyncio
async def test_unreachable_upstream_is_502(client):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    use_upstream(refuse)

    response = await client.get("/api/bff/profile")

    assert response.status_code == 502
    assert response.json()["error"] == "upstream_unreachable"
    assert upstream_circuit_breaker.failures == 1


@pytest.mark.asyncio
async def test_open_circuit_is_503(client):
    seen = use_upstream(lambda request: httpx.Response(200, json={}))
    upstream_circuit_breaker.state = "OPEN"
    upstream_circuit_breaker.last_failure_time = time.monotonic()

    response = await client.get("/api/bff/profile")

    assert response.status_code == 503
    assert response.json()["error"] == "upstream_unavailable"
    assert seen == []


@pytest.mark.asyncio
async def test_empty_upstream_body(client):
    use_upstream(lambda request: httpx.Response(204))

    response = await client.delete("/api/bff/notifications/1")

    assert response.status_code == 204
    assert response.content == b""

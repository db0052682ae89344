"""
Failure Injection Tests.

Validates resilience against outbound component failures.
"""

import hashlib
import hmac
import json
import time

import httpx
import pytest

from backend.app.core.config import settings
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError, mailer_circuit_breaker
from backend.app.core.token_revocation import is_token_revoked
from backend.app.services import mailer


@pytest.fixture(autouse=True)
def reset_mailer_circuit():
    mailer_circuit_breaker.reset_state()
    yield
    mailer_circuit_breaker.reset_state()


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker("test", failure_threshold=2, reset_timeout=1)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_recovers():
    cb = CircuitBreaker("test", failure_threshold=1, reset_timeout=5)

    async def failing_func():
        raise ValueError("Boom")

    async def ok_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Pretend the reset timeout has elapsed
    cb.last_failure_time = time.monotonic() - 10

    assert await cb.call(ok_func) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0


@pytest.mark.asyncio
async def test_mailer_disabled_without_token(monkeypatch, mocker):
    monkeypatch.setattr(settings, "postmark_token", "")
    post = mocker.patch("backend.app.services.mailer._post_to_postmark")

    assert await mailer.send_email("a@example.com", "Hello", "Body") is False
    post.assert_not_called()


@pytest.mark.asyncio
async def test_mailer_failure_is_not_raised(monkeypatch, mocker):
    monkeypatch.setattr(settings, "postmark_token", "pm-server-token")
    mocker.patch(
        "backend.app.services.mailer._post_to_postmark",
        side_effect=httpx.ConnectError("postmark down")
    )

    assert await mailer.send_email("a@example.com", "Hello", "Body") is False
    assert mailer_circuit_breaker.failures == 1


@pytest.mark.asyncio
async def test_mailer_stops_calling_when_circuit_open(monkeypatch, mocker):
    monkeypatch.setattr(settings, "postmark_token", "pm-server-token")
    post = mocker.patch(
        "backend.app.services.mailer._post_to_postmark",
        side_effect=httpx.ConnectError("postmark down")
    )

    for _ in range(mailer_circuit_breaker.failure_threshold + 2):
        assert await mailer.send_email("a@example.com", "Hello", "Body") is False

    assert post.await_count == mailer_circuit_breaker.failure_threshold


@pytest.mark.asyncio
async def test_mailer_sends_postmark_message(monkeypatch, mocker):
    monkeypatch.setattr(settings, "postmark_token", "pm-server-token")
    post = mocker.patch("backend.app.services.mailer._post_to_postmark")

    assert await mailer.send_forwarding_dispatched("a@example.com", "Ann", "Royal Mail", "RM1") is True

    message = post.await_args.args[0]
    assert message["To"] == "a@example.com"
    assert "RM1" in message["TextBody"]


@pytest.mark.asyncio
async def test_webhook_succeeds_when_email_fails(client, customer, monkeypatch, mocker):
    """A Postmark outage must not turn a paid invoice into a failed webhook."""
    monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_x")
    monkeypatch.setattr(settings, "postmark_token", "pm-server-token")
    mocker.patch(
        "backend.app.services.mailer._post_to_postmark",
        side_effect=httpx.ReadTimeout("slow")
    )

    payload = json.dumps({
        "id": "evt_mail_down",
        "type": "invoice.paid",
        "data": {"object": {"id": "in_mail", "customer": "cus_m", "amount_paid": 999,
                            "metadata": {"userId": str(customer.id)}}},
    })
    ts = int(time.time())
    digest = hmac.new(b"whsec_x", f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()

    response = await client.post(
        "/api/webhooks/stripe", content=payload,
        headers={"Stripe-Signature": f"t={ts},v1={digest}", "Content-Type": "application/json"}
    )

    assert response.status_code == 200
    assert response.json()["status"] == "processed"


@pytest.mark.asyncio
async def test_revocation_check_fails_open_when_redis_down(mocker):
    from redis.exceptions import ConnectionError as RedisConnectionError
    import backend.app.core.redis_client as redis_client_module

    mocker.patch.object(
        redis_client_module.redis_client, "exists", side_effect=RedisConnectionError("down")
    )

    assert await is_token_revoked("some-token") is False


def test_debug_is_forced_off_in_production():
    from backend.app.core.config import Settings
    from backend.app.main import app

    assert Settings(environment="production", debug=True).debug is False
    assert Settings(environment="development", debug=True).debug is True
    assert app.debug is False

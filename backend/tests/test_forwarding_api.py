"""
Integration tests for forwarding requests and the admin forwarding queue.
"""

import pytest
from sqlalchemy import select

from backend.app.core.exceptions import ConcurrentUpdateError
from backend.app.domain.forwarding.service import ForwardingService
from backend.app.models.audit_log import AuditLog
from backend.app.models.billing import ForwardingCharge
from backend.app.models.forwarding_enums import ForwardingAction, ForwardingStatus
from backend.app.models.forwarding_request import ForwardingRequest
from backend.app.models.notification import Notification
from backend.app.schemas.forwarding import AdminForwardingUpdate


def forwarding_body(mail_item_id: int, **overrides) -> dict:
    body = {
        "mail_item_id": mail_item_id,
        "to_name": "Jane Doe",
        "address1": "1 High Street",
        "city": "Manchester",
        "postal": "M1 1AA",
        "country": "gb",
    }
    body.update(overrides)
    return body


async def create_request(client, headers, mail_item_id) -> dict:
    response = await client.post(
        "/api/forwarding/requests", json=forwarding_body(mail_item_id), headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()


async def patch_request(client, headers, request_id, action, **extra):
    return await client.patch(
        f"/api/admin/forwarding/requests/{request_id}",
        json={"action": action, **extra},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_create_forwarding_request(client, db_session, customer, customer_headers, make_mail_item):
    mail = await make_mail_item(customer)

    data = await create_request(client, customer_headers, mail.id)

    assert data["status"] == "Requested"
    assert data["country"] == "GB"
    assert data["address"] == "Jane Doe\n1 High Street\nManchester\nM1 1AA\nGB"

    charge = (await db_session.execute(
        select(ForwardingCharge).where(ForwardingCharge.forwarding_request_id == data["id"])
    )).scalar_one()
    assert charge.amount_pence == 200

    await db_session.refresh(mail)
    assert mail.forwarding_status == "Requested"


@pytest.mark.asyncio
async def test_create_is_idempotent_for_open_request(client, customer, customer_headers, make_mail_item):
    mail = await make_mail_item(customer)
    first = await create_request(client, customer_headers, mail.id)

    response = await client.post(
        "/api/forwarding/requests", json=forwarding_body(mail.id, to_name="Someone Else"),
        headers=customer_headers
    )

    assert response.status_code == 200
    assert response.json()["id"] == first["id"]
    assert response.json()["to_name"] == "Jane Doe"


@pytest.mark.asyncio
async def test_official_mail_is_forwarded_free(client, db_session, customer, customer_headers, make_mail_item):
    mail = await make_mail_item(customer, tag="HMRC")

    data = await create_request(client, customer_headers, mail.id)

    charges = (await db_session.execute(
        select(ForwardingCharge).where(ForwardingCharge.forwarding_request_id == data["id"])
    )).scalars().all()
    assert charges == []


@pytest.mark.asyncio
async def test_expired_mail_cannot_be_forwarded(client, customer, customer_headers, make_mail_item):
    mail = await make_mail_item(customer, age_days=31)

    response = await client.post(
        "/api/forwarding/requests", json=forwarding_body(mail.id), headers=customer_headers
    )

    assert response.status_code == 403
    assert response.json()["error"] == "expired"


@pytest.mark.asyncio
async def test_cannot_forward_someone_elses_mail(client, customer_headers, make_user, make_mail_item):
    other = await make_user("other@example.com")
    mail = await make_mail_item(other)

    response = await client.post(
        "/api/forwarding/requests", json=forwarding_body(mail.id), headers=customer_headers
    )

    assert response.status_code == 404
    assert response.json()["error"] == "mail_item_not_found"


@pytest.mark.asyncio
async def test_create_validation_error(client, customer, customer_headers, make_mail_item):
    mail = await make_mail_item(customer)

    response = await client.post(
        "/api/forwarding/requests", json=forwarding_body(mail.id, postal="   "),
        headers=customer_headers
    )

    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_customer_sees_only_own_requests(client, customer, customer_headers, make_user,
                                               make_mail_item, headers_for):
    mine = await create_request(client, customer_headers, (await make_mail_item(customer)).id)

    other = await make_user("other@example.com")
    other_headers = headers_for(other)
    theirs = await create_request(client, other_headers, (await make_mail_item(other)).id)

    listing = await client.get("/api/forwarding/requests", headers=customer_headers)
    assert listing.status_code == 200
    assert [r["id"] for r in listing.json()["items"]] == [mine["id"]]
    assert listing.json()["total"] == 1

    response = await client.get(f"/api/forwarding/requests/{theirs['id']}", headers=customer_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_admin_moves_request_through_workflow(client, db_session, customer, customer_headers,
                                                   admin_user, admin_headers, make_mail_item):
    mail = await make_mail_item(customer)
    request_id = (await create_request(client, customer_headers, mail.id))["id"]

    response = await patch_request(client, admin_headers, request_id, "mark_reviewed", admin_notes="Checked")
    assert response.status_code == 200
    assert response.json()["status"] == "Reviewed"
    assert response.json()["reviewed_by"] == admin_user.id
    assert response.json()["admin_notes"] == "Checked"

    response = await patch_request(client, admin_headers, request_id, "start_processing")
    assert response.json()["status"] == "Processing"

    response = await patch_request(
        client, admin_headers, request_id, "mark_dispatched",
        courier="Royal Mail", tracking_number="RM123456789GB"
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "Dispatched"
    assert body["courier"] == "Royal Mail"
    assert body["tracking_number"] == "RM123456789GB"
    assert body["dispatched_at"] is not None

    response = await patch_request(client, admin_headers, request_id, "mark_delivered")
    assert response.json()["status"] == "Delivered"
    assert response.json()["delivered_at"] is not None

    await db_session.refresh(mail)
    assert mail.forwarding_status == "Delivered"

    actions = (await db_session.execute(
        select(AuditLog.action).where(AuditLog.target_type == "forwarding_request")
        .order_by(AuditLog.id)
    )).scalars().all()
    assert actions == [
        "FORWARDING_REQUESTED",
        "FORWARDING_REVIEWED",
        "FORWARDING_PROCESSING",
        "FORWARDING_DISPATCHED",
        "FORWARDING_DELIVERED",
    ]

    notifications = (await db_session.execute(
        select(Notification).where(Notification.user_id == customer.id).order_by(Notification.id)
    )).scalars().all()
    assert [n.metadata_payload["status"] for n in notifications] == ["Dispatched", "Delivered"]
    assert "RM123456789GB" in notifications[0].message


@pytest.mark.asyncio
async def test_courier_ignored_outside_dispatch(client, customer, customer_headers, admin_headers, make_mail_item):
    request_id = (await create_request(client, customer_headers, (await make_mail_item(customer)).id))["id"]

    response = await patch_request(
        client, admin_headers, request_id, "mark_reviewed", courier="DHL", tracking_number="X1"
    )

    assert response.status_code == 200
    assert response.json()["courier"] is None
    assert response.json()["tracking_number"] is None


@pytest.mark.asyncio
async def test_illegal_transition_rejected_without_mutation(client, db_session, customer, customer_headers,
                                                           admin_headers, make_mail_item):
    mail = await make_mail_item(customer)
    request_id = (await create_request(client, customer_headers, mail.id))["id"]

    response = await patch_request(client, admin_headers, request_id, "mark_delivered")

    assert response.status_code == 400
    body = response.json()
    assert body["ok"] is False
    assert body["error"] == "illegal_transition"
    assert body["details"] == {"from": "Requested", "action": "mark_delivered"}

    stored = (await db_session.execute(
        select(ForwardingRequest).where(ForwardingRequest.id == request_id)
    )).scalar_one()
    assert stored.status == ForwardingStatus.REQUESTED
    assert stored.delivered_at is None
    await db_session.refresh(mail)
    assert mail.forwarding_status == "Requested"


@pytest.mark.asyncio
async def test_terminal_request_cannot_be_cancelled(client, customer, customer_headers, admin_headers, make_mail_item):
    request_id = (await create_request(client, customer_headers, (await make_mail_item(customer)).id))["id"]
    assert (await patch_request(client, admin_headers, request_id, "cancel")).status_code == 200

    response = await patch_request(client, admin_headers, request_id, "cancel")

    assert response.status_code == 400
    assert response.json()["error"] == "illegal_transition"


@pytest.mark.asyncio
async def test_unknown_action_is_validation_error(client, customer, customer_headers, admin_headers, make_mail_item):
    request_id = (await create_request(client, customer_headers, (await make_mail_item(customer)).id))["id"]

    response = await patch_request(client, admin_headers, request_id, "teleport")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_customer_cannot_use_admin_queue(client, customer, customer_headers, make_mail_item):
    request_id = (await create_request(client, customer_headers, (await make_mail_item(customer)).id))["id"]

    response = await patch_request(client, customer_headers, request_id, "cancel")

    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


@pytest.mark.asyncio
async def test_unknown_request_returns_404(client, admin_headers):
    response = await patch_request(client, admin_headers, 9999, "cancel")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_stale_status_loses_race(client, db_session, customer, customer_headers,
                                       admin_user, admin_headers, make_mail_item):
    """An admin acting on an outdated view of the request gets a 409, not a double transition."""
    request_id = (await create_request(client, customer_headers, (await make_mail_item(customer)).id))["id"]

    # This session now holds the request as Requested
    stale = await ForwardingService.get(db_session, request_id)
    assert stale.status == ForwardingStatus.REQUESTED

    # Another admin reviews it first
    assert (await patch_request(client, admin_headers, request_id, "mark_reviewed")).status_code == 200

    with pytest.raises(ConcurrentUpdateError) as exc_info:
        await ForwardingService.apply_admin_action(
            db_session, request_id, admin_user,
            AdminForwardingUpdate(action=ForwardingAction.MARK_REVIEWED)
        )
    assert exc_info.value.status_code == 409

    fresh = (await db_session.execute(
        select(ForwardingRequest).where(ForwardingRequest.id == request_id)
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert fresh.status == ForwardingStatus.REVIEWED


@pytest.mark.asyncio
async def test_admin_queue_filters_and_search(client, customer, customer_headers, admin_headers,
                                              make_user, make_mail_item, headers_for):
    first = await create_request(client, customer_headers, (await make_mail_item(customer)).id)

    other = await make_user("bob@example.com")
    second = await create_request(
        client, headers_for(other), (await make_mail_item(other, subject="Parking fine")).id
    )
    await patch_request(client, admin_headers, second["id"], "cancel")

    response = await client.get("/api/admin/forwarding/requests?status=requested", headers=admin_headers)
    assert response.status_code == 200
    assert [r["id"] for r in response.json()["items"]] == [first["id"]]

    response = await client.get("/api/admin/forwarding/requests?status=ALL", headers=admin_headers)
    assert response.json()["total"] == 2

    response = await client.get("/api/admin/forwarding/requests?q=parking", headers=admin_headers)
    assert [r["id"] for r in response.json()["items"]] == [second["id"]]

    response = await client.get("/api/admin/forwarding/requests?q=BOB@example", headers=admin_headers)
    assert [r["id"] for r in response.json()["items"]] == [second["id"]]

    response = await client.get("/api/admin/forwarding/requests?limit=1000", headers=admin_headers)
    assert response.json()["limit"] == 100

    response = await client.get("/api/admin/forwarding/requests?status=lost", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_status"


@pytest.mark.asyncio
async def test_idempotency_key_replays_original_request(client, db_session, customer, customer_headers,
                                                        admin_headers, make_mail_item):
    mail = await make_mail_item(customer)
    headers = {**customer_headers, "Idempotency-Key": "client-key-1"}

    first = await client.post("/api/forwarding/requests", json=forwarding_body(mail.id), headers=headers)
    assert first.status_code == 201
    # Cancelled requests are no longer open, so only the key can match
    assert (await patch_request(client, admin_headers, first.json()["id"], "cancel")).status_code == 200

    again = await client.post("/api/forwarding/requests", json=forwarding_body(mail.id), headers=headers)

    assert again.status_code == 200
    assert again.json()["id"] == first.json()["id"]
    assert again.json()["status"] == "Cancelled"

    stored = (await db_session.execute(select(ForwardingRequest))).scalars().all()
    assert [r.idem_key for r in stored] == ["client-key-1"]
    charges = (await db_session.execute(select(ForwardingCharge))).scalars().all()
    assert len(charges) == 1


@pytest.mark.asyncio
async def test_idempotency_key_reused_for_other_mail(client, customer, customer_headers, make_mail_item):
    headers = {**customer_headers, "Idempotency-Key": "client-key-2"}
    first_mail = await make_mail_item(customer)
    second_mail = await make_mail_item(customer, subject="Another letter")
    assert (await client.post(
        "/api/forwarding/requests", json=forwarding_body(first_mail.id), headers=headers
    )).status_code == 201

    response = await client.post("/api/forwarding/requests", json=forwarding_body(second_mail.id), headers=headers)

    assert response.status_code == 409
    assert response.json()["error"] == "idempotency_key_conflict"


@pytest.mark.asyncio
async def test_server_generates_idempotency_key(client, db_session, customer, customer_headers, make_mail_item):
    data = await create_request(client, customer_headers, (await make_mail_item(customer)).id)

    stored = (await db_session.execute(
        select(ForwardingRequest).where(ForwardingRequest.id == data["id"])
    )).scalar_one()
    assert stored.idem_key.startswith("srv-")


@pytest.mark.asyncio
async def test_blank_courier_is_not_stored(client, customer, customer_headers, admin_headers, make_mail_item):
    request_id = (await create_request(client, customer_headers, (await make_mail_item(customer)).id))["id"]
    await patch_request(client, admin_headers, request_id, "start_processing")

    response = await patch_request(
        client, admin_headers, request_id, "mark_dispatched", courier="   ", tracking_number="  RM9  "
    )

    assert response.status_code == 200
    assert response.json()["courier"] is None
    assert response.json()["tracking_number"] == "RM9"


@pytest.mark.asyncio
async def test_response_lists_allowed_actions(client, customer, customer_headers, admin_headers, make_mail_item):
    data = await create_request(client, customer_headers, (await make_mail_item(customer)).id)
    assert data["allowed_actions"] == ["mark_reviewed", "start_processing", "cancel"]

    response = await patch_request(client, admin_headers, data["id"], "cancel")

    assert response.json()["allowed_actions"] == []

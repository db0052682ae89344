"""
Tests for the customer's read views: billing, KYC status, notifications
and mail scans.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from backend.app.core.clock import utcnow
from backend.app.models.billing import Invoice
from backend.app.models.billing_enums import InvoiceStatus
from backend.app.models.enums import KycStatus
from backend.app.models.notification import Notification, NotificationType
from backend.app.services.notification_service import NotificationService


async def add_invoice(db_session, user, number: str, amount: int, days_ago: int) -> Invoice:
    invoice = Invoice(
        user_id=user.id,
        invoice_number=number,
        amount_pence=amount,
        status=InvoiceStatus.PAID,
        paid_at=utcnow() - timedelta(days=days_ago),
        created_at=utcnow() - timedelta(days=days_ago),
    )
    db_session.add(invoice)
    await db_session.commit()
    return invoice


async def add_notification(db_session, user, title: str) -> Notification:
    notif = await NotificationService.create_notification(
        db_session, user.id, title, f"{title} body", type=NotificationType.MAIL_UPDATE
    )
    await db_session.commit()
    return notif


# --- Billing ---

@pytest.mark.asyncio
async def test_billing_overview(client, db_session, customer, customer_headers, make_user, make_mail_item):
    mail = await make_mail_item(customer)
    official = await make_mail_item(customer, tag="HMRC")
    for item in (mail, official):
        response = await client.post("/api/forwarding/requests", json={
            "mail_item_id": item.id, "to_name": "Jane Doe", "address1": "1 High Street",
            "city": "Leeds", "postal": "LS1 1AA",
        }, headers=customer_headers)
        assert response.status_code == 201

    await add_invoice(db_session, customer, "VAH-2026-000001", 999, days_ago=40)
    await add_invoice(db_session, customer, "VAH-2026-000002", 999, days_ago=10)
    other = await make_user("other@example.com")
    await add_invoice(db_session, other, "VAH-2026-000003", 5000, days_ago=1)

    response = await client.get("/api/billing/overview", headers=customer_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["plan_status"] == "pending"
    assert body["pending_charges_pence"] == 200
    assert body["latest_invoice"]["invoice_number"] == "VAH-2026-000002"


@pytest.mark.asyncio
async def test_billing_overview_without_history(client, customer_headers):
    response = await client.get("/api/billing/overview", headers=customer_headers)

    assert response.status_code == 200
    assert response.json()["pending_charges_pence"] == 0
    assert response.json()["latest_invoice"] is None


@pytest.mark.asyncio
async def test_invoices_listed_newest_first(client, db_session, customer, customer_headers, make_user):
    await add_invoice(db_session, customer, "VAH-2026-000001", 999, days_ago=40)
    await add_invoice(db_session, customer, "VAH-2026-000002", 1099, days_ago=10)
    other = await make_user("other@example.com")
    await add_invoice(db_session, other, "VAH-2026-000003", 5000, days_ago=1)

    response = await client.get("/api/billing/invoices", headers=customer_headers)

    assert response.status_code == 200
    assert [i["invoice_number"] for i in response.json()] == ["VAH-2026-000002", "VAH-2026-000001"]
    assert response.json()[0]["status"] == "paid"

    response = await client.get("/api/billing/invoices?limit=1", headers=customer_headers)
    assert len(response.json()) == 1


# --- KYC ---

@pytest.mark.asyncio
async def test_kyc_status_reports_review(client, make_user, headers_for):
    approved_at = utcnow() - timedelta(days=2)
    user = await make_user(
        "verified@example.com", kyc_status=KycStatus.APPROVED,
        kyc_approved_at=approved_at, sumsub_applicant_id="app-77"
    )

    response = await client.get("/api/kyc/status", headers=headers_for(user))

    assert response.status_code == 200
    body = response.json()
    assert body["kyc_status"] == "approved"
    assert body["applicant_id"] == "app-77"
    assert body["kyc_approved_at"] is not None
    assert body["rejection_reason"] is None


@pytest.mark.asyncio
async def test_kyc_status_for_new_customer(client, customer_headers):
    response = await client.get("/api/kyc/status", headers=customer_headers)

    assert response.status_code == 200
    assert response.json()["kyc_status"] == "not_started"


@pytest.mark.asyncio
async def test_kyc_status_requires_login(client):
    response = await client.get("/api/kyc/status")
    assert response.status_code == 401


# --- Notifications ---

@pytest.mark.asyncio
async def test_notifications_list_and_mark_read(client, db_session, customer, customer_headers):
    first = await add_notification(db_session, customer, "Letter scanned")
    second = await add_notification(db_session, customer, "Letter dispatched")

    response = await client.get("/api/notifications", headers=customer_headers)
    assert response.status_code == 200
    assert {n["id"] for n in response.json()} == {first.id, second.id}

    response = await client.patch(f"/api/notifications/{first.id}/read", headers=customer_headers)
    assert response.status_code == 200
    assert response.json() == {"ok": True}

    response = await client.get("/api/notifications?unread_only=true", headers=customer_headers)
    assert [n["id"] for n in response.json()] == [second.id]


@pytest.mark.asyncio
async def test_notifications_read_all(client, db_session, customer, customer_headers, make_user):
    await add_notification(db_session, customer, "One")
    await add_notification(db_session, customer, "Two")
    other = await make_user("other@example.com")
    theirs = await add_notification(db_session, other, "Not yours")

    response = await client.patch("/api/notifications/read-all", headers=customer_headers)

    assert response.status_code == 200
    assert response.json() == {"ok": True, "count": 2}

    stored = (await db_session.execute(
        select(Notification).where(Notification.id == theirs.id).execution_options(populate_existing=True)
    )).scalar_one()
    assert stored.is_read is False


@pytest.mark.asyncio
async def test_cannot_mark_someone_elses_notification(client, db_session, customer_headers, make_user):
    other = await make_user("other@example.com")
    theirs = await add_notification(db_session, other, "Not yours")

    response = await client.patch(f"/api/notifications/{theirs.id}/read", headers=customer_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"
    await db_session.refresh(theirs)
    assert theirs.is_read is False


# --- Mail scans ---

@pytest.mark.asyncio
async def test_scan_url_returned_to_owner(client, customer, customer_headers, make_mail_item):
    mail = await make_mail_item(customer, scan_url="https://scans.example.com/letter-1.pdf")

    response = await client.get(f"/api/mail-items/{mail.id}/scan-url", headers=customer_headers)

    assert response.status_code == 200
    assert response.json() == {"ok": True, "url": "https://scans.example.com/letter-1.pdf"}


@pytest.mark.asyncio
async def test_scan_url_missing(client, customer, customer_headers, make_mail_item):
    mail = await make_mail_item(customer)

    response = await client.get(f"/api/mail-items/{mail.id}/scan-url", headers=customer_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "scan_not_available"


@pytest.mark.asyncio
async def test_scan_url_of_other_customer_hidden(client, customer_headers, make_user, make_mail_item):
    other = await make_user("other@example.com")
    mail = await make_mail_item(other, scan_url="https://scans.example.com/theirs.pdf")

    response = await client.get(f"/api/mail-items/{mail.id}/scan-url", headers=customer_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "mail_item_not_found"

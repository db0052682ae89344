"""
Customer billing endpoints.

Read-only views over the plan state kept current by the Stripe and
GoCardless webhooks.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from typing import List

from backend.app.db.session import get_db
from backend.app.models.billing import Invoice, ForwardingCharge
from backend.app.models.billing_enums import ChargeStatus
from backend.app.models.user import User
from backend.app.schemas.billing import InvoiceResponse, BillingOverviewResponse
from backend.app.core.dependencies import get_current_account

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.get("/overview", response_model=BillingOverviewResponse)
async def billing_overview(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    """Plan state, payment failure grace and unbilled forwarding charges."""
    pending = await db.execute(
        select(func.coalesce(func.sum(ForwardingCharge.amount_pence), 0)).where(
            ForwardingCharge.user_id == account.id,
            ForwardingCharge.status == ChargeStatus.PENDING
        )
    )
    latest = await db.execute(
        select(Invoice).where(Invoice.user_id == account.id)
        .order_by(desc(Invoice.created_at), desc(Invoice.id)).limit(1)
    )
    latest_invoice = latest.scalar_one_or_none()

    return BillingOverviewResponse(
        plan_status=account.plan_status,
        subscription_status=account.subscription_status,
        plan_start_date=account.plan_start_date,
        payment_failed_at=account.payment_failed_at,
        payment_retry_count=account.payment_retry_count or 0,
        payment_grace_until=account.payment_grace_until,
        pending_charges_pence=pending.scalar_one(),
        latest_invoice=InvoiceResponse.model_validate(latest_invoice) if latest_invoice else None,
    )


@router.get("/invoices", response_model=List[InvoiceResponse])
async def list_invoices(
    limit: int = Query(50, ge=1, le=100),
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    """List the caller's invoices, newest first."""
    result = await db.execute(
        select(Invoice).where(Invoice.user_id == account.id)
        .order_by(desc(Invoice.created_at), desc(Invoice.id)).limit(limit)
    )
    return result.scalars().all()

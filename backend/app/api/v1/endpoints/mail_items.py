"""
Customer mail item endpoints.

Only the caller's own, non-deleted letters are visible; anything else is a 404.
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from backend.app.db.session import get_db
from backend.app.models.mail_item import MailItem
from backend.app.models.user import User
from backend.app.schemas.mail import MailItemResponse, MailItemListResponse, MailItemUpdate, ScanUrlResponse
from backend.app.core.dependencies import get_current_account
from backend.app.core.exceptions import BadRequestError, ResourceNotFoundError
from backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/mail-items", tags=["Mail"])


async def _owned_mail_item(db: AsyncSession, mail_item_id: int, account: User) -> MailItem:
    result = await db.execute(
        select(MailItem).where(
            MailItem.id == mail_item_id,
            MailItem.user_id == account.id,
            MailItem.deleted.is_(False)
        )
    )
    mail = result.scalar_one_or_none()
    if not mail:
        raise ResourceNotFoundError("Mail item", mail_item_id, error_code="mail_item_not_found")
    return mail


@router.get("", response_model=MailItemListResponse)
async def list_mail_items(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    """List the caller's mail, most recently received first."""
    base = select(MailItem).where(MailItem.user_id == account.id, MailItem.deleted.is_(False))
    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()

    result = await db.execute(
        base.order_by(desc(MailItem.received_at), desc(MailItem.id)).offset(offset).limit(limit)
    )
    return MailItemListResponse(
        items=[MailItemResponse.model_validate(m) for m in result.scalars().all()],
        total=total,
        limit=limit,
        offset=offset
    )


@router.get("/{mail_item_id}", response_model=MailItemResponse)
async def get_mail_item(
    mail_item_id: int,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    mail = await _owned_mail_item(db, mail_item_id, account)
    return MailItemResponse.model_validate(mail)


@router.patch("/{mail_item_id}", response_model=MailItemResponse)
async def update_mail_item(
    mail_item_id: int,
    body: MailItemUpdate,
    request: Request,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    """Mark a letter read or unread. No other field is customer-editable."""
    if body.is_read is None:
        raise BadRequestError("no_changes", "No updatable fields supplied")

    mail = await _owned_mail_item(db, mail_item_id, account)
    mail.is_read = body.is_read

    await log_event(
        db=db,
        action=AuditAction.MAIL_UPDATED,
        actor_id=account.id,
        actor_email=account.email,
        target_type="mail_item",
        target_id=mail.id,
        metadata={"is_read": body.is_read},
        ip_address=request.client.host if request.client else None,
        commit=False
    )
    await db.commit()
    await db.refresh(mail)
    return MailItemResponse.model_validate(mail)


@router.get("/{mail_item_id}/scan-url", response_model=ScanUrlResponse)
async def get_scan_url(
    mail_item_id: int,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    mail = await _owned_mail_item(db, mail_item_id, account)
    if not mail.scan_url:
        raise ResourceNotFoundError("Scan", mail_item_id, error_code="scan_not_available")
    return ScanUrlResponse(url=mail.scan_url)

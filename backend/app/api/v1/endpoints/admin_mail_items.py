"""
Admin mail item endpoints: physical destruction logging.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.schemas.mail import MarkDestroyedRequest, DestructionLogResponse
from backend.app.core.guards import require_admin
from backend.app.domain.destruction.service import DestructionService

router = APIRouter(prefix="/admin/mail-items", tags=["Admin - Mail"])


@router.post("/{mail_item_id}/mark-destroyed", response_model=DestructionLogResponse)
async def mark_destroyed(
    mail_item_id: int,
    request: Request,
    body: Optional[MarkDestroyedRequest] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Record that a letter past its retention window was shredded.

    The log row is attributed to the calling admin; an identity that would
    render as "Unknown" is refused with 400 invalid_attribution.
    """
    body = body or MarkDestroyedRequest()
    log = await DestructionService.mark_destroyed_by_admin(
        db,
        mail_item_id,
        admin,
        notes=body.notes,
        method=body.destruction_method,
        ip_address=request.client.host if request.client else None
    )
    return DestructionLogResponse.model_validate(log)

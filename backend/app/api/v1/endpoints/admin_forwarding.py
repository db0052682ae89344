"""
Admin forwarding queue.

PATCH moves a request through Requested -> Reviewed -> Processing ->
Dispatched -> Delivered (or Cancelled before dispatch). Pairs outside the
transition table are rejected with 400 illegal_transition and change nothing.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.schemas.forwarding import (
    AdminForwardingUpdate, ForwardingRequestResponse, ForwardingRequestListResponse
)
from backend.app.core.guards import require_admin
from backend.app.domain.forwarding.service import ForwardingService, clamp_limit

router = APIRouter(prefix="/admin/forwarding", tags=["Admin - Forwarding"])


@router.get("/requests", response_model=ForwardingRequestListResponse)
async def list_forwarding_queue(
    status: Optional[str] = Query(None, description="Status name, case-insensitive, or 'all'"),
    q: Optional[str] = Query(None, description="Free-text search"),
    limit: Optional[int] = Query(None, description="Page size, clamped to 1..100"),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    limit = clamp_limit(limit)
    items, total = await ForwardingService.admin_list(db, status=status, q=q, limit=limit, offset=offset)
    return ForwardingRequestListResponse(
        items=[ForwardingRequestResponse.model_validate(r) for r in items],
        total=total,
        limit=limit,
        offset=offset
    )


@router.get("/requests/{request_id}", response_model=ForwardingRequestResponse)
async def get_forwarding_request(
    request_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    request = await ForwardingService.get(db, request_id)
    return ForwardingRequestResponse.model_validate(request)


@router.patch("/requests/{request_id}", response_model=ForwardingRequestResponse)
async def update_forwarding_request(
    request_id: int,
    body: AdminForwardingUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Apply an admin action to a forwarding request.

    Errors:
        400 illegal_transition: action not allowed from the current status
        404 not_found: unknown request
        409 concurrent_update: another admin changed the status first
    """
    request = await ForwardingService.apply_admin_action(db, request_id, admin, body)
    return ForwardingRequestResponse.model_validate(request)

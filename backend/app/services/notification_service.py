"""
Notification Service.

Handles creation and state management of in-app notifications.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update
from typing import Optional, Dict, Any

from backend.app.core.clock import utcnow
from backend.app.models.notification import Notification, NotificationType
from backend.app.models.forwarding_enums import ForwardingStatus


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            metadata_payload=metadata
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def notify_forwarding_update(
        db: AsyncSession,
        user_id: int,
        request_id: int,
        status: ForwardingStatus,
        courier: Optional[str] = None,
        tracking_number: Optional[str] = None
    ) -> Optional[Notification]:
        """Tell the owner their letter left the mailroom or arrived."""
        if status == ForwardingStatus.DISPATCHED:
            message = "Your mail has been dispatched"
            if courier:
                message += f" via {courier}"
            if tracking_number:
                message += f" (tracking: {tracking_number})"
        elif status == ForwardingStatus.DELIVERED:
            message = "Your forwarded mail has been delivered"
        else:
            return None

        return await NotificationService.create_notification(
            db,
            user_id=user_id,
            title=f"Forwarding {status.value.lower()}",
            message=message,
            type=NotificationType.FORWARDING_UPDATE,
            metadata={"forwarding_request_id": request_id, "status": status.value}
        )

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False)
        ).values(
            is_read=True,
            read_at=utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount

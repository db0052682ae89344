"""
Audit Log Database Model.

Tracks security events, admin actions on mail and forwarding, and webhook
driven account changes.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged include:
    - LOGIN_SUCCESS / LOGIN_FAILED / LOGOUT
    - FORWARDING_* status changes
    - PHYSICAL_DESTRUCTION_CONFIRMED
    - KYC and plan status changes applied from webhooks
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system / webhook actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_email = Column(String(255), nullable=True)

    action = Column(String(100), nullable=False, index=True)

    # What the action touched
    target_type = Column(String(50), nullable=True)
    target_id = Column(Integer, index=True, nullable=True)

    meta_data = Column(JSON, nullable=True)
    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_email}, target={self.target_type}:{self.target_id})>"

"""
Forwarding request database model.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.forwarding_enums import ForwardingStatus
from backend.app.domain.forwarding.state import allowed_actions as actions_for_status


class ForwardingRequest(Base):
    """
    Forwarding request model.

    Created by the mail owner, advanced by admins through the forwarding
    workflow and never deleted. Each status has its own timestamp column.
    """
    __tablename__ = "forwarding_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    mail_item_id = Column(Integer, ForeignKey("mail_items.id"), nullable=False, index=True)

    status = Column(Enum(ForwardingStatus), default=ForwardingStatus.REQUESTED, nullable=False, index=True)

    # Destination
    to_name = Column(String(255), nullable=False)
    address1 = Column(String(255), nullable=False)
    address2 = Column(String(255), nullable=True)
    city = Column(String(120), nullable=False)
    state = Column(String(120), nullable=True)
    postal = Column(String(30), nullable=False)
    country = Column(String(2), default="GB", nullable=False)

    reason = Column(String(500), nullable=True)
    method = Column(String(30), default="standard", nullable=False)
    idem_key = Column(String(64), unique=True, nullable=True)

    # Fulfilment
    courier = Column(String(100), nullable=True)
    tracking_number = Column(String(120), nullable=True)
    admin_notes = Column(Text, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Status timestamps
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    processing_at = Column(DateTime(timezone=True), nullable=True)
    dispatched_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def address(self) -> str:
        """Destination formatted one part per line."""
        parts = [self.to_name, self.address1, self.address2, self.city, self.state, self.postal, self.country]
        return "\n".join(p for p in parts if p)

    @property
    def allowed_actions(self) -> list:
        return actions_for_status(self.status)

    def __repr__(self):
        return f"<ForwardingRequest(id={self.id}, mail={self.mail_item_id}, status='{self.status.value}')>"

"""
Webhook log database model.

Every inbound provider event is recorded; the (provider, external_event_id)
pair makes redelivered events detectable.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.billing_enums import WebhookStatus


class WebhookLog(Base):
    __tablename__ = "webhook_logs"
    __table_args__ = (
        UniqueConstraint("provider", "external_event_id", name="uq_webhook_provider_event"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    provider = Column(String(30), nullable=False, index=True)
    event_type = Column(String(100), nullable=True)
    external_event_id = Column(String(255), nullable=True)
    status = Column(Enum(WebhookStatus), default=WebhookStatus.RECEIVED, nullable=False)
    user_id = Column(Integer, nullable=True, index=True)
    error = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)

    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<WebhookLog(provider='{self.provider}', event='{self.event_type}', status='{self.status.value}')>"

"""
Mail item database model.

A scanned letter received at the registered address on behalf of a user.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base


# Tags for government post, forwarded free of charge
OFFICIAL_MAIL_TAGS = frozenset({"HMRC", "COMPANIES HOUSE", "COMPANIES_HOUSE"})


class MailItem(Base):
    """
    Mail item model.

    `forwarding_status` mirrors the status of the latest forwarding request
    so the dashboard can render it without a join ("No" when none exists).
    """
    __tablename__ = "mail_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    subject = Column(String(255), nullable=True)
    sender_name = Column(String(255), nullable=True)
    tag = Column(String(50), nullable=True)
    status = Column(String(30), default="received", nullable=False)
    scan_url = Column(String(1024), nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    deleted = Column(Boolean, default=False, nullable=False, index=True)
    forwarding_status = Column(String(30), default="No", nullable=False)

    received_at = Column(DateTime(timezone=True), nullable=True)
    physical_destruction_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_official(self) -> bool:
        return (self.tag or "").strip().upper() in OFFICIAL_MAIL_TAGS

    def __repr__(self):
        return f"<MailItem(id={self.id}, user={self.user_id}, tag='{self.tag}')>"

"""
Destruction log database model.

Compliance record of every physically destroyed letter. Each record must
name the staff member (or the automated job) that carried it out.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base


class DestructionLog(Base):
    __tablename__ = "destruction_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    mail_item_id = Column(Integer, ForeignKey("mail_items.id"), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_display_name = Column(String(255), nullable=True)

    receipt_date = Column(DateTime(timezone=True), nullable=False)
    eligibility_date = Column(DateTime(timezone=True), nullable=False)
    recorded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    actor_type = Column(String(20), nullable=False)  # "admin" or "system"
    action_source = Column(String(50), nullable=False)
    staff_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    staff_name = Column(String(255), nullable=False)
    staff_initials = Column(String(10), nullable=False)
    notes = Column(Text, nullable=True)
    destruction_method = Column(String(100), nullable=False)

    def __repr__(self):
        return f"<DestructionLog(mail={self.mail_item_id}, staff='{self.staff_initials}')>"

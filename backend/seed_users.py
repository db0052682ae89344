"""
Database seeding script for development.

Creates an ADMIN account and a demo CUSTOMER with a few letters in the
mailbox. Run this script after the database is set up but before first use.
"""

import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.core.clock import utcnow
from backend.app.core.security import get_password_hash
from backend.app.models.user import User
from backend.app.models.mail_item import MailItem
from backend.app.models.enums import UserRole, KycStatus, PlanStatus
# Registers the remaining tables on Base
from backend.app import main  # noqa: F401
from sqlalchemy import select


async def seed_users():
    """
    Seed initial accounts.

    Creates:
    - 1 ADMIN user (mailroom staff)
    - 1 CUSTOMER with approved KYC, an active plan and three letters
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("Starting user seeding...")

        result = await db.execute(select(User).where(User.email == "admin@virtualmailbox.co.uk"))
        if result.scalar_one_or_none():
            print("ADMIN user already exists, skipping seeding")
            return

        admin_user = User(
            email="admin@virtualmailbox.co.uk",
            first_name="Mail",
            last_name="Room",
            hashed_password=get_password_hash("admin12345"),
            role=UserRole.ADMIN,
            kyc_status=KycStatus.APPROVED,
            plan_status=PlanStatus.ACTIVE,
            is_active=True,
        )
        db.add(admin_user)

        customer = User(
            email="demo@virtualmailbox.co.uk",
            first_name="Demo",
            last_name="Customer",
            company_name="Demo Trading Ltd",
            hashed_password=get_password_hash("demo12345"),
            role=UserRole.CUSTOMER,
            kyc_status=KycStatus.APPROVED,
            kyc_approved_at=utcnow(),
            plan_status=PlanStatus.ACTIVE,
            subscription_status=PlanStatus.ACTIVE,
            plan_start_date=utcnow(),
            is_active=True,
        )
        db.add(customer)
        await db.flush()

        now = utcnow()
        db.add_all([
            MailItem(user_id=customer.id, subject="Corporation Tax reminder", sender_name="HMRC",
                     tag="HMRC", received_at=now - timedelta(days=2)),
            MailItem(user_id=customer.id, subject="Confirmation statement due", sender_name="Companies House",
                     tag="COMPANIES HOUSE", received_at=now - timedelta(days=5)),
            MailItem(user_id=customer.id, subject="Bank statement", sender_name="Example Bank",
                     tag="BANK", received_at=now - timedelta(days=40)),
        ])

        await db.commit()

        print("\nUser seeding completed successfully!")
        print("\nSeeded users:")
        print("  - ADMIN:    admin@virtualmailbox.co.uk / admin12345")
        print("  - CUSTOMER: demo@virtualmailbox.co.uk / demo12345")
        print("\nNote: further customers register via POST /api/auth/signup")


if __name__ == "__main__":
    asyncio.run(seed_users())

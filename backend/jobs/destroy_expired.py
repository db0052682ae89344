"""
Retention job: log system destruction for letters past the retention window.

Run with:
    python -m backend.jobs.destroy_expired
"""

import asyncio
import logging

from backend.app.db.session import AsyncSessionLocal, engine
from backend.app.domain.destruction.service import DestructionService
# Registers every table on Base before querying
from backend.app import main  # noqa: F401

logger = logging.getLogger("virtual_mailbox.jobs.destroy_expired")


async def run() -> int:
    async with AsyncSessionLocal() as db:
        destroyed = await DestructionService.destroy_expired(db)
    await engine.dispose()
    logger.info("Destroyed mail items: %s", destroyed or "none")
    return len(destroyed)


if __name__ == "__main__":
    asyncio.run(run())

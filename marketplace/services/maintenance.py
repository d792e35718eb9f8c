"""
Background maintenance.

Periodically:
- purges messages past the retention horizon
- reconciles slots left booked by cancelled/rejected/missing bookings

Runs as an asyncio task in the app lifespan.
Uses the synchronous DB session (via asyncio.to_thread).
"""

import asyncio
import logging

from ..config import Settings
from ..database import Database
from .availability import reconcile_slots
from .messaging import purge_expired_messages

logger = logging.getLogger(__name__)


def run_maintenance(database: Database, settings: Settings) -> dict[str, int]:
    """One maintenance pass (synchronous)."""
    db = database.session()
    try:
        purged = purge_expired_messages(db, settings.message_retention_days)
        repaired = reconcile_slots(db)
    finally:
        db.close()

    if purged or repaired:
        logger.info(f"Maintenance pass: purged={purged} slots_repaired={repaired}")
    return {"messages_purged": purged, "slots_repaired": repaired}


async def maintenance_loop(database: Database, settings: Settings) -> None:
    """Periodic loop; errors are logged and the loop keeps going."""
    logger.info("maintenance_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(run_maintenance, database, settings)
            except asyncio.CancelledError:
                logger.info("maintenance_loop cancelled")
                raise
            except Exception:
                logger.exception("maintenance_loop error")

            await asyncio.sleep(settings.maintenance_interval_seconds)
    except asyncio.CancelledError:
        pass

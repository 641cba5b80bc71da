import asyncio
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from gclients import config
from gclients.checkout.checkout_service import resume_incomplete_checkouts
from gclients.notifications.mailer import Mailer
from gclients.notifications.notification_service import deliver_queued, retry_failed_messages

logger = logging.getLogger(__name__)


async def reconcile(db: AsyncIOMotorDatabase, mailer: Mailer) -> dict:
    """
    One reconciliation pass

    Finishes checkouts that stopped half way, delivers what they queued,
    then re-sends anything left undelivered in the outbox.
    """
    checkouts = await resume_incomplete_checkouts(db)
    for message_id in checkouts["message_ids"]:
        await deliver_queued(db, mailer, message_id)

    outbox = await retry_failed_messages(db, mailer)
    return {
        "checkouts": {"resumed": checkouts["resumed"], "failed": checkouts["failed"]},
        "outbox": outbox
    }


async def reconciler_worker(db: AsyncIOMotorDatabase, mailer: Mailer, interval: int = config.OUTBOX_RETRY_INTERVAL_SECONDS):
    """Background worker started with the app; runs a pass every `interval` seconds"""
    while True:
        try:
            await reconcile(db, mailer)
        except asyncio.CancelledError:
            raise
        except Exception:
            # keep the loop alive; next pass tries again
            logger.exception("Reconciliation pass failed")

        await asyncio.sleep(interval)

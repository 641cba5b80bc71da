"""
Email outbox

Every outgoing email is written to `email_outbox` first and then delivered.
Delivery outcome is recorded on the entry (sent / failed), so a failed
message survives the request and is picked up again by the reconciler.

Two ways out:
- send_email: deliver inline, raise MailDeliveryError on failure
- queue_email + deliver_queued: persist now, deliver after the response
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field

from gclients import config
from gclients.database import generate_id, serialize_many, serialize_mongo
from gclients.notifications.mailer import MailDeliveryError, Mailer
from gclients.notifications.templates import EmailContent

logger = logging.getLogger(__name__)

# Pending entries older than this are treated as abandoned and re-sent
STALE_PENDING_AFTER = timedelta(minutes=5)


class OutboxStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    DEAD = "dead"  # gave up after MAX_DELIVERY_ATTEMPTS


class OutboxMessage(BaseModel):
    message_id: str  # MSG_XXXXXX
    to_email: str
    subject: str
    text_body: str
    html_body: Optional[str] = None
    kind: str
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    sent_at: Optional[datetime] = None

    class Config:
        use_enum_values = True


# ==================== DELIVERY ====================

async def _deliver(db: AsyncIOMotorDatabase, mailer: Mailer, message: dict) -> None:
    try:
        await mailer.send(message["to_email"], message["subject"], message["text_body"], message.get("html_body"))
    except MailDeliveryError as e:
        attempts = message.get("attempts", 0) + 1
        status = OutboxStatus.DEAD if attempts >= config.MAX_DELIVERY_ATTEMPTS else OutboxStatus.FAILED
        await db.email_outbox.update_one(
            {"message_id": message["message_id"]},
            {"$set": {"status": status.value, "last_error": str(e.__cause__ or e)},
             "$inc": {"attempts": 1}}
        )
        if status == OutboxStatus.DEAD:
            logger.error("Email %s to %s marked dead after %d attempts", message["message_id"], message["to_email"], attempts)
        raise

    await db.email_outbox.update_one(
        {"message_id": message["message_id"]},
        {"$set": {"status": OutboxStatus.SENT.value, "sent_at": datetime.utcnow(), "last_error": None},
         "$inc": {"attempts": 1}}
    )


async def queue_email(
    db: AsyncIOMotorDatabase,
    to_email: str,
    content: EmailContent,
    kind: str,
    message_id: Optional[str] = None
) -> dict:
    """Persist a pending outbox entry"""
    message = OutboxMessage(
        message_id=message_id or generate_id("MSG"),
        to_email=to_email,
        subject=content.subject,
        text_body=content.text,
        html_body=content.html,
        kind=kind,
    ).dict()
    await db.email_outbox.insert_one(dict(message))
    return message


async def deliver_queued(db: AsyncIOMotorDatabase, mailer: Mailer, message_id: str) -> bool:
    """
    Background-task entry point: deliver one queued entry
    Failures are logged and left in the outbox for the reconciler
    """
    message = serialize_mongo(await db.email_outbox.find_one({"message_id": message_id}))
    if not message or message["status"] == OutboxStatus.SENT.value:
        return True
    if message["status"] == OutboxStatus.DEAD.value:
        return False

    try:
        await _deliver(db, mailer, message)
    except MailDeliveryError:
        logger.warning("Email %s (%s) to %s failed, left for retry", message_id, message["kind"], message["to_email"])
        return False

    logger.info("Email %s (%s) delivered to %s", message_id, message["kind"], message["to_email"])
    return True


async def send_email(
    db: AsyncIOMotorDatabase,
    mailer: Mailer,
    to_email: str,
    content: EmailContent,
    kind: str
) -> str:
    """
    Persist the message, then deliver it inline

    Returns:
        message_id of the outbox entry

    Raises:
        MailDeliveryError: delivery failed (the entry stays in the outbox as failed)
    """
    message = await queue_email(db, to_email, content, kind)
    await _deliver(db, mailer, message)
    logger.info("Email %s (%s) delivered to %s", message["message_id"], kind, to_email)
    return message["message_id"]


# ==================== RECONCILER ====================

async def list_undelivered_messages(
    db: AsyncIOMotorDatabase,
    limit: int = 100,
    include_dead: bool = False
) -> List[dict]:
    """
    Failed entries plus pending ones nobody finished sending

    Entries with the fewest attempts come first so a backlog of bouncing
    addresses cannot starve newer messages. Dead entries are only listed
    on request.
    """
    stale_before = datetime.utcnow() - STALE_PENDING_AFTER
    clauses = [
        {"status": OutboxStatus.FAILED.value, "attempts": {"$lt": config.MAX_DELIVERY_ATTEMPTS}},
        {"status": OutboxStatus.PENDING.value, "created_at": {"$lt": stale_before}}
    ]
    if include_dead:
        clauses.append({"status": {"$in": [OutboxStatus.FAILED.value, OutboxStatus.DEAD.value]}})
    cursor = db.email_outbox.find({"$or": clauses}).sort([("attempts", 1), ("created_at", 1)]).limit(limit)
    return serialize_many(await cursor.to_list(length=limit))


async def retry_failed_messages(db: AsyncIOMotorDatabase, mailer: Mailer, limit: int = 100) -> dict:
    """Re-send retryable outbox entries, least-attempted first"""
    sent = 0
    failed = 0

    for message in await list_undelivered_messages(db, limit):
        try:
            await _deliver(db, mailer, message)
            sent += 1
        except MailDeliveryError:
            failed += 1

    if sent or failed:
        logger.info("Outbox retry: %d sent, %d still failing", sent, failed)
    return {"retried": sent + failed, "sent": sent, "failed": failed}


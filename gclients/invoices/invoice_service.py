import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from gclients import config
from gclients.database import generate_id, serialize_many, serialize_mongo
from gclients.errors import Conflict, NotFound, ValidationError
from gclients.invoices.invoice_models import Invoice, InvoiceStatus, encode_payment_details
from gclients.invoices.invoice_schemas import InvoiceUpdate

logger = logging.getLogger(__name__)


def _naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    # Timestamps are stored as naive UTC
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)

# ==================== LOOKUPS ====================

async def get_invoice(db: AsyncIOMotorDatabase, invoice_id: str) -> Optional[dict]:
    return serialize_mongo(await db.invoices.find_one({"invoice_id": invoice_id}))

async def require_invoice(db: AsyncIOMotorDatabase, invoice_id: str) -> dict:
    invoice = await get_invoice(db, invoice_id)
    if not invoice:
        raise NotFound("Invoice not found")
    return invoice

async def list_invoices(
    db: AsyncIOMotorDatabase,
    learner_id: Optional[str] = None,
    status: Optional[InvoiceStatus] = None
) -> List[dict]:
    query = {}
    if learner_id:
        query["learner_id"] = learner_id
    if status:
        query["status"] = status.value
    cursor = db.invoices.find(query).sort("created_at", -1)
    return serialize_many(await cursor.to_list(length=None))

async def paid_totals_by_learner(db: AsyncIOMotorDatabase) -> Dict[str, float]:
    """learner_id -> sum of paid invoice amounts"""
    totals: Dict[str, float] = {}
    cursor = db.invoices.find({"status": InvoiceStatus.PAID.value}, {"learner_id": 1, "amount": 1})
    async for invoice in cursor:
        totals[invoice["learner_id"]] = totals.get(invoice["learner_id"], 0) + (invoice.get("amount") or 0)
    return totals

# ==================== WRITES ====================

async def create_invoice(
    db: AsyncIOMotorDatabase,
    learner_id: str,
    amount: float,
    status: InvoiceStatus = InvoiceStatus.UNPAID,
    track_id: Optional[str] = None,
    course_id: Optional[str] = None,
    due_date: Optional[datetime] = None,
    payment_details: Optional[dict] = None,
    payment_date: Optional[datetime] = None,
    invoice_id: Optional[str] = None
) -> dict:
    """
    Create an invoice for a track and/or course
    due_date defaults to INVOICE_DUE_DAYS from now
    """
    if not track_id and not course_id:
        raise ValidationError("Either courseId or trackId must be provided")
    if amount < 0:
        raise ValidationError("Amount must be zero or more")
    if payment_date is None and InvoiceStatus(status) == InvoiceStatus.PAID:
        payment_date = datetime.utcnow()

    invoice = Invoice(
        invoice_id=invoice_id or generate_id("INV"),
        learner_id=learner_id,
        track_id=track_id,
        course_id=course_id,
        amount=amount,
        due_date=_naive_utc(due_date) or datetime.utcnow() + timedelta(days=config.INVOICE_DUE_DAYS),
        status=status,
        payment_details=encode_payment_details(payment_details) if payment_details is not None else None,
        payment_date=payment_date
    )
    doc = invoice.dict()
    await db.invoices.insert_one(doc)

    logger.info("Invoice %s created for learner %s (%s, %.2f)", invoice.invoice_id, learner_id, doc["status"], amount)
    return serialize_mongo(doc)

async def update_invoice(db: AsyncIOMotorDatabase, invoice_id: str, data: InvoiceUpdate) -> dict:
    updates = {k: v for k, v in data.dict(exclude_unset=True).items() if v is not None}
    if "status" in updates:
        updates["status"] = InvoiceStatus(updates["status"]).value
        if updates["status"] == InvoiceStatus.PAID.value:
            updates.setdefault("payment_date", datetime.utcnow())
    if "due_date" in updates:
        updates["due_date"] = _naive_utc(updates["due_date"])

    updates["updated_at"] = datetime.utcnow()
    invoice = await db.invoices.find_one_and_update(
        {"invoice_id": invoice_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER
    )
    if not invoice:
        raise NotFound("Invoice not found")
    return serialize_mongo(invoice)

async def delete_invoice(db: AsyncIOMotorDatabase, invoice_id: str) -> None:
    result = await db.invoices.delete_one({"invoice_id": invoice_id})
    if result.deleted_count == 0:
        raise NotFound("Invoice not found")

async def mark_paid(db: AsyncIOMotorDatabase, invoice_id: str, payment_details: Optional[dict] = None) -> dict:
    """
    Set status paid and stamp the payment date
    Only an invoice that is not yet paid is touched, so a second payment
    never overwrites the first one's details.
    """
    now = datetime.utcnow()
    updates = {"status": InvoiceStatus.PAID.value, "payment_date": now, "updated_at": now}
    if payment_details is not None:
        updates["payment_details"] = encode_payment_details(payment_details)

    invoice = await db.invoices.find_one_and_update(
        {"invoice_id": invoice_id, "status": {"$ne": InvoiceStatus.PAID.value}},
        {"$set": updates},
        return_document=ReturnDocument.AFTER
    )
    if not invoice:
        await require_invoice(db, invoice_id)
        raise Conflict("Invoice has already been paid")
    return serialize_mongo(invoice)

async def record_failed_payment(db: AsyncIOMotorDatabase, invoice_id: str, payment_details: Optional[dict]) -> dict:
    """Keep the invoice unpaid but store the latest gateway payload"""
    invoice = await db.invoices.find_one_and_update(
        {"invoice_id": invoice_id, "status": {"$ne": InvoiceStatus.PAID.value}},
        {"$set": {
            "payment_details": encode_payment_details(payment_details),
            "updated_at": datetime.utcnow()
        }},
        return_document=ReturnDocument.AFTER
    )
    if not invoice:
        await require_invoice(db, invoice_id)
        raise Conflict("Invoice has already been paid")
    return serialize_mongo(invoice)

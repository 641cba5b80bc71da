from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from gclients.audit import log_audit
from gclients.auth.auth_permissions import get_current_user, require_admin
from gclients.catalog.course_service import get_course, require_course
from gclients.catalog.track_service import get_track, require_track
from gclients.checkout.checkout_service import settle_invoice
from gclients.database import get_db
from gclients.errors import NotFound, ValidationError
from gclients.invoices import invoice_service
from gclients.invoices.invoice_models import InvoiceStatus, invoice_response
from gclients.invoices.invoice_schemas import InvoiceCreate, InvoicePayment, InvoiceUpdate
from gclients.notifications.mailer import Mailer, get_mailer
from gclients.notifications.notification_service import deliver_queued
from gclients.users.user_models import UserRole
from gclients.users.user_service import get_user_by_id

router = APIRouter(prefix="/api/invoices", tags=["Invoices"])


async def _expand(db: AsyncIOMotorDatabase, invoice: dict, with_learner: bool = True) -> dict:
    learner = await get_user_by_id(db, invoice["learner_id"]) if with_learner else None
    track = await get_track(db, invoice["track_id"]) if invoice.get("track_id") else None
    course = await get_course(db, invoice["course_id"]) if invoice.get("course_id") else None
    return invoice_response(invoice, learner, track, course)

# ==================== LEARNER ====================

@router.get("/user")
async def my_invoices(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user)
):
    invoices = await invoice_service.list_invoices(db, learner_id=user["user_id"])
    return {
        "success": True,
        "message": "Invoices retrieved",
        "invoices": [await _expand(db, i, with_learner=False) for i in invoices]
    }


@router.post("/{invoice_id}/pay")
async def pay_invoice(
    invoice_id: str,
    data: InvoicePayment,
    background_tasks: BackgroundTasks,
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    user: dict = Depends(get_current_user)
):
    """Settle one of the caller's unpaid invoices with a new payment result"""
    payload, message_id = await settle_invoice(db, user, invoice_id, data)
    background_tasks.add_task(deliver_queued, db, mailer, message_id)
    return payload

# ==================== ADMIN ====================

@router.get("")
async def list_invoices(
    status: Optional[InvoiceStatus] = None,
    learner: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    invoices = await invoice_service.list_invoices(db, learner_id=learner, status=status)
    return {
        "success": True,
        "message": "Invoices retrieved",
        "invoices": [await _expand(db, i) for i in invoices],
        "count": len(invoices)
    }


@router.post("", status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    learner = await get_user_by_id(db, data.learner_id)
    if not learner or learner.get("role") != UserRole.LEARNER.value:
        raise ValidationError("Learner not found")
    if data.track_id:
        await require_track(db, data.track_id)
    if data.course_id:
        await require_course(db, data.course_id)

    invoice = await invoice_service.create_invoice(
        db,
        learner_id=data.learner_id,
        amount=data.amount,
        status=data.status,
        track_id=data.track_id,
        course_id=data.course_id,
        due_date=data.due_date
    )
    return {"success": True, "message": "Invoice created successfully", "invoice": await _expand(db, invoice)}


@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user)
):
    """Admins see any invoice, learners only their own"""
    invoice = await invoice_service.require_invoice(db, invoice_id)
    if user.get("role") != UserRole.ADMIN.value and invoice["learner_id"] != user["user_id"]:
        raise NotFound("Invoice not found")
    return {"success": True, "message": "Invoice retrieved", "invoice": await _expand(db, invoice)}


@router.put("/{invoice_id}")
async def update_invoice(
    invoice_id: str,
    data: InvoiceUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    invoice = await invoice_service.update_invoice(db, invoice_id, data)
    return {"success": True, "message": "Invoice updated successfully", "invoice": await _expand(db, invoice)}


@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    await invoice_service.delete_invoice(db, invoice_id)
    await log_audit(db, admin, "delete_invoice", "invoice", invoice_id)
    return {"success": True, "message": "Invoice deleted successfully"}


@router.post("/{invoice_id}/mark-paid")
async def mark_invoice_paid(
    invoice_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    invoice = await invoice_service.mark_paid(db, invoice_id)
    await log_audit(db, admin, "mark_invoice_paid", "invoice", invoice_id, {"amount": invoice.get("amount")})
    return {"success": True, "message": "Invoice marked as paid", "invoice": await _expand(db, invoice)}

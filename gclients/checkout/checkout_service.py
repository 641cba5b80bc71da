"""
Checkout / enrollment workflow

Turns "learner wants track X" plus a payment-gateway result into a
consistent set of records:

    payment success  -> active enrollment + paid invoice   + confirmation email
    payment failure  -> unpaid invoice (due in 30 days)     + pending-payment email

Every attempt is first persisted as a checkout intent. The intent carries
the ids of the records it is going to create, and each step is recorded on
the intent once applied, so an interrupted checkout can be resumed without
duplicating enrollments, invoices or emails. Emails are only queued here;
delivery happens after the response (see notification_service).
"""

import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from gclients import config
from gclients.auth.tokens import issue_token
from gclients.catalog.course_service import get_course
from gclients.catalog.track_service import get_track, get_track_by_slug
from gclients.checkout.checkout_models import CheckoutIntent, CheckoutMode, CheckoutStep, IntentStatus
from gclients.checkout.checkout_schemas import AuthenticatedCheckoutRequest, CheckoutRequest
from gclients.database import generate_id, serialize_mongo
from gclients.enrollments import enrollment_service
from gclients.errors import (
    AppError,
    Conflict,
    ExistingAccountRequiresAuthentication,
    Forbidden,
    InternalError,
    NotFound,
    ValidationError,
)
from gclients.invoices import invoice_service
from gclients.invoices.invoice_models import InvoiceStatus, invoice_response
from gclients.invoices.invoice_schemas import InvoicePayment
from gclients.notifications import templates
from gclients.notifications.notification_service import queue_email
from gclients.users import user_service
from gclients.users.user_models import UserRole

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
ALREADY_ENROLLED = "You are already enrolled in this track."

# Intents untouched for this long are considered interrupted
RESUME_AFTER = timedelta(minutes=5)


def checkout_user(user: dict) -> dict:
    return {
        "id": user["user_id"],
        "firstName": user.get("first_name"),
        "lastName": user.get("last_name"),
        "email": user.get("email"),
    }

# ==================== GUARDS ====================

async def _require_track_by_slug(db: AsyncIOMotorDatabase, slug: str) -> dict:
    track = await get_track_by_slug(db, slug.strip())
    if not track:
        raise NotFound("Track not found")
    return track

async def _guard_duplicate_enrollment(db: AsyncIOMotorDatabase, learner_id: str, track_id: str) -> None:
    if await enrollment_service.find_track_enrollment(db, learner_id, track_id):
        raise Conflict(ALREADY_ENROLLED)

def _validate_checkout_fields(data: CheckoutRequest) -> None:
    required = (data.track_slug, data.first_name, data.last_name, data.email, data.password)
    if not all(value and value.strip() for value in required):
        raise ValidationError("Missing required fields")
    if not EMAIL_PATTERN.match(data.email.strip()):
        raise ValidationError("Invalid email address")
    if len(data.password) < config.MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters long")

# ==================== INTENTS ====================

async def _start_intent(
    db: AsyncIOMotorDatabase,
    mode: CheckoutMode,
    email: str,
    track: dict,
    payment_success: bool,
    payment_details: Optional[dict],
    learner_id: Optional[str] = None
) -> dict:
    intent = CheckoutIntent(
        intent_id=generate_id("CHK"),
        mode=mode,
        email=email,
        track_id=track["track_id"],
        amount=track.get("price") or 0,
        payment_success=payment_success,
        payment_details=payment_details or {},
        learner_id=learner_id,
        enrollment_id=generate_id("ENR") if payment_success else None,
        invoice_id=generate_id("INV"),
        message_id=generate_id("MSG"),
    )
    doc = intent.dict()
    await db.checkout_intents.insert_one(doc)
    logger.info("Checkout %s started (%s, track %s, payment %s)",
                intent.intent_id, doc["mode"], track["track_id"], "ok" if payment_success else "failed")
    return serialize_mongo(doc)

async def _record_step(db: AsyncIOMotorDatabase, intent: dict, step: CheckoutStep, **fields) -> None:
    await db.checkout_intents.update_one(
        {"intent_id": intent["intent_id"]},
        {"$addToSet": {"completed_steps": step.value},
         "$set": {**fields, "updated_at": datetime.utcnow()}}
    )
    intent.setdefault("completed_steps", []).append(step.value)
    intent.update(fields)

async def _finish_intent(db: AsyncIOMotorDatabase, intent: dict, status: IntentStatus, error: Optional[str] = None) -> None:
    await db.checkout_intents.update_one(
        {"intent_id": intent["intent_id"]},
        {"$set": {"status": status.value, "error": error, "updated_at": datetime.utcnow()}}
    )
    intent["status"] = status.value

# ==================== STEPS ====================

def _compose_notification(intent: dict, track: dict, user: dict) -> Tuple[templates.EmailContent, str]:
    first_name = user.get("first_name", "")
    anonymous = intent["mode"] == CheckoutMode.ANONYMOUS.value

    if intent["payment_success"]:
        if anonymous:
            return templates.checkout_welcome_email(first_name, track["name"], user["email"]), "checkout_welcome"
        return templates.enrollment_confirmed_email(first_name, track["name"]), "enrollment_confirmed"

    if anonymous:
        content = templates.pending_payment_email(first_name, user["email"], track["name"], intent["amount"], intent["invoice_id"])
        return content, "pending_payment"
    content = templates.payment_failed_email(first_name, track["name"], intent["amount"], intent["invoice_id"])
    return content, "payment_failed"

async def apply_checkout_steps(db: AsyncIOMotorDatabase, intent: dict, track: dict, user: dict) -> Optional[str]:
    """
    Apply whatever steps of the intent are still outstanding

    Returns:
        message_id of the notification queued by this call, None if it was
        queued earlier
    """
    done = set(intent.get("completed_steps", []))
    learner_id = user["user_id"]
    queued_message_id = None

    if intent["payment_success"] and CheckoutStep.ENROLLMENT.value not in done:
        if not await enrollment_service.get_track_enrollment(db, intent["enrollment_id"]):
            await enrollment_service.create_track_enrollment(
                db, learner_id, intent["track_id"], enrollment_id=intent["enrollment_id"]
            )
        await _record_step(db, intent, CheckoutStep.ENROLLMENT)

    if CheckoutStep.INVOICE.value not in done:
        if not await invoice_service.get_invoice(db, intent["invoice_id"]):
            now = datetime.utcnow()
            paid = intent["payment_success"]
            await invoice_service.create_invoice(
                db,
                learner_id=learner_id,
                amount=intent["amount"],
                status=InvoiceStatus.PAID if paid else InvoiceStatus.UNPAID,
                track_id=intent["track_id"],
                due_date=now if paid else now + timedelta(days=config.INVOICE_DUE_DAYS),
                payment_details=intent.get("payment_details") or {},
                payment_date=now if paid else None,
                invoice_id=intent["invoice_id"]
            )
        await _record_step(db, intent, CheckoutStep.INVOICE)

    if CheckoutStep.NOTIFICATION.value not in done:
        if not await db.email_outbox.find_one({"message_id": intent["message_id"]}, {"_id": 1}):
            content, kind = _compose_notification(intent, track, user)
            await queue_email(db, user["email"], content, kind, message_id=intent["message_id"])
            queued_message_id = intent["message_id"]
        await _record_step(db, intent, CheckoutStep.NOTIFICATION)

    await _finish_intent(db, intent, IntentStatus.COMPLETED)
    return queued_message_id

async def _run_steps(db: AsyncIOMotorDatabase, intent: dict, track: dict, user: dict, failure_message: str) -> Optional[str]:
    try:
        return await apply_checkout_steps(db, intent, track, user)
    except AppError as e:
        await _finish_intent(db, intent, IntentStatus.FAILED, e.message)
        raise
    except Exception as e:
        logger.exception("Checkout %s failed", intent["intent_id"])
        await _finish_intent(db, intent, IntentStatus.FAILED, str(e))
        raise InternalError(failure_message) from e

# ==================== WORKFLOWS ====================

async def process_checkout(db: AsyncIOMotorDatabase, data: CheckoutRequest) -> Tuple[dict, Optional[str]]:
    """
    Anonymous checkout: creates the learner account, then enrolls/invoices

    Returns:
        (response payload, id of the queued notification)

    Raises:
        400: missing or malformed fields
        403: the email already has an account (nothing is written)
        404: unknown track slug
        409: already enrolled
        500: persistence failure after the account was created
    """
    _validate_checkout_fields(data)
    track = await _require_track_by_slug(db, data.track_slug)

    email = user_service.normalize_email(data.email)
    if await user_service.get_user_by_email(db, email):
        raise ExistingAccountRequiresAuthentication()

    intent = await _start_intent(db, CheckoutMode.ANONYMOUS, email, track, data.payment_success, data.payment_details)

    try:
        user = await user_service.create_user(
            db,
            first_name=data.first_name,
            last_name=data.last_name,
            email=email,
            password=data.password,
            role=UserRole.LEARNER,
            is_verified=config.CHECKOUT_AUTO_VERIFY,
            contact=data.phone,
            gender=data.gender,
            location=data.location,
            bio=f"Learning {track['name']}"
        )
    except Conflict:
        # the email was registered between the lookup and the insert
        await _finish_intent(db, intent, IntentStatus.FAILED, "Email already registered")
        raise ExistingAccountRequiresAuthentication()
    except Exception as e:
        logger.exception("Checkout %s could not create the account", intent["intent_id"])
        await _finish_intent(db, intent, IntentStatus.FAILED, str(e))
        raise InternalError("Failed to create account") from e

    await _record_step(db, intent, CheckoutStep.ACCOUNT, learner_id=user["user_id"])
    logger.info("Checkout %s created learner %s", intent["intent_id"], user["user_id"])

    try:
        await _guard_duplicate_enrollment(db, user["user_id"], track["track_id"])
    except Conflict as e:
        await _finish_intent(db, intent, IntentStatus.FAILED, e.message)
        raise

    message_id = await _run_steps(db, intent, track, user, "Failed to create account")
    token = issue_token(user["user_id"])

    if data.payment_success:
        payload = {
            "success": True,
            "message": "Account created and enrollment successful",
            "autoLogin": True,
            "token": token,
            "user": checkout_user(user),
            "invoiceId": intent["invoice_id"],
        }
    else:
        payload = {
            "success": True,
            "message": "Account created with pending payment",
            "pendingPayment": True,
            "autoLogin": True,
            "token": token,
            "user": checkout_user(user),
            "invoiceId": intent["invoice_id"],
        }
    return payload, message_id

async def process_authenticated_checkout(
    db: AsyncIOMotorDatabase,
    user: dict,
    data: AuthenticatedCheckoutRequest
) -> Tuple[dict, Optional[str]]:
    """
    Checkout for a signed-in caller; same steps minus account creation
    No token is issued
    """
    if not data.track_slug or not data.track_slug.strip():
        raise ValidationError("Track slug is required")

    track = await _require_track_by_slug(db, data.track_slug)
    await _guard_duplicate_enrollment(db, user["user_id"], track["track_id"])

    intent = await _start_intent(
        db, CheckoutMode.AUTHENTICATED, user["email"], track,
        data.payment_success, data.payment_details, learner_id=user["user_id"]
    )
    message_id = await _run_steps(db, intent, track, user, "Failed to process enrollment")

    if data.payment_success:
        payload = {
            "success": True,
            "message": "Enrollment successful",
            "user": checkout_user(user),
            "invoiceId": intent["invoice_id"],
        }
    else:
        payload = {
            "success": True,
            "message": "Payment failed - invoice created",
            "pendingPayment": True,
            "user": checkout_user(user),
            "invoiceId": intent["invoice_id"],
        }
    return payload, message_id

# ==================== INVOICE SETTLEMENT ====================

async def settle_invoice(
    db: AsyncIOMotorDatabase,
    user: dict,
    invoice_id: str,
    data: InvoicePayment
) -> Tuple[dict, str]:
    """
    Learner retries payment on one of their unpaid invoices

    Success marks the invoice paid and enrolls the learner if needed;
    failure only records the gateway payload. Either way an email is queued.
    """
    invoice = await invoice_service.require_invoice(db, invoice_id)
    if invoice["learner_id"] != user["user_id"]:
        raise Forbidden("You can only pay your own invoices")
    if invoice["status"] == InvoiceStatus.PAID.value:
        raise Conflict("Invoice has already been paid")
    if invoice["status"] == InvoiceStatus.CANCELLED.value:
        raise ValidationError("Cancelled invoices cannot be paid")

    track = await get_track(db, invoice["track_id"]) if invoice.get("track_id") else None
    course = await get_course(db, invoice["course_id"]) if invoice.get("course_id") and not track else None
    if not track and not course:
        raise NotFound("The track or course for this invoice no longer exists")
    item_name = track["name"] if track else course["title"]
    first_name = user.get("first_name", "")

    if data.payment_success:
        invoice = await invoice_service.mark_paid(db, invoice_id, data.payment_details or {})
        if track:
            if not await enrollment_service.find_track_enrollment(db, user["user_id"], track["track_id"]):
                await enrollment_service.create_track_enrollment(db, user["user_id"], track["track_id"])
        elif not await enrollment_service.find_course_registration(db, user["user_id"], course["course_id"]):
            await enrollment_service.create_course_registration(db, user["user_id"], course["course_id"])

        message = await queue_email(
            db, user["email"], templates.enrollment_confirmed_email(first_name, item_name), "enrollment_confirmed"
        )
        logger.info("Invoice %s settled by learner %s", invoice_id, user["user_id"])
        payload = {
            "success": True,
            "message": "Payment successful",
            "invoiceId": invoice_id,
            "invoice": invoice_response(invoice),
        }
    else:
        invoice = await invoice_service.record_failed_payment(db, invoice_id, data.payment_details)
        message = await queue_email(
            db, user["email"],
            templates.payment_failed_email(first_name, item_name, invoice["amount"], invoice_id),
            "payment_failed"
        )
        payload = {
            "success": True,
            "message": "Payment failed - invoice remains unpaid",
            "pendingPayment": True,
            "invoiceId": invoice_id,
            "invoice": invoice_response(invoice),
        }

    return payload, message["message_id"]

# ==================== RECONCILIATION ====================

async def resume_incomplete_checkouts(db: AsyncIOMotorDatabase, older_than: timedelta = RESUME_AFTER) -> dict:
    """
    Re-apply interrupted intents

    Returns counts plus the ids of notifications queued by this pass,
    which the caller is expected to deliver.
    """
    cutoff = datetime.utcnow() - older_than
    cursor = db.checkout_intents.find({"status": IntentStatus.STARTED.value, "updated_at": {"$lt": cutoff}})
    intents = await cursor.to_list(length=None)

    resumed = 0
    failed = 0
    message_ids: List[str] = []

    for raw in intents:
        intent = serialize_mongo(raw)
        track = await get_track(db, intent["track_id"])
        user = await user_service.get_user_by_id(db, intent["learner_id"]) if intent.get("learner_id") else None
        if not track or not user:
            await _finish_intent(db, intent, IntentStatus.FAILED, "Account or track no longer available")
            failed += 1
            continue

        try:
            message_id = await apply_checkout_steps(db, intent, track, user)
        except AppError as e:
            await _finish_intent(db, intent, IntentStatus.FAILED, e.message)
            failed += 1
            continue

        resumed += 1
        if message_id:
            message_ids.append(message_id)

    if resumed or failed:
        logger.info("Checkout reconciliation: %d resumed, %d abandoned", resumed, failed)
    return {"resumed": resumed, "failed": failed, "message_ids": message_ids}

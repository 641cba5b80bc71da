from fastapi import APIRouter, BackgroundTasks, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from gclients.auth.auth_permissions import get_current_user
from gclients.checkout import checkout_service
from gclients.checkout.checkout_schemas import AuthenticatedCheckoutRequest, CheckoutRequest
from gclients.database import get_db
from gclients.notifications.mailer import Mailer, get_mailer
from gclients.notifications.notification_service import deliver_queued

router = APIRouter(prefix="/api/checkout", tags=["Checkout"])


@router.post("/process")
async def process_checkout(
    data: CheckoutRequest,
    background_tasks: BackgroundTasks,
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer)
):
    """
    Checkout without an account

    Creates the learner, then enrolls and invoices according to the
    payment result. The response carries a bearer token for auto-login.
    """
    payload, message_id = await checkout_service.process_checkout(db, data)
    if message_id:
        background_tasks.add_task(deliver_queued, db, mailer, message_id)
    return payload


@router.post("/authenticated")
async def process_authenticated_checkout(
    data: AuthenticatedCheckoutRequest,
    background_tasks: BackgroundTasks,
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    user: dict = Depends(get_current_user)
):
    payload, message_id = await checkout_service.process_authenticated_checkout(db, user, data)
    if message_id:
        background_tasks.add_task(deliver_queued, db, mailer, message_id)
    return payload

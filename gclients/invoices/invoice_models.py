import json
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

# ==================== ENUMS ====================

class InvoiceStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    CANCELLED = "cancelled"

# ==================== DATABASE MODELS ====================

class Invoice(BaseModel):
    """
    Billing record
    References a track, a course or both; amount is fixed at creation
    """
    invoice_id: str  # INV_XXXXXX
    learner_id: str
    track_id: Optional[str] = None
    course_id: Optional[str] = None
    amount: float
    due_date: datetime
    status: InvoiceStatus = InvoiceStatus.UNPAID
    payment_details: Optional[str] = None  # JSON-encoded gateway payload
    payment_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        use_enum_values = True


def encode_payment_details(details: Optional[dict]) -> str:
    return json.dumps(details or {}, default=str)


def decode_payment_details(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None

# ==================== RESPONSE SHAPES ====================

def invoice_response(
    invoice: dict,
    learner: Optional[dict] = None,
    track: Optional[dict] = None,
    course: Optional[dict] = None
) -> dict:
    return {
        "id": invoice["invoice_id"],
        "learnerId": invoice["learner_id"],
        "trackId": invoice.get("track_id"),
        "courseId": invoice.get("course_id"),
        "amount": invoice.get("amount"),
        "dueDate": invoice.get("due_date"),
        "status": invoice.get("status"),
        "paymentDetails": decode_payment_details(invoice.get("payment_details")),
        "paymentDate": invoice.get("payment_date"),
        "learner": {
            "id": learner["user_id"],
            "firstName": learner.get("first_name"),
            "lastName": learner.get("last_name"),
            "email": learner.get("email"),
        } if learner else None,
        "track": {"id": track["track_id"], "name": track.get("name"), "slug": track.get("slug")} if track else None,
        "course": {"id": course["course_id"], "title": course.get("title")} if course else None,
        "createdAt": invoice.get("created_at"),
        "updatedAt": invoice.get("updated_at"),
    }

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, validator

from gclients.invoices.invoice_models import InvoiceStatus


class InvoiceCreate(BaseModel):
    learner_id: str = Field(..., alias="learnerId")
    track_id: Optional[str] = Field(None, alias="trackId")
    course_id: Optional[str] = Field(None, alias="courseId")
    amount: float
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    status: InvoiceStatus = InvoiceStatus.UNPAID

    @validator("amount")
    def validate_amount(cls, v):
        if v < 0:
            raise ValueError("Amount must be zero or more")
        return v


class InvoiceUpdate(BaseModel):
    amount: Optional[float] = None
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    status: Optional[InvoiceStatus] = None

    @validator("amount")
    def validate_amount(cls, v):
        if v is not None and v < 0:
            raise ValueError("Amount must be zero or more")
        return v


class InvoicePayment(BaseModel):
    """Result of a learner retrying payment on an unpaid invoice"""
    payment_success: bool = Field(..., alias="paymentSuccess")
    payment_details: Optional[Dict[str, Any]] = Field(None, alias="paymentDetails")

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CheckoutMode(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class IntentStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class CheckoutStep(str, Enum):
    ACCOUNT = "account"
    ENROLLMENT = "enrollment"
    INVOICE = "invoice"
    NOTIFICATION = "notification"


class CheckoutIntent(BaseModel):
    """
    Durable record of one checkout attempt

    Record ids are assigned up front, so every step can tell whether it has
    already been applied and re-running the intent never duplicates anything.
    """
    intent_id: str  # CHK_XXXXXX
    mode: CheckoutMode
    email: str
    track_id: str
    amount: float
    payment_success: bool
    payment_details: Dict[str, Any] = Field(default_factory=dict)
    learner_id: Optional[str] = None
    enrollment_id: Optional[str] = None
    invoice_id: str
    message_id: str
    completed_steps: List[CheckoutStep] = Field(default_factory=list)
    status: IntentStatus = IntentStatus.STARTED
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        use_enum_values = True

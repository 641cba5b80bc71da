from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from gclients.users.user_models import Gender


class CheckoutRequest(BaseModel):
    """Anonymous checkout: account details plus the gateway result"""
    track_slug: str = Field(..., alias="trackSlug")
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: str
    phone: Optional[str] = None
    gender: Optional[Gender] = None
    location: Optional[str] = None
    password: str
    payment_success: bool = Field(..., alias="paymentSuccess")
    payment_details: Optional[Dict[str, Any]] = Field(None, alias="paymentDetails")


class AuthenticatedCheckoutRequest(BaseModel):
    track_slug: str = Field(..., alias="trackSlug")
    payment_success: bool = Field(..., alias="paymentSuccess")
    payment_details: Optional[Dict[str, Any]] = Field(None, alias="paymentDetails")

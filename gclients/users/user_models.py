from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

# ==================== ENUMS ====================

class UserRole(str, Enum):
    ADMIN = "admin"
    LEARNER = "learner"

class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"

# ==================== DATABASE MODELS ====================

class User(BaseModel):
    """
    Identity record
    Email is stored lowercase and is globally unique
    """
    user_id: str  # USR_XXXXXX
    first_name: str
    last_name: str
    email: str
    password_hash: str
    role: UserRole
    contact: Optional[str] = None
    is_verified: bool = False
    verification_otp: Optional[str] = None
    verification_otp_expiry: Optional[datetime] = None
    reset_token: Optional[str] = None
    reset_token_expiry: Optional[datetime] = None
    gender: Optional[Gender] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    profile_image: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        use_enum_values = True


def public_user(user: dict) -> dict:
    """Client-facing view of a user document (never includes secrets)"""
    return {
        "id": user["user_id"],
        "firstName": user.get("first_name"),
        "lastName": user.get("last_name"),
        "email": user.get("email"),
        "role": user.get("role"),
        "contact": user.get("contact"),
        "isVerified": user.get("is_verified", False),
        "gender": user.get("gender"),
        "location": user.get("location"),
        "bio": user.get("bio"),
        "profileImage": user.get("profile_image"),
        "createdAt": user.get("created_at"),
        "updatedAt": user.get("updated_at"),
    }

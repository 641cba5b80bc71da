from typing import Optional

from pydantic import BaseModel, Field

from gclients.users.user_models import Gender

# Fields are optional here so the service can answer with a specific
# "X is required" message instead of a generic validation error

class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RegisterAdminRequest(BaseModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email: Optional[str] = None
    contact: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = Field(None, alias="confirmPassword")


class VerifyEmailRequest(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    token: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = Field(None, alias="confirmPassword")


class UpdatePasswordRequest(BaseModel):
    current_password: Optional[str] = Field(None, alias="currentPassword")
    new_password: Optional[str] = Field(None, alias="newPassword")
    confirm_password: Optional[str] = Field(None, alias="confirmPassword")


class UpdateProfileRequest(BaseModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    contact: Optional[str] = None
    profile_image: Optional[str] = Field(None, alias="profileImage")
    gender: Optional[Gender] = None
    location: Optional[str] = None
    bio: Optional[str] = None

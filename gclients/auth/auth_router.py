from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from gclients.auth import auth_service
from gclients.auth.auth_permissions import get_current_user
from gclients.auth.auth_schemas import (
    EmailRequest,
    LoginRequest,
    RegisterAdminRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
    UpdateProfileRequest,
    VerifyEmailRequest,
)
from gclients.database import get_db
from gclients.errors import ValidationError
from gclients.notifications.mailer import Mailer, get_mailer
from gclients.users.user_models import public_user
from gclients.users.user_service import get_user_by_email

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/login")
async def login(
    data: LoginRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer)
):
    return await auth_service.login(db, mailer, data.email, data.password)


@router.post("/register-admin", status_code=201)
async def register_admin(
    data: RegisterAdminRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer)
):
    user = await auth_service.register_admin(db, mailer, data)
    return {
        "success": True,
        "message": "Admin registered successfully. Please check your email for verification.",
        "user": public_user(user)
    }


@router.post("/verify-email")
async def verify_email(
    data: VerifyEmailRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer)
):
    await auth_service.verify_email(db, mailer, data.email, data.otp)
    return {"success": True, "message": "Email verified successfully"}


@router.post("/resend-verification")
async def resend_verification(
    data: EmailRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer)
):
    message = await auth_service.resend_verification(db, mailer, data.email)
    return {"success": True, "message": message}


@router.post("/forgot-password")
async def forgot_password(
    data: EmailRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer)
):
    message = await auth_service.forgot_password(db, mailer, data.email)
    return {"success": True, "message": message}


@router.post("/reset-password")
async def reset_password(data: ResetPasswordRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    await auth_service.reset_password(db, data.token, data.password, data.confirm_password)
    return {"success": True, "message": "Password reset successfully"}


@router.post("/update-password")
async def update_password(
    data: UpdatePasswordRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user)
):
    await auth_service.update_password(db, user, data.current_password, data.new_password, data.confirm_password)
    return {"success": True, "message": "Password updated successfully"}


@router.put("/update-user")
async def update_user(
    data: UpdateProfileRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user)
):
    updated = await auth_service.update_profile(db, user, data)
    return {"success": True, "message": "Profile updated successfully", "user": public_user(updated)}


@router.get("/check")
async def check(user: dict = Depends(get_current_user)):
    return {"success": True, "message": "Authenticated", "user": public_user(user)}


@router.post("/check-email")
async def check_email(data: EmailRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Lets checkout decide between the anonymous and the signed-in flow"""
    if not data.email:
        raise ValidationError("Email is required")

    user = await get_user_by_email(db, data.email)
    return {
        "success": True,
        "message": "Email checked",
        "exists": user is not None,
        "user": {
            "id": user["user_id"],
            "firstName": user.get("first_name"),
            "lastName": user.get("last_name"),
            "email": user.get("email"),
        } if user else None
    }

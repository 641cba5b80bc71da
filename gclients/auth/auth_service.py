import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from gclients import config
from gclients.auth.auth_schemas import RegisterAdminRequest, UpdateProfileRequest
from gclients.auth.tokens import is_one_time_code_valid, issue_reset_token, issue_token, verify_password
from gclients.errors import InternalError, NotFound, Unauthorized, ValidationError
from gclients.notifications import templates
from gclients.notifications.mailer import MailDeliveryError, Mailer
from gclients.notifications.notification_service import send_email
from gclients.users import user_service
from gclients.users.user_models import UserRole, public_user

logger = logging.getLogger(__name__)

PASSWORD_TOO_SHORT = f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters long"
RESET_LINK_SENT = "If an account with that email exists, a password reset link has been sent."
VERIFICATION_SENT = "If an account with that email exists, a verification email has been sent."


def _check_new_password(password: str, confirm_password: str, mismatch_message: str = "Passwords do not match") -> None:
    if password != confirm_password:
        raise ValidationError(mismatch_message)
    if len(password) < config.MIN_PASSWORD_LENGTH:
        raise ValidationError(PASSWORD_TOO_SHORT)


async def _send_verification_code(db: AsyncIOMotorDatabase, mailer: Mailer, user: dict) -> None:
    """Issue a fresh OTP and email it; raises MailDeliveryError"""
    code = await user_service.set_verification_code(db, user["user_id"])
    await send_email(db, mailer, user["email"], templates.verification_email(user["first_name"], code), "verification")

# ==================== SESSION ====================

async def login(db: AsyncIOMotorDatabase, mailer: Mailer, email: str, password: str) -> dict:
    """
    Exchange credentials for a bearer token

    An unverified account gets a new verification code and a 401 asking
    the caller to verify first.
    """
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = await user_service.get_user_by_email(db, email)
    if not user or not verify_password(password, user.get("password_hash")):
        raise Unauthorized("Invalid email or password")

    if not user.get("is_verified"):
        try:
            await _send_verification_code(db, mailer, user)
        except MailDeliveryError:
            logger.error("Could not send verification code to %s", user["email"])
            raise Unauthorized("Please verify your email before logging in")
        raise Unauthorized(
            "Email not verified. We've sent a verification code to your email.",
            requiresVerification=True,
            email=user["email"],
        )

    logger.info("User %s logged in", user["user_id"])
    return {
        "success": True,
        "message": "Login successful",
        "token": issue_token(user["user_id"]),
        "user": public_user(user),
    }

# ==================== REGISTRATION & VERIFICATION ====================

async def register_admin(db: AsyncIOMotorDatabase, mailer: Mailer, data: RegisterAdminRequest) -> dict:
    required = (data.first_name, data.last_name, data.email, data.password, data.confirm_password)
    if not all(value and value.strip() for value in required):
        raise ValidationError("All fields are required")
    _check_new_password(data.password, data.confirm_password)

    user = await user_service.create_user(
        db,
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        password=data.password,
        role=UserRole.ADMIN,
        is_verified=False,
        contact=data.contact
    )
    logger.info("Admin %s registered", user["user_id"])

    try:
        await _send_verification_code(db, mailer, user)
    except MailDeliveryError:
        # registration stands; the admin can ask for a new code
        logger.error("Verification email to %s failed after registration", user["email"])

    return user


async def verify_email(db: AsyncIOMotorDatabase, mailer: Mailer, email: str, otp: str) -> None:
    if not otp:
        raise ValidationError("Verification OTP is required")
    if not email:
        raise ValidationError("Email is required")

    user = await user_service.get_user_by_email(db, email)
    if not user or not is_one_time_code_valid(user, otp):
        raise ValidationError("Invalid or expired verification OTP")

    await user_service.mark_verified(db, user["user_id"])
    logger.info("User %s verified their email", user["user_id"])

    try:
        await send_email(db, mailer, user["email"], templates.account_verified_email(user["first_name"]), "welcome")
    except MailDeliveryError:
        logger.error("Welcome email to %s failed", user["email"])


async def resend_verification(db: AsyncIOMotorDatabase, mailer: Mailer, email: str) -> str:
    if not email:
        raise ValidationError("Email is required")

    user = await user_service.get_user_by_email(db, email)
    if not user:
        return VERIFICATION_SENT
    if user.get("is_verified"):
        raise ValidationError("Email is already verified")

    try:
        await _send_verification_code(db, mailer, user)
    except MailDeliveryError as e:
        raise InternalError("Failed to resend verification email") from e
    return VERIFICATION_SENT

# ==================== PASSWORDS ====================

async def forgot_password(db: AsyncIOMotorDatabase, mailer: Mailer, email: str) -> str:
    """Same answer whether or not the account exists"""
    if not email:
        raise ValidationError("Email is required")

    user = await user_service.get_user_by_email(db, email)
    if not user:
        return RESET_LINK_SENT

    token, expires_at = issue_reset_token()
    await user_service.set_reset_token(db, user["user_id"], token, expires_at)

    try:
        await send_email(db, mailer, user["email"], templates.password_reset_email(user["first_name"], token), "password_reset")
    except MailDeliveryError as e:
        raise InternalError("Failed to send password reset email. Try again.") from e
    return RESET_LINK_SENT


async def reset_password(db: AsyncIOMotorDatabase, token: str, password: str, confirm_password: str) -> None:
    if not token or not password or not confirm_password:
        raise ValidationError("Token, password, and confirm password are required")
    _check_new_password(password, confirm_password)

    user = await user_service.get_user_by_reset_token(db, token)
    if not user:
        raise ValidationError("Invalid or expired reset token")

    await user_service.reset_password(db, user["user_id"], password)
    logger.info("Password reset for user %s", user["user_id"])


async def update_password(db: AsyncIOMotorDatabase, user: dict, current: str, new: str, confirm: str) -> None:
    if not current or not new or not confirm:
        raise ValidationError("Current password, new password, and confirm password are required")
    _check_new_password(new, confirm, mismatch_message="New passwords do not match")

    if not verify_password(current, user.get("password_hash")):
        raise ValidationError("Current password is incorrect")

    await user_service.update_user(db, user["user_id"], {"password": new})

# ==================== PROFILE ====================

async def update_profile(db: AsyncIOMotorDatabase, user: dict, data: UpdateProfileRequest) -> dict:
    updates = {k: v for k, v in data.dict(exclude_unset=True).items() if v is not None}
    if not updates:
        raise ValidationError("No valid fields to update")
    if "gender" in updates:
        updates["gender"] = updates["gender"].value

    updated = await user_service.update_user(db, user["user_id"], updates)
    if not updated:
        raise NotFound("User not found")
    return updated

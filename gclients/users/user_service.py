from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from gclients.auth.tokens import hash_password, issue_one_time_code
from gclients.database import generate_id, serialize_many, serialize_mongo
from gclients.errors import Conflict
from gclients.users.user_models import User, UserRole

# Fields a caller may never set through a generic update
PROTECTED_FIELDS = {"user_id", "email", "role", "password_hash", "created_at"}


def normalize_email(email: str) -> str:
    return email.strip().lower()

# ==================== LOOKUPS ====================

async def get_user_by_id(db: AsyncIOMotorDatabase, user_id: str) -> Optional[dict]:
    return serialize_mongo(await db.users.find_one({"user_id": user_id}))

async def get_user_by_email(db: AsyncIOMotorDatabase, email: str) -> Optional[dict]:
    """Case-insensitive lookup (emails are stored lowercase)"""
    return serialize_mongo(await db.users.find_one({"email": normalize_email(email)}))

async def get_user_by_reset_token(db: AsyncIOMotorDatabase, token: str) -> Optional[dict]:
    """Only returns the user while the token is still valid"""
    user = await db.users.find_one({
        "reset_token": token,
        "reset_token_expiry": {"$gt": datetime.utcnow()}
    })
    return serialize_mongo(user)

async def list_users(db: AsyncIOMotorDatabase, role: Optional[UserRole] = None) -> List[dict]:
    query = {"role": role.value} if role else {}
    cursor = db.users.find(query).sort("created_at", -1)
    return serialize_many(await cursor.to_list(length=None))

async def count_users(db: AsyncIOMotorDatabase, role: Optional[UserRole] = None) -> int:
    query = {"role": role.value} if role else {}
    return await db.users.count_documents(query)

# ==================== WRITES ====================

async def create_user(
    db: AsyncIOMotorDatabase,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    role: UserRole,
    is_verified: bool = False,
    **profile
) -> dict:
    """
    Create user with a hashed password
    Raises Conflict if the email is already registered
    """
    user = User(
        user_id=generate_id("USR"),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=normalize_email(email),
        password_hash=hash_password(password),
        role=role,
        is_verified=is_verified,
        **{k: v for k, v in profile.items() if v is not None}
    )
    doc = user.dict()

    try:
        await db.users.insert_one(doc)
    except DuplicateKeyError:
        raise Conflict("User with this email already exists")

    return serialize_mongo(doc)

async def update_user(db: AsyncIOMotorDatabase, user_id: str, updates: dict) -> Optional[dict]:
    """
    Partial profile update
    A plain-text 'password' entry is hashed before storage
    """
    updates = {k: v for k, v in updates.items() if k not in PROTECTED_FIELDS}
    password = updates.pop("password", None)
    if password:
        updates["password_hash"] = hash_password(password)

    updates["updated_at"] = datetime.utcnow()
    user = await db.users.find_one_and_update(
        {"user_id": user_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER
    )
    return serialize_mongo(user)

async def delete_user(db: AsyncIOMotorDatabase, user_id: str) -> bool:
    result = await db.users.delete_one({"user_id": user_id})
    return result.deleted_count > 0

# ==================== ONE-TIME CREDENTIALS ====================

async def set_verification_code(db: AsyncIOMotorDatabase, user_id: str) -> str:
    """Issue a new OTP; overwrites any previous one"""
    code, expires_at = issue_one_time_code()
    await db.users.update_one(
        {"user_id": user_id},
        {"$set": {
            "verification_otp": code,
            "verification_otp_expiry": expires_at,
            "updated_at": datetime.utcnow()
        }}
    )
    return code

async def mark_verified(db: AsyncIOMotorDatabase, user_id: str) -> None:
    await db.users.update_one(
        {"user_id": user_id},
        {"$set": {
            "is_verified": True,
            "verification_otp": None,
            "verification_otp_expiry": None,
            "updated_at": datetime.utcnow()
        }}
    )

async def set_reset_token(db: AsyncIOMotorDatabase, user_id: str, token: str, expires_at: datetime) -> None:
    await db.users.update_one(
        {"user_id": user_id},
        {"$set": {
            "reset_token": token,
            "reset_token_expiry": expires_at,
            "updated_at": datetime.utcnow()
        }}
    )

async def reset_password(db: AsyncIOMotorDatabase, user_id: str, new_password: str) -> None:
    """Store a new password and consume the reset token"""
    await db.users.update_one(
        {"user_id": user_id},
        {"$set": {
            "password_hash": hash_password(new_password),
            "reset_token": None,
            "reset_token_expiry": None,
            "updated_at": datetime.utcnow()
        }}
    )

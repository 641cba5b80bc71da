from typing import Optional

from fastapi import Depends, Header
from motor.motor_asyncio import AsyncIOMotorDatabase

from gclients.auth.tokens import validate_token
from gclients.database import get_db
from gclients.errors import Forbidden, Unauthorized
from gclients.users.user_models import UserRole
from gclients.users.user_service import get_user_by_id


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> dict:
    """
    Dependency: resolves the bearer token to a user document

    Raises:
        401: Missing, invalid or expired token, or the user no longer exists
    """
    token = extract_bearer_token(authorization)
    if not token:
        raise Unauthorized("Authentication required")

    user_id = validate_token(token)
    if not user_id:
        raise Unauthorized("Invalid or expired token")

    user = await get_user_by_id(db, user_id)
    if not user:
        raise Unauthorized("Invalid or expired token")

    return user


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    """
    Dependency: caller must be an admin

    Raises:
        403: Learners are blocked from admin endpoints
    """
    if user.get("role") != UserRole.ADMIN.value:
        raise Forbidden("Forbidden: Admin access required")
    return user


async def require_learner(user: dict = Depends(get_current_user)) -> dict:
    """Dependency: caller must be a learner"""
    if user.get("role") != UserRole.LEARNER.value:
        raise Forbidden("Forbidden: Learner access required")
    return user

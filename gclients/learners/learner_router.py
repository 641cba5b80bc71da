from typing import Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field

from gclients import config
from gclients.audit import log_audit
from gclients.auth.auth_permissions import require_admin
from gclients.database import get_db
from gclients.errors import NotFound, ValidationError
from gclients.invoices.invoice_service import paid_totals_by_learner
from gclients.users import user_service
from gclients.users.user_models import Gender, UserRole, public_user

router = APIRouter(prefix="/api/learners", tags=["Learners"])

# ==================== REQUEST MODELS ====================

class LearnerCreate(BaseModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = Field(None, alias="confirmPassword")
    contact: Optional[str] = None
    gender: Optional[Gender] = None
    location: Optional[str] = None
    bio: Optional[str] = None


class LearnerUpdate(BaseModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    contact: Optional[str] = None
    gender: Optional[Gender] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    profile_image: Optional[str] = Field(None, alias="profileImage")


async def _require_learner(db: AsyncIOMotorDatabase, learner_id: str) -> dict:
    learner = await user_service.get_user_by_id(db, learner_id)
    if not learner or learner.get("role") != UserRole.LEARNER.value:
        raise NotFound("Learner not found")
    return learner

# ==================== ENDPOINTS ====================

@router.get("")
async def list_learners(
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    """Learners with the total they have paid so far"""
    learners = await user_service.list_users(db, role=UserRole.LEARNER)
    paid = await paid_totals_by_learner(db)

    return {
        "success": True,
        "message": "Learners retrieved",
        "learners": [
            {**public_user(learner), "amountPaid": paid.get(learner["user_id"], 0)}
            for learner in learners
        ],
        "count": len(learners)
    }


@router.post("", status_code=201)
async def create_learner(
    data: LearnerCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    """Admin-created learners start verified"""
    required = (data.first_name, data.last_name, data.email, data.password, data.confirm_password)
    if not all(value and value.strip() for value in required):
        raise ValidationError("All required fields must be provided")
    if data.password != data.confirm_password:
        raise ValidationError("Passwords do not match")
    if len(data.password) < config.MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters long")

    learner = await user_service.create_user(
        db,
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        password=data.password,
        role=UserRole.LEARNER,
        is_verified=True,
        contact=data.contact,
        gender=data.gender,
        location=data.location,
        bio=data.bio
    )
    return {"success": True, "message": "Learner created successfully", "learner": public_user(learner)}


@router.get("/{learner_id}")
async def get_learner(
    learner_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    learner = await _require_learner(db, learner_id)
    paid = await paid_totals_by_learner(db)
    return {
        "success": True,
        "message": "Learner retrieved",
        "learner": {**public_user(learner), "amountPaid": paid.get(learner_id, 0)}
    }


@router.put("/{learner_id}")
async def update_learner(
    learner_id: str,
    data: LearnerUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    await _require_learner(db, learner_id)

    updates = {k: v for k, v in data.dict(exclude_unset=True).items() if v is not None}
    if not updates:
        raise ValidationError("No valid fields to update")
    if "gender" in updates:
        updates["gender"] = updates["gender"].value

    learner = await user_service.update_user(db, learner_id, updates)
    return {"success": True, "message": "Learner updated successfully", "learner": public_user(learner)}


@router.delete("/{learner_id}")
async def delete_learner(
    learner_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    """Removes the account and its enrollments; invoices are kept for the books"""
    learner = await _require_learner(db, learner_id)

    await user_service.delete_user(db, learner_id)
    await db.track_enrollments.delete_many({"learner_id": learner_id})
    await db.course_registrations.delete_many({"learner_id": learner_id})
    await log_audit(db, admin, "delete_learner", "learner", learner_id, {"email": learner["email"]})

    return {"success": True, "message": "Learner deleted successfully"}

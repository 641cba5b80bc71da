from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, validator

from gclients.audit import log_audit
from gclients.auth.auth_permissions import get_current_user, require_admin
from gclients.catalog.course_service import get_course, require_course
from gclients.catalog.track_service import get_track, require_track
from gclients.database import get_db
from gclients.enrollments import enrollment_service
from gclients.enrollments.enrollment_models import course_registration_response, track_enrollment_response
from gclients.enrollments.enrollment_schemas import (
    CourseRegistrationCreate,
    EnrollmentUpdate,
    TrackEnrollmentCreate,
    check_progress,
)
from gclients.errors import Forbidden, NotFound, ValidationError
from gclients.users.user_models import UserRole
from gclients.users.user_service import get_user_by_id

router = APIRouter(prefix="/api", tags=["Enrollments"])


class ProgressUpdate(BaseModel):
    progress: int

    @validator("progress")
    def validate_progress(cls, v):
        return check_progress(v)


async def _require_learner_account(db: AsyncIOMotorDatabase, learner_id: str) -> dict:
    learner = await get_user_by_id(db, learner_id)
    if not learner or learner.get("role") != UserRole.LEARNER.value:
        raise ValidationError("Learner not found")
    return learner


async def _expand_enrollment(db: AsyncIOMotorDatabase, enrollment: dict) -> dict:
    track = await get_track(db, enrollment["track_id"])
    learner = await get_user_by_id(db, enrollment["learner_id"])
    return track_enrollment_response(enrollment, track, learner)


async def _expand_registration(db: AsyncIOMotorDatabase, registration: dict) -> dict:
    course = await get_course(db, registration["course_id"])
    learner = await get_user_by_id(db, registration["learner_id"])
    return course_registration_response(registration, course, learner)

# ==================== LEARNER ====================

@router.get("/enrollments")
async def my_enrollments(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user)
):
    """Track enrollments of the calling user"""
    enrollments = await enrollment_service.list_track_enrollments(db, learner_id=user["user_id"])
    return {
        "success": True,
        "message": "Enrollments retrieved",
        "enrollments": [await _expand_enrollment(db, e) for e in enrollments]
    }


@router.put("/enrollments/{enrollment_id}/progress")
async def update_my_progress(
    enrollment_id: str,
    data: ProgressUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: dict = Depends(get_current_user)
):
    enrollment = await enrollment_service.get_track_enrollment(db, enrollment_id)
    if not enrollment:
        raise NotFound("Track enrollment not found")
    if enrollment["learner_id"] != user["user_id"]:
        raise Forbidden("You can only update your own enrollments")

    updated = await enrollment_service.update_progress(db, enrollment_id, data.progress, kind="track")
    return {"success": True, "message": "Progress updated", "enrollment": await _expand_enrollment(db, updated)}

# ==================== TRACK ENROLLMENTS (ADMIN) ====================

@router.get("/track-enrollments")
async def list_track_enrollments(
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    enrollments = await enrollment_service.list_track_enrollments(db)
    return {
        "success": True,
        "message": "Track enrollments retrieved",
        "enrollments": [await _expand_enrollment(db, e) for e in enrollments]
    }


@router.post("/track-enrollments", status_code=201)
async def create_track_enrollment(
    data: TrackEnrollmentCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    await _require_learner_account(db, data.learner_id)
    await require_track(db, data.track_id)

    enrollment = await enrollment_service.create_track_enrollment(
        db, data.learner_id, data.track_id, status=data.status, progress=data.progress
    )
    return {"success": True, "message": "Track enrollment created", "enrollment": await _expand_enrollment(db, enrollment)}


@router.get("/track-enrollments/{enrollment_id}")
async def get_track_enrollment(
    enrollment_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    enrollment = await enrollment_service.get_track_enrollment(db, enrollment_id)
    if not enrollment:
        raise NotFound("Track enrollment not found")
    return {"success": True, "message": "Track enrollment retrieved", "enrollment": await _expand_enrollment(db, enrollment)}


@router.put("/track-enrollments/{enrollment_id}")
async def update_track_enrollment(
    enrollment_id: str,
    data: EnrollmentUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    enrollment = await enrollment_service.update_track_enrollment(db, enrollment_id, data)
    return {"success": True, "message": "Track enrollment updated", "enrollment": await _expand_enrollment(db, enrollment)}


@router.delete("/track-enrollments/{enrollment_id}")
async def delete_track_enrollment(
    enrollment_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    await enrollment_service.delete_track_enrollment(db, enrollment_id)
    await log_audit(db, admin, "delete_track_enrollment", "track_enrollment", enrollment_id)
    return {"success": True, "message": "Track enrollment deleted"}

# ==================== COURSE REGISTRATIONS (ADMIN) ====================

@router.get("/course-registrations")
async def list_course_registrations(
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    registrations = await enrollment_service.list_course_registrations(db)
    return {
        "success": True,
        "message": "Course registrations retrieved",
        "registrations": [await _expand_registration(db, r) for r in registrations]
    }


@router.post("/course-registrations", status_code=201)
async def create_course_registration(
    data: CourseRegistrationCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    await _require_learner_account(db, data.learner_id)
    await require_course(db, data.course_id)

    registration = await enrollment_service.create_course_registration(
        db, data.learner_id, data.course_id, status=data.status, progress=data.progress
    )
    return {"success": True, "message": "Course registration created", "registration": await _expand_registration(db, registration)}


@router.get("/course-registrations/{registration_id}")
async def get_course_registration(
    registration_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    registration = await enrollment_service.get_course_registration(db, registration_id)
    if not registration:
        raise NotFound("Course registration not found")
    return {"success": True, "message": "Course registration retrieved", "registration": await _expand_registration(db, registration)}


@router.put("/course-registrations/{registration_id}")
async def update_course_registration(
    registration_id: str,
    data: EnrollmentUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    registration = await enrollment_service.update_course_registration(db, registration_id, data)
    return {"success": True, "message": "Course registration updated", "registration": await _expand_registration(db, registration)}


@router.delete("/course-registrations/{registration_id}")
async def delete_course_registration(
    registration_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    await enrollment_service.delete_course_registration(db, registration_id)
    await log_audit(db, admin, "delete_course_registration", "course_registration", registration_id)
    return {"success": True, "message": "Course registration deleted"}

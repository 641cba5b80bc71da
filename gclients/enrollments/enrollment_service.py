import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from gclients.database import generate_id, serialize_many, serialize_mongo
from gclients.enrollments.enrollment_models import CourseRegistration, EnrollmentStatus, TrackEnrollment
from gclients.enrollments.enrollment_schemas import EnrollmentUpdate
from gclients.errors import Conflict, NotFound

logger = logging.getLogger(__name__)

# Statuses that count towards a track's enrollment figure
COUNTED_STATUSES = [EnrollmentStatus.ACTIVE.value, EnrollmentStatus.COMPLETED.value]


def status_for_progress(progress: int) -> str:
    return EnrollmentStatus.COMPLETED.value if progress >= 100 else EnrollmentStatus.ACTIVE.value


def _build_updates(data: EnrollmentUpdate) -> dict:
    updates = {k: v for k, v in data.dict(exclude_unset=True).items() if v is not None}
    if "progress" in updates and "status" not in updates:
        updates["status"] = status_for_progress(updates["progress"])
    if "status" in updates:
        updates["status"] = EnrollmentStatus(updates["status"]).value
    updates["updated_at"] = datetime.utcnow()
    return updates

# ==================== TRACK ENROLLMENTS ====================

async def find_track_enrollment(db: AsyncIOMotorDatabase, learner_id: str, track_id: str) -> Optional[dict]:
    """
    Duplicate-enrollment guard
    Any status counts, including cancelled
    """
    return serialize_mongo(await db.track_enrollments.find_one({
        "learner_id": learner_id,
        "track_id": track_id
    }))

async def create_track_enrollment(
    db: AsyncIOMotorDatabase,
    learner_id: str,
    track_id: str,
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE,
    progress: int = 0,
    enrollment_id: Optional[str] = None
) -> dict:
    """
    Raises Conflict when the learner is already enrolled
    (the unique index turns a lost race into the same Conflict)
    """
    enrollment = TrackEnrollment(
        enrollment_id=enrollment_id or generate_id("ENR"),
        learner_id=learner_id,
        track_id=track_id,
        status=status,
        progress=progress
    )
    doc = enrollment.dict()

    try:
        await db.track_enrollments.insert_one(doc)
    except DuplicateKeyError:
        raise Conflict("You are already enrolled in this track")

    logger.info("Learner %s enrolled in track %s", learner_id, track_id)
    return serialize_mongo(doc)

async def list_track_enrollments(db: AsyncIOMotorDatabase, learner_id: Optional[str] = None) -> List[dict]:
    query = {"learner_id": learner_id} if learner_id else {}
    cursor = db.track_enrollments.find(query).sort("created_at", -1)
    return serialize_many(await cursor.to_list(length=None))

async def get_track_enrollment(db: AsyncIOMotorDatabase, enrollment_id: str) -> Optional[dict]:
    return serialize_mongo(await db.track_enrollments.find_one({"enrollment_id": enrollment_id}))

async def update_track_enrollment(db: AsyncIOMotorDatabase, enrollment_id: str, data: EnrollmentUpdate) -> dict:
    enrollment = await db.track_enrollments.find_one_and_update(
        {"enrollment_id": enrollment_id},
        {"$set": _build_updates(data)},
        return_document=ReturnDocument.AFTER
    )
    if not enrollment:
        raise NotFound("Track enrollment not found")
    return serialize_mongo(enrollment)

async def delete_track_enrollment(db: AsyncIOMotorDatabase, enrollment_id: str) -> None:
    result = await db.track_enrollments.delete_one({"enrollment_id": enrollment_id})
    if result.deleted_count == 0:
        raise NotFound("Track enrollment not found")

async def count_active_enrollments(db: AsyncIOMotorDatabase, track_id: str) -> int:
    """Enrollments for a track, cancelled ones excluded"""
    return await db.track_enrollments.count_documents({
        "track_id": track_id,
        "status": {"$in": COUNTED_STATUSES}
    })

# ==================== COURSE REGISTRATIONS ====================

async def create_course_registration(
    db: AsyncIOMotorDatabase,
    learner_id: str,
    course_id: str,
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE,
    progress: int = 0
) -> dict:
    registration = CourseRegistration(
        registration_id=generate_id("REG"),
        learner_id=learner_id,
        course_id=course_id,
        status=status,
        progress=progress
    )
    doc = registration.dict()

    try:
        await db.course_registrations.insert_one(doc)
    except DuplicateKeyError:
        raise Conflict("Learner is already registered for this course")

    return serialize_mongo(doc)

async def find_course_registration(db: AsyncIOMotorDatabase, learner_id: str, course_id: str) -> Optional[dict]:
    return serialize_mongo(await db.course_registrations.find_one({
        "learner_id": learner_id,
        "course_id": course_id
    }))

async def list_course_registrations(db: AsyncIOMotorDatabase, learner_id: Optional[str] = None) -> List[dict]:
    query = {"learner_id": learner_id} if learner_id else {}
    cursor = db.course_registrations.find(query).sort("created_at", -1)
    return serialize_many(await cursor.to_list(length=None))

async def get_course_registration(db: AsyncIOMotorDatabase, registration_id: str) -> Optional[dict]:
    return serialize_mongo(await db.course_registrations.find_one({"registration_id": registration_id}))

async def update_course_registration(db: AsyncIOMotorDatabase, registration_id: str, data: EnrollmentUpdate) -> dict:
    registration = await db.course_registrations.find_one_and_update(
        {"registration_id": registration_id},
        {"$set": _build_updates(data)},
        return_document=ReturnDocument.AFTER
    )
    if not registration:
        raise NotFound("Course registration not found")
    return serialize_mongo(registration)

async def delete_course_registration(db: AsyncIOMotorDatabase, registration_id: str) -> None:
    result = await db.course_registrations.delete_one({"registration_id": registration_id})
    if result.deleted_count == 0:
        raise NotFound("Course registration not found")

# ==================== PROGRESS ====================

async def update_progress(db: AsyncIOMotorDatabase, record_id: str, progress: int, kind: str = "track") -> dict:
    """
    Set progress on a track enrollment or course registration
    progress >= 100 completes the record, anything lower makes it active
    """
    data = EnrollmentUpdate(progress=progress)
    if kind == "track":
        return await update_track_enrollment(db, record_id, data)
    return await update_course_registration(db, record_id, data)

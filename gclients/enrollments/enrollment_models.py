from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

# ==================== ENUMS ====================

class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

# ==================== DATABASE MODELS ====================

class TrackEnrollment(BaseModel):
    """One per (learner, track), enforced by a unique index"""
    enrollment_id: str  # ENR_XXXXXX
    learner_id: str
    track_id: str
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    progress: int = 0
    enrollment_date: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        use_enum_values = True


class CourseRegistration(BaseModel):
    registration_id: str  # REG_XXXXXX
    learner_id: str
    course_id: str
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    progress: int = 0
    enrollment_date: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        use_enum_values = True

# ==================== RESPONSE SHAPES ====================

def _learner_summary(learner: Optional[dict]) -> Optional[dict]:
    if not learner:
        return None
    return {
        "id": learner["user_id"],
        "firstName": learner.get("first_name"),
        "lastName": learner.get("last_name"),
        "email": learner.get("email"),
    }


def track_enrollment_response(enrollment: dict, track: Optional[dict] = None, learner: Optional[dict] = None) -> dict:
    return {
        "id": enrollment["enrollment_id"],
        "learnerId": enrollment["learner_id"],
        "trackId": enrollment["track_id"],
        "status": enrollment.get("status"),
        "progress": enrollment.get("progress", 0),
        "enrollmentDate": enrollment.get("enrollment_date"),
        "track": {
            "id": track["track_id"],
            "name": track.get("name"),
            "slug": track.get("slug"),
            "description": track.get("description"),
        } if track else None,
        "learner": _learner_summary(learner),
        "createdAt": enrollment.get("created_at"),
        "updatedAt": enrollment.get("updated_at"),
    }


def course_registration_response(registration: dict, course: Optional[dict] = None, learner: Optional[dict] = None) -> dict:
    return {
        "id": registration["registration_id"],
        "learnerId": registration["learner_id"],
        "courseId": registration["course_id"],
        "status": registration.get("status"),
        "progress": registration.get("progress", 0),
        "enrollmentDate": registration.get("enrollment_date"),
        "course": {
            "id": course["course_id"],
            "title": course.get("title"),
            "description": course.get("description"),
            "instructor": course.get("instructor"),
        } if course else None,
        "learner": _learner_summary(learner),
        "createdAt": registration.get("created_at"),
        "updatedAt": registration.get("updated_at"),
    }

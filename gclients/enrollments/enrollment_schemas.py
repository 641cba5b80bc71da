from typing import Optional

from pydantic import BaseModel, Field, validator

from gclients.enrollments.enrollment_models import EnrollmentStatus


def check_progress(v):
    if v is not None and not 0 <= v <= 100:
        raise ValueError("Progress must be between 0 and 100")
    return v


class TrackEnrollmentCreate(BaseModel):
    learner_id: str = Field(..., alias="learnerId")
    track_id: str = Field(..., alias="trackId")
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    progress: int = 0

    @validator("progress")
    def validate_progress(cls, v):
        return check_progress(v)


class CourseRegistrationCreate(BaseModel):
    learner_id: str = Field(..., alias="learnerId")
    course_id: str = Field(..., alias="courseId")
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    progress: int = 0

    @validator("progress")
    def validate_progress(cls, v):
        return check_progress(v)


class EnrollmentUpdate(BaseModel):
    """
    Admin update for either record type
    When progress is given without a status, the status follows the progress
    """
    status: Optional[EnrollmentStatus] = None
    progress: Optional[int] = None

    @validator("progress")
    def validate_progress(cls, v):
        return check_progress(v)

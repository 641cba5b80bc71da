from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

# ==================== DATABASE MODELS ====================

class Track(BaseModel):
    """
    Paid learning path
    `courses` is the ordered list of course ids the track owns
    """
    track_id: str  # TRK_XXXXXX
    name: str
    slug: str
    price: float
    duration: int  # weeks
    instructor: str
    picture: Optional[str] = None
    description: str
    courses: List[str] = Field(default_factory=list)
    rating: float = 0
    reviews_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Course(BaseModel):
    course_id: str  # CRS_XXXXXX
    title: str
    description: str
    instructor: str
    duration: int
    price: float
    picture: Optional[str] = None
    track_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# ==================== RESPONSE SHAPES ====================

def track_response(track: dict, courses: Optional[List[dict]] = None) -> dict:
    data = {
        "id": track["track_id"],
        "name": track.get("name"),
        "slug": track.get("slug"),
        "price": track.get("price"),
        "duration": track.get("duration"),
        "instructor": track.get("instructor"),
        "picture": track.get("picture"),
        "description": track.get("description"),
        "courses": track.get("courses", []),
        "rating": track.get("rating", 0),
        "reviewsCount": track.get("reviews_count", 0),
        "createdAt": track.get("created_at"),
        "updatedAt": track.get("updated_at"),
    }
    if courses is not None:
        data["courseDetails"] = [course_response(c) for c in courses]
    return data


def course_response(course: dict) -> dict:
    return {
        "id": course["course_id"],
        "title": course.get("title"),
        "description": course.get("description"),
        "instructor": course.get("instructor"),
        "duration": course.get("duration"),
        "price": course.get("price"),
        "picture": course.get("picture"),
        "track": course.get("track_id"),
        "createdAt": course.get("created_at"),
        "updatedAt": course.get("updated_at"),
    }

from typing import List, Optional

from pydantic import BaseModel, Field, validator


def check_price(v):
    if v is not None and v < 0:
        raise ValueError("Price must be zero or more")
    return v


def check_duration(v):
    if v is not None and v <= 0:
        raise ValueError("Duration must be greater than zero")
    return v


def check_rating(v):
    if v is not None and not 0 <= v <= 5:
        raise ValueError("Rating must be between 0 and 5")
    return v


def check_not_blank(v):
    if v is None:
        return v
    if not v.strip():
        raise ValueError("must not be empty")
    return v.strip()


# ==================== TRACKS ====================

class TrackCreate(BaseModel):
    name: str
    price: float
    duration: int  # weeks
    instructor: str
    description: str
    picture: Optional[str] = None
    courses: List[str] = []
    rating: float = 0
    reviews_count: int = Field(0, alias="reviewsCount")

    @validator("name", "instructor", "description")
    def not_blank(cls, v):
        return check_not_blank(v)

    @validator("price")
    def validate_price(cls, v):
        return check_price(v)

    @validator("duration")
    def validate_duration(cls, v):
        return check_duration(v)

    @validator("rating")
    def validate_rating(cls, v):
        return check_rating(v)


class TrackUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = None
    duration: Optional[int] = None
    instructor: Optional[str] = None
    description: Optional[str] = None
    picture: Optional[str] = None
    courses: Optional[List[str]] = None
    rating: Optional[float] = None
    reviews_count: Optional[int] = Field(None, alias="reviewsCount")
    # slugs are frozen unless the caller explicitly asks for a new one
    regenerate_slug: bool = Field(False, alias="regenerateSlug")

    @validator("name", "instructor", "description")
    def not_blank(cls, v):
        return check_not_blank(v)

    @validator("price")
    def validate_price(cls, v):
        return check_price(v)

    @validator("duration")
    def validate_duration(cls, v):
        return check_duration(v)

    @validator("rating")
    def validate_rating(cls, v):
        return check_rating(v)


# ==================== COURSES ====================

class CourseCreate(BaseModel):
    title: str
    description: str
    instructor: str
    duration: int
    price: float
    track_id: str = Field(..., alias="track")
    picture: Optional[str] = None

    @validator("title", "description", "instructor")
    def not_blank(cls, v):
        return check_not_blank(v)

    @validator("price")
    def validate_price(cls, v):
        return check_price(v)

    @validator("duration")
    def validate_duration(cls, v):
        return check_duration(v)


class CourseUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    instructor: Optional[str] = None
    duration: Optional[int] = None
    price: Optional[float] = None
    track_id: Optional[str] = Field(None, alias="track")
    picture: Optional[str] = None

    @validator("title", "description", "instructor")
    def not_blank(cls, v):
        return check_not_blank(v)

    @validator("price")
    def validate_price(cls, v):
        return check_price(v)

    @validator("duration")
    def validate_duration(cls, v):
        return check_duration(v)

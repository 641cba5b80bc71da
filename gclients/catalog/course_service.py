import re
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from gclients.catalog.catalog_models import Course
from gclients.catalog.catalog_schemas import CourseCreate, CourseUpdate
from gclients.catalog.track_service import add_course_to_track, remove_course_from_track, require_track
from gclients.database import generate_id, serialize_many, serialize_mongo
from gclients.errors import NotFound

SEARCH_FIELDS = ("title", "description", "instructor")


async def list_courses(db: AsyncIOMotorDatabase, track_id: Optional[str] = None) -> List[dict]:
    query = {"track_id": track_id} if track_id else {}
    cursor = db.courses.find(query).sort("created_at", -1)
    return serialize_many(await cursor.to_list(length=None))


async def search_courses(db: AsyncIOMotorDatabase, text: str) -> List[dict]:
    """Case-insensitive substring match over title, description and instructor"""
    pattern = re.escape(text.strip())
    query = {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in SEARCH_FIELDS]}
    cursor = db.courses.find(query).sort("created_at", -1)
    return serialize_many(await cursor.to_list(length=None))


async def get_course(db: AsyncIOMotorDatabase, course_id: str) -> Optional[dict]:
    return serialize_mongo(await db.courses.find_one({"course_id": course_id}))


async def require_course(db: AsyncIOMotorDatabase, course_id: str) -> dict:
    course = await get_course(db, course_id)
    if not course:
        raise NotFound("Course not found")
    return course


async def count_courses(db: AsyncIOMotorDatabase) -> int:
    return await db.courses.count_documents({})


async def create_course(db: AsyncIOMotorDatabase, data: CourseCreate) -> dict:
    """Create a course and append it to its track"""
    await require_track(db, data.track_id)

    course = Course(course_id=generate_id("CRS"), **data.dict())
    doc = course.dict()
    await db.courses.insert_one(doc)
    await add_course_to_track(db, course.track_id, course.course_id)

    return serialize_mongo(doc)


async def update_course(db: AsyncIOMotorDatabase, course_id: str, data: CourseUpdate) -> dict:
    """Partial update; changing the track moves the course reference"""
    course = await require_course(db, course_id)
    updates = {k: v for k, v in data.dict(exclude_unset=True).items() if v is not None}

    new_track_id = updates.get("track_id")
    if new_track_id and new_track_id != course["track_id"]:
        await require_track(db, new_track_id)

    updates["updated_at"] = datetime.utcnow()
    updated = await db.courses.find_one_and_update(
        {"course_id": course_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER
    )

    if new_track_id and new_track_id != course["track_id"]:
        await remove_course_from_track(db, course["track_id"], course_id)
        await add_course_to_track(db, new_track_id, course_id)

    return serialize_mongo(updated)


async def delete_course(db: AsyncIOMotorDatabase, course_id: str) -> dict:
    """Delete a course, its track reference and its registrations"""
    course = await require_course(db, course_id)

    await db.courses.delete_one({"course_id": course_id})
    await remove_course_from_track(db, course["track_id"], course_id)
    await db.course_registrations.delete_many({"course_id": course_id})

    return course

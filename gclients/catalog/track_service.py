import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from gclients.catalog.catalog_models import Track
from gclients.catalog.catalog_schemas import TrackCreate, TrackUpdate
from gclients.catalog.slugs import unique_slug
from gclients.database import generate_id, serialize_many, serialize_mongo
from gclients.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

# Attempts at picking a free slug when a concurrent insert takes the same one
SLUG_RETRIES = 3

# ==================== LOOKUPS ====================

async def list_tracks(db: AsyncIOMotorDatabase) -> List[dict]:
    cursor = db.tracks.find({}).sort("created_at", -1)
    return serialize_many(await cursor.to_list(length=None))

async def get_track(db: AsyncIOMotorDatabase, track_id: str) -> Optional[dict]:
    return serialize_mongo(await db.tracks.find_one({"track_id": track_id}))

async def get_track_by_slug(db: AsyncIOMotorDatabase, slug: str) -> Optional[dict]:
    return serialize_mongo(await db.tracks.find_one({"slug": slug}))

async def require_track(db: AsyncIOMotorDatabase, track_id: str) -> dict:
    track = await get_track(db, track_id)
    if not track:
        raise NotFound("Track not found")
    return track

async def count_tracks(db: AsyncIOMotorDatabase) -> int:
    return await db.tracks.count_documents({})

async def get_track_courses(db: AsyncIOMotorDatabase, track: dict) -> List[dict]:
    """Course documents in the order the track lists them"""
    course_ids = track.get("courses", [])
    if not course_ids:
        return []
    docs = await db.courses.find({"course_id": {"$in": course_ids}}).to_list(length=None)
    by_id = {doc["course_id"]: serialize_mongo(doc) for doc in docs}
    return [by_id[cid] for cid in course_ids if cid in by_id]

# ==================== COURSE REFERENCES ====================

async def add_course_to_track(db: AsyncIOMotorDatabase, track_id: str, course_id: str) -> None:
    await db.tracks.update_one(
        {"track_id": track_id},
        {"$addToSet": {"courses": course_id}, "$set": {"updated_at": datetime.utcnow()}}
    )

async def remove_course_from_track(db: AsyncIOMotorDatabase, track_id: str, course_id: str) -> None:
    await db.tracks.update_one(
        {"track_id": track_id},
        {"$pull": {"courses": course_id}, "$set": {"updated_at": datetime.utcnow()}}
    )

async def _claim_courses(db: AsyncIOMotorDatabase, track_id: str, course_ids: List[str]) -> None:
    """
    Point every listed course at track_id, detaching it from its previous track
    """
    for course_id in course_ids:
        course = await db.courses.find_one({"course_id": course_id})
        if course["track_id"] != track_id:
            await remove_course_from_track(db, course["track_id"], course_id)
            await db.courses.update_one(
                {"course_id": course_id},
                {"$set": {"track_id": track_id, "updated_at": datetime.utcnow()}}
            )

async def _check_course_ids(db: AsyncIOMotorDatabase, course_ids: List[str]) -> List[str]:
    unique_ids = list(dict.fromkeys(course_ids))
    found = await db.courses.count_documents({"course_id": {"$in": unique_ids}})
    if found != len(unique_ids):
        raise ValidationError("One or more courses do not exist")
    return unique_ids

# ==================== WRITES ====================

async def create_track(db: AsyncIOMotorDatabase, data: TrackCreate) -> dict:
    """
    Create a track with a unique slug derived from its name
    Listed courses are moved under the new track
    """
    course_ids = await _check_course_ids(db, data.courses)
    fields = data.dict(exclude={"courses"})

    for _ in range(SLUG_RETRIES):
        track = Track(
            track_id=generate_id("TRK"),
            slug=await unique_slug(db, data.name),
            courses=course_ids,
            **fields
        )
        doc = track.dict()
        try:
            await db.tracks.insert_one(doc)
            break
        except DuplicateKeyError:
            logger.warning("Slug '%s' taken concurrently, retrying", track.slug)
    else:
        raise Conflict("Could not allocate a unique slug for this track")

    await _claim_courses(db, track.track_id, course_ids)
    logger.info("Track %s created with slug '%s'", track.track_id, track.slug)
    return serialize_mongo(doc)

async def update_track(db: AsyncIOMotorDatabase, track_id: str, data: TrackUpdate) -> dict:
    """
    Partial update

    The slug only changes when regenerate_slug is set.
    `courses` may reorder the track's courses or pull in courses from other
    tracks; dropping a course from the list is refused because every course
    needs an owning track.
    """
    track = await require_track(db, track_id)
    updates = data.dict(exclude_unset=True, exclude={"regenerate_slug"})
    updates = {k: v for k, v in updates.items() if v is not None}

    course_ids = None
    if "courses" in updates:
        course_ids = await _check_course_ids(db, updates["courses"])
        dropped = set(track.get("courses", [])) - set(course_ids)
        if dropped:
            raise ValidationError("Courses can only be moved to another track or deleted, not dropped")
        updates["courses"] = course_ids

    if data.regenerate_slug:
        updates["slug"] = await unique_slug(db, updates.get("name", track["name"]), exclude_track_id=track_id)

    updates["updated_at"] = datetime.utcnow()
    try:
        updated = await db.tracks.find_one_and_update(
            {"track_id": track_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError:
        raise Conflict("Slug already in use, please retry")

    if course_ids:
        await _claim_courses(db, track_id, course_ids)

    return serialize_mongo(updated)

async def delete_track(db: AsyncIOMotorDatabase, track_id: str) -> None:
    """Refused while the track still owns courses"""
    track = await require_track(db, track_id)
    if track.get("courses"):
        raise Conflict("Track still has courses. Move or delete them first.")
    await db.tracks.delete_one({"track_id": track_id})

async def migrate_slugs(db: AsyncIOMotorDatabase) -> List[dict]:
    """Backfill slugs for tracks that have none"""
    cursor = db.tracks.find({"$or": [
        {"slug": {"$exists": False}},
        {"slug": None},
        {"slug": ""}
    ]})
    tracks = await cursor.to_list(length=None)
    logger.info("Found %d tracks without slugs", len(tracks))

    migrated = []
    for track in tracks:
        slug = await unique_slug(db, track["name"], exclude_track_id=track["track_id"])
        await db.tracks.update_one(
            {"track_id": track["track_id"]},
            {"$set": {"slug": slug, "updated_at": datetime.utcnow()}}
        )
        logger.info("Track '%s' assigned slug '%s'", track["name"], slug)
        migrated.append({"id": track["track_id"], "name": track["name"], "slug": slug})

    return migrated

from typing import Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from gclients.audit import log_audit
from gclients.auth.auth_permissions import require_admin
from gclients.catalog import course_service, track_service
from gclients.catalog.catalog_models import course_response, track_response
from gclients.catalog.catalog_schemas import CourseCreate, CourseUpdate, TrackCreate, TrackUpdate
from gclients.database import get_db
from gclients.enrollments.enrollment_service import count_active_enrollments
from gclients.errors import NotFound

router = APIRouter(prefix="/api", tags=["Catalog"])

# ==================== TRACKS ====================

@router.get("/tracks")
async def list_tracks(db: AsyncIOMotorDatabase = Depends(get_db)):
    tracks = await track_service.list_tracks(db)
    return {
        "success": True,
        "message": "Tracks retrieved",
        "tracks": [track_response(t) for t in tracks],
        "count": len(tracks)
    }


@router.get("/tracks/by-slug/{slug}")
async def get_track_by_slug(slug: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Public track page: course details and enrollment count included"""
    track = await track_service.get_track_by_slug(db, slug)
    if not track:
        raise NotFound("Track not found")

    courses = await track_service.get_track_courses(db, track)
    data = track_response(track, courses)
    data["enrollmentCount"] = await count_active_enrollments(db, track["track_id"])

    return {"success": True, "message": "Track retrieved", "track": data}


@router.get("/tracks/{track_id}")
async def get_track(track_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    track = await track_service.require_track(db, track_id)
    courses = await track_service.get_track_courses(db, track)
    return {"success": True, "message": "Track retrieved", "track": track_response(track, courses)}


@router.post("/tracks", status_code=201)
async def create_track(
    data: TrackCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    track = await track_service.create_track(db, data)
    return {"success": True, "message": "Track created successfully", "track": track_response(track)}


@router.put("/tracks/{track_id}")
async def update_track(
    track_id: str,
    data: TrackUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    track = await track_service.update_track(db, track_id, data)
    return {"success": True, "message": "Track updated successfully", "track": track_response(track)}


@router.delete("/tracks/{track_id}")
async def delete_track(
    track_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    await track_service.delete_track(db, track_id)
    await log_audit(db, admin, "delete_track", "track", track_id)
    return {"success": True, "message": "Track deleted successfully"}


@router.post("/admin/migrate-slugs")
async def migrate_slugs(
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    migrated = await track_service.migrate_slugs(db)
    return {
        "success": True,
        "message": f"Slug migration completed ({len(migrated)} tracks updated)",
        "migrated": migrated
    }

# ==================== COURSES ====================

@router.get("/courses")
async def list_courses(
    q: Optional[str] = None,
    track: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """All courses, optionally filtered by track or a search term"""
    if q and q.strip():
        courses = await course_service.search_courses(db, q)
        if track:
            courses = [c for c in courses if c["track_id"] == track]
    else:
        courses = await course_service.list_courses(db, track_id=track)

    return {
        "success": True,
        "message": "Courses retrieved",
        "courses": [course_response(c) for c in courses],
        "count": len(courses)
    }


@router.get("/courses/{course_id}")
async def get_course(course_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    course = await course_service.require_course(db, course_id)
    return {"success": True, "message": "Course retrieved", "course": course_response(course)}


@router.post("/courses", status_code=201)
async def create_course(
    data: CourseCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    course = await course_service.create_course(db, data)
    return {"success": True, "message": "Course created successfully", "course": course_response(course)}


@router.put("/courses/{course_id}")
async def update_course(
    course_id: str,
    data: CourseUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    course = await course_service.update_course(db, course_id, data)
    return {"success": True, "message": "Course updated successfully", "course": course_response(course)}


@router.delete("/courses/{course_id}")
async def delete_course(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    course = await course_service.delete_course(db, course_id)
    await log_audit(db, admin, "delete_course", "course", course_id, {"track_id": course["track_id"]})
    return {"success": True, "message": "Course deleted successfully"}

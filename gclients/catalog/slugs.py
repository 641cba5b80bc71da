import re
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

_INVALID = re.compile(r"[^a-z0-9 -]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


def slugify(name: str) -> str:
    """
    URL-safe slug for a track name

    slugify("React 101!") -> "react-101"
    """
    slug = _INVALID.sub("", name.lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _DASHES.sub("-", slug)
    return slug.strip().strip("-")


async def unique_slug(db: AsyncIOMotorDatabase, name: str, exclude_track_id: Optional[str] = None) -> str:
    """
    slugify(name), suffixed with -1, -2, ... until no other track uses it
    """
    base = slugify(name)
    candidate = base
    counter = 1

    while True:
        query = {"slug": candidate}
        if exclude_track_id:
            query["track_id"] = {"$ne": exclude_track_id}
        if not await db.tracks.find_one(query, {"_id": 1}):
            return candidate
        candidate = f"{base}-{counter}"
        counter += 1

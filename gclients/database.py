import logging
import secrets
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from gclients import config

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(config.MONGO_URL)
db = client[config.MONGO_DB_NAME]


# ==================== DEPENDENCY ====================

async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return db


# ==================== HELPERS ====================

def generate_id(prefix: str) -> str:
    """Generate unique ID with prefix"""
    return f"{prefix}_{secrets.token_hex(8).upper()}"


def serialize_mongo(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    return doc


def serialize_many(docs: List[dict]) -> List[dict]:
    return [serialize_mongo(doc) for doc in docs]


# ==================== INDEXES ====================

async def create_indexes(database: AsyncIOMotorDatabase) -> None:
    """
    Create database indexes
    Called during application startup
    """
    # Users
    await database.users.create_index("user_id", unique=True)
    await database.users.create_index("email", unique=True)
    await database.users.create_index("role")
    await database.users.create_index("reset_token")

    # Catalog
    await database.tracks.create_index("track_id", unique=True)
    await database.tracks.create_index("slug", unique=True, sparse=True)
    await database.courses.create_index("course_id", unique=True)
    await database.courses.create_index("track_id")

    # Enrollments: one record per (learner, track) and per (learner, course)
    await database.track_enrollments.create_index("enrollment_id", unique=True)
    await database.track_enrollments.create_index([("learner_id", 1), ("track_id", 1)], unique=True)
    await database.course_registrations.create_index("registration_id", unique=True)
    await database.course_registrations.create_index([("learner_id", 1), ("course_id", 1)], unique=True)

    # Invoices
    await database.invoices.create_index("invoice_id", unique=True)
    await database.invoices.create_index([("learner_id", 1), ("created_at", -1)])
    await database.invoices.create_index("status")

    # Checkout bookkeeping
    await database.checkout_intents.create_index("intent_id", unique=True)
    await database.email_outbox.create_index("message_id", unique=True)
    await database.email_outbox.create_index("status")
    await database.audit_logs.create_index([("target_type", 1), ("target_id", 1)])

    logger.info("Database indexes created")

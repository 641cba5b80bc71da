from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field

from gclients.database import generate_id, serialize_many


class AuditLog(BaseModel):
    audit_id: str  # AUD_XXXXXX
    actor_user_id: str
    actor_email: Optional[str] = None
    role: str
    action: str
    target_type: str
    target_id: str
    metadata: dict = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


async def log_audit(
    db: AsyncIOMotorDatabase,
    actor: dict,
    action: str,
    target_type: str,
    target_id: str,
    metadata: dict = None
):
    """
    Record a destructive or important admin action

    Args:
        actor: user document of the admin performing the action
        action: Action performed (e.g., 'delete_track', 'mark_invoice_paid')
        target_type: Resource type (e.g., 'track', 'invoice', 'learner')
        target_id: ID of the resource
        metadata: Additional context (optional)
    """
    audit_log = AuditLog(
        audit_id=generate_id("AUD"),
        actor_user_id=actor["user_id"],
        actor_email=actor.get("email"),
        role=actor.get("role", "admin"),
        action=action,
        target_type=target_type,
        target_id=target_id,
        metadata=metadata or {},
    )

    await db.audit_logs.insert_one(audit_log.dict())


async def get_audit_trail(
    db: AsyncIOMotorDatabase,
    target_type: str = None,
    target_id: str = None,
    limit: int = 100
):
    """Audit entries, newest first, optionally filtered by target"""
    query = {}

    if target_type:
        query["target_type"] = target_type

    if target_id:
        query["target_id"] = target_id

    cursor = db.audit_logs.find(query).sort("timestamp", -1).limit(limit)
    return serialize_many(await cursor.to_list(length=limit))

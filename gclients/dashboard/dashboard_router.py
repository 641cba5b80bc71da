from typing import Optional

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from gclients.audit import get_audit_trail
from gclients.auth.auth_permissions import require_admin
from gclients.catalog.course_service import count_courses
from gclients.catalog.track_service import count_tracks
from gclients.dashboard.analytics import calculate_dashboard_metrics
from gclients.database import get_db
from gclients.notifications.mailer import Mailer, get_mailer
from gclients.notifications.notification_service import list_undelivered_messages
from gclients.reconciler import reconcile
from gclients.users.user_models import UserRole
from gclients.users.user_service import count_users

router = APIRouter(prefix="/api", tags=["Dashboard"])


@router.get("/dashboard/metrics")
async def dashboard_metrics(
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    metrics = await calculate_dashboard_metrics(db)
    return {"success": True, "message": "Dashboard metrics retrieved", "metrics": metrics}


@router.get("/public/stats")
async def public_stats(db: AsyncIOMotorDatabase = Depends(get_db)):
    """Landing page counters, no auth"""
    return {
        "coursesCount": await count_courses(db),
        "studentsCount": await count_users(db, role=UserRole.LEARNER),
        "tracksCount": await count_tracks(db),
    }

# ==================== OPERATIONS ====================

@router.post("/admin/notifications/retry")
async def retry_notifications(
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    admin: dict = Depends(require_admin)
):
    """Run a reconciliation pass now instead of waiting for the worker"""
    result = await reconcile(db, mailer)
    return {"success": True, "message": "Reconciliation complete", **result}


@router.get("/admin/notifications/failed")
async def failed_notifications(
    limit: int = Query(100, ge=1, le=500),
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    messages = await list_undelivered_messages(db, limit, include_dead=True)
    return {
        "success": True,
        "message": "Undelivered notifications retrieved",
        "messages": [
            {
                "messageId": m["message_id"],
                "toEmail": m["to_email"],
                "subject": m["subject"],
                "kind": m["kind"],
                "status": m["status"],
                "attempts": m.get("attempts", 0),
                "lastError": m.get("last_error"),
                "createdAt": m.get("created_at"),
            }
            for m in messages
        ],
        "count": len(messages)
    }


@router.get("/admin/audit-logs")
async def audit_logs(
    target_type: Optional[str] = Query(None, alias="targetType"),
    target_id: Optional[str] = Query(None, alias="targetId"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncIOMotorDatabase = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    logs = await get_audit_trail(db, target_type, target_id, limit)
    return {"success": True, "message": "Audit logs retrieved", "logs": logs, "count": len(logs)}

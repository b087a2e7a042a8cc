"""
Audit trail helpers.
"""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.models import AuditLog
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


def record_audit(
    db: AsyncSession,
    actor: Optional[User],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an audit log entry to the current transaction.

    The entry is not committed here; it is persisted together with the change
    it describes, so a rolled back change leaves no audit row behind.

    Args:
        db: Database session
        actor: User performing the action (None for scripts)
        action: Action performed (e.g., "create", "update", "delete", "assign_roles")
        resource_type: Type of resource (e.g., "role", "permission", "user")
        resource_id: ID of the resource
        details: Additional details

    Returns:
        The pending AuditLog object
    """
    audit_log = AuditLog(
        actor_id=actor.id if actor is not None else None,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
    )
    db.add(audit_log)

    log.info(
        f"Audit: actor={audit_log.actor_id} action={action} resource={resource_type}:{resource_id}"
    )

    return audit_log


async def list_audit_logs(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 50,
    actor_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
) -> Tuple[List[AuditLog], int]:
    """Return one page of audit entries, newest first, and the total count."""
    stmt = select(AuditLog)

    if actor_id:
        stmt = stmt.where(AuditLog.actor_id == actor_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total = (await db.execute(count_stmt)).scalar() or 0

    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total

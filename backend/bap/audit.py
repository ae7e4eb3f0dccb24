from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models


def log_action(
    db: Session,
    user_id: str | UUID,
    action: str,
    target_type: str | None = None,
    target_id: str | UUID | None = None,
    details: dict | None = None,
    *,
    now: datetime | None = None,
) -> models.AuditLog:
    """Stage an audit row; it commits together with the transition it records."""

    log = models.AuditLog(
        user_id=UUID(str(user_id)),
        action=action,
        target_type=target_type,
        target_id=UUID(str(target_id)) if target_id else None,
        details=details or {},
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(log)
    return log


def history_for_target(db: Session, target_id: UUID) -> list[models.AuditLog]:
    return (
        db.query(models.AuditLog)
        .filter(models.AuditLog.target_id == target_id)
        .order_by(models.AuditLog.created_at.asc())
        .all()
    )


def generate_report(
    db: Session,
    start: datetime,
    end: datetime,
    user_id: UUID | None = None,
):
    query = db.query(models.AuditLog).filter(
        models.AuditLog.created_at >= start,
        models.AuditLog.created_at <= end,
    )
    if user_id:
        query = query.filter(models.AuditLog.user_id == user_id)
    rows = (
        query.with_entities(models.AuditLog.action, func.count(models.AuditLog.id))
        .group_by(models.AuditLog.action)
        .all()
    )
    return [{"action": r[0], "count": r[1]} for r in rows]

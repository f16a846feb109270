import logging
import uuid
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .models import AuditLog, User, utcnow


logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    *,
    actor_id: str,
    action: str,
    resource: str,
    ip: str,
    details: dict[str, Any] | None = None,
) -> AuditLog:
    """Stage an audit entry in the caller's unit of work; it commits with the mutation."""
    actor = db.query(User).filter(User.id == actor_id).first()
    entry = AuditLog(
        id=f"audit-{uuid.uuid4().hex[:12]}",
        actor_id=actor_id,
        actor_name=actor.name if actor else "Unknown",
        action=action,
        resource=resource,
        ip=ip,
        timestamp=utcnow(),
        details=details,
    )
    db.add(entry)
    logger.debug(f"Audit {action} by {actor_id} on {resource}")
    return entry


def search_audits(db: Session, *, search: str | None = None, limit: int = 100) -> list[AuditLog]:
    query = db.query(AuditLog)
    if search:
        escaped = search.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        query = query.filter(
            or_(
                func.lower(AuditLog.actor_name).like(pattern, escape="\\"),
                func.lower(AuditLog.action).like(pattern, escape="\\"),
                func.lower(AuditLog.resource).like(pattern, escape="\\"),
            )
        )
    return query.order_by(AuditLog.seq.desc()).limit(limit).all()

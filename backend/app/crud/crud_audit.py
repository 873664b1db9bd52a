from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from .. import models


def log_action(
    db: Session,
    admin_id: int,
    action: str,
    action_type: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    details: Optional[dict] = None,
) -> models.AdminAuditLog:
    """Stage an audit row in the caller's transaction."""
    entry = models.AdminAuditLog(
        admin_id=admin_id,
        action=action,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(entry)
    db.flush()
    return entry


def list_actions(
    db: Session,
    *,
    action_type: Optional[str] = None,
    admin_id: Optional[int] = None,
    offset: int = 0,
    limit: int = 50,
) -> Tuple[List[models.AdminAuditLog], int]:
    query = db.query(models.AdminAuditLog)
    if action_type:
        query = query.filter(models.AdminAuditLog.action_type == action_type)
    if admin_id:
        query = query.filter(models.AdminAuditLog.admin_id == admin_id)
    total = query.count()
    items = (
        query.order_by(models.AdminAuditLog.created_at.desc(), models.AdminAuditLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total

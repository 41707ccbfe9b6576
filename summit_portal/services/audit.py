import json
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from ..models.models import AuditLog, utcnow


def snapshot(entity: Any, fields: Iterable[str]) -> dict:
    """Capture selected attributes of an ORM object for before/after comparison."""
    return {name: getattr(entity, name) for name in fields}


def audit_log(
    db_session: Session,
    actor_owner_id: Optional[int],
    action: str,
    target_entity_type: Optional[str] = None,
    target_entity_id: Optional[Any] = None,
    before: Any = None,
    after: Any = None,
    commit: bool = True,
) -> AuditLog:
    """Record an audit entry; pass commit=False to join the caller's transaction."""
    entry = AuditLog(
        timestamp=utcnow(),
        actor_owner_id=actor_owner_id,
        action=action,
        target_entity_type=target_entity_type,
        target_entity_id=None if target_entity_id is None else str(target_entity_id),
        before=None if before is None else json.dumps(before, default=str),
        after=None if after is None else json.dumps(after, default=str),
    )
    db_session.add(entry)
    if commit:
        db_session.commit()
    else:
        db_session.flush()
    return entry


def list_entries(
    session: Session,
    *,
    limit: int = 50,
    offset: int = 0,
    target_entity_type: Optional[str] = None,
) -> Tuple[List[AuditLog], int]:
    query = session.query(AuditLog).options(joinedload(AuditLog.actor))
    if target_entity_type:
        query = query.filter(AuditLog.target_entity_type == target_entity_type)
    total = query.count()
    entries = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()
    return entries, total

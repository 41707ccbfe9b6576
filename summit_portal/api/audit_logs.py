import json
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_board_member
from ..models.models import AuditLog, Owner
from ..schemas.schemas import AuditLogEntry, AuditLogList
from ..services import audit as audit_service

router = APIRouter()


def _decode(value: Optional[str]):
    return json.loads(value) if value else None


def audit_entry_read(entry: AuditLog) -> AuditLogEntry:
    return AuditLogEntry(
        id=entry.id,
        timestamp=entry.timestamp,
        actor_owner_id=entry.actor_owner_id,
        actor_name=entry.actor.full_name if entry.actor else None,
        action=entry.action,
        target_entity_type=entry.target_entity_type,
        target_entity_id=entry.target_entity_id,
        before=_decode(entry.before),
        after=_decode(entry.after),
    )


@router.get("/audit-logs", response_model=AuditLogList)
def list_audit_logs(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    entity_type: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member("CHANGE_MEMBERS")),
) -> AuditLogList:
    entries, total = audit_service.list_entries(db, limit=limit, offset=offset, target_entity_type=entity_type)
    return AuditLogList(items=[audit_entry_read(entry) for entry in entries], total=total)

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..constants import ADMIN_ROLE_ID, DEFAULT_BOARD_ROLES, PROTECTED_ROLE_IDS
from ..models.models import BoardMemberRole, Owner, OwnerBoardMemberMap
from .accounts import owner_has_active_ownership

logger = logging.getLogger(__name__)

ROLE_FLAGS = ("assess_fines", "change_rates", "change_members")


def ensure_board_roles(session: Session) -> None:
    existing = {role.id: role for role in session.query(BoardMemberRole).all()}
    names = {role.member_role.lower() for role in existing.values()}
    updated = False
    for role_id, name, assess_fines, change_rates, change_members in DEFAULT_BOARD_ROLES:
        if role_id in existing or name.lower() in names:
            continue
        session.add(
            BoardMemberRole(
                id=role_id,
                member_role=name,
                assess_fines=assess_fines,
                change_rates=change_rates,
                change_members=change_members,
            )
        )
        updated = True
    if updated:
        session.commit()


def list_roles(session: Session) -> List[BoardMemberRole]:
    return session.query(BoardMemberRole).order_by(BoardMemberRole.id.asc()).all()


def _role_name_taken(session: Session, name: str, exclude_id: Optional[int] = None) -> bool:
    query = session.query(BoardMemberRole.id).filter(func.lower(BoardMemberRole.member_role) == name.lower())
    if exclude_id is not None:
        query = query.filter(BoardMemberRole.id != exclude_id)
    return query.first() is not None


def create_role(session: Session, member_role: str, **flags: bool) -> BoardMemberRole:
    name = (member_role or "").strip()
    if not name:
        raise ValueError("Member role name is required")
    if _role_name_taken(session, name):
        raise ValueError("Board member role already exists")
    role = BoardMemberRole(member_role=name, **{flag: bool(flags.get(flag, False)) for flag in ROLE_FLAGS})
    session.add(role)
    session.flush()
    return role


def update_role(session: Session, role_id: int, changes: Dict[str, Any]) -> BoardMemberRole:
    if role_id in PROTECTED_ROLE_IDS:
        raise PermissionError("This board member role cannot be modified")
    role = session.get(BoardMemberRole, role_id)
    if role is None:
        raise LookupError("Board member role not found")

    name = changes.get("member_role")
    if name is not None:
        name = name.strip()
        if not name:
            raise ValueError("Member role name is required")
        if _role_name_taken(session, name, exclude_id=role.id):
            raise ValueError("Board member role already exists")
        role.member_role = name
    for flag in ROLE_FLAGS:
        if changes.get(flag) is not None:
            setattr(role, flag, bool(changes[flag]))
    session.add(role)
    session.flush()
    return role


def active_members(session: Session, today: Optional[date] = None) -> List[OwnerBoardMemberMap]:
    today = today or date.today()
    return (
        session.query(OwnerBoardMemberMap)
        .join(Owner, Owner.id == OwnerBoardMemberMap.owner_id)
        .options(joinedload(OwnerBoardMemberMap.owner), joinedload(OwnerBoardMemberMap.role))
        .filter(*OwnerBoardMemberMap.active_clause(today))
        .order_by(OwnerBoardMemberMap.role_id.asc(), Owner.last_name.asc())
        .all()
    )


def _active_membership(session: Session, owner_id: int, today: date) -> Optional[OwnerBoardMemberMap]:
    return (
        session.query(OwnerBoardMemberMap)
        .filter(OwnerBoardMemberMap.owner_id == owner_id, *OwnerBoardMemberMap.active_clause(today))
        .first()
    )


def is_administrator(session: Session, owner_id: int) -> bool:
    return (
        session.query(OwnerBoardMemberMap.id)
        .filter(OwnerBoardMemberMap.owner_id == owner_id, OwnerBoardMemberMap.role_id == ADMIN_ROLE_ID)
        .first()
        is not None
    )


def end_board_role(session: Session, actor_owner_id: int, owner_id: int, today: Optional[date] = None) -> OwnerBoardMemberMap:
    today = today or date.today()
    if is_administrator(session, owner_id):
        raise ValueError("Cannot modify administrator role")
    if owner_id == actor_owner_id:
        raise ValueError("Cannot modify your own role")
    membership = _active_membership(session, owner_id, today)
    if membership is None:
        raise ValueError("No active board member role found")
    membership.end_date = today
    session.add(membership)
    session.flush()
    logger.info("Ended board role %s for owner %s.", membership.role_id, owner_id)
    return membership


def add_board_member(session: Session, owner_id: int, role_id: int, today: Optional[date] = None) -> OwnerBoardMemberMap:
    today = today or date.today()
    if role_id == ADMIN_ROLE_ID:
        raise ValueError("Cannot assign administrator role")
    if session.get(BoardMemberRole, role_id) is None:
        raise LookupError("Board member role not found")
    if session.get(Owner, owner_id) is None:
        raise LookupError("Owner not found")
    if not owner_has_active_ownership(session, owner_id, today):
        raise ValueError("Owner does not have an active property ownership")

    active = _active_membership(session, owner_id, today)
    if active is not None and active.role_id != role_id:
        raise ValueError("Owner already has an active board member role")

    membership = active or (
        session.query(OwnerBoardMemberMap)
        .filter(OwnerBoardMemberMap.owner_id == owner_id, OwnerBoardMemberMap.role_id == role_id)
        .order_by(OwnerBoardMemberMap.start_date.desc())
        .first()
    )
    if membership is not None:
        membership.start_date = today
        membership.end_date = None
    else:
        membership = OwnerBoardMemberMap(owner_id=owner_id, role_id=role_id, start_date=today)
    session.add(membership)
    session.flush()
    return membership

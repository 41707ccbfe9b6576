from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_board_member
from ..models.models import Owner, OwnerBoardMemberMap
from ..schemas.schemas import (
    BoardMemberAdd,
    BoardMemberRead,
    BoardMemberRoleCreate,
    BoardMemberRoleRead,
    BoardMemberRoleUpdate,
)
from ..services import board as board_service
from ..services.audit import audit_log

router = APIRouter()


def board_member_read(membership: OwnerBoardMemberMap) -> BoardMemberRead:
    return BoardMemberRead(
        membership_id=membership.id,
        owner_id=membership.owner_id,
        name=membership.owner.full_name,
        email=membership.owner.email,
        role_id=membership.role_id,
        member_role=membership.role.member_role,
        start_date=membership.start_date,
        end_date=membership.end_date,
    )


@router.get("/board-member-roles", response_model=List[BoardMemberRoleRead])
def list_roles(
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> List[BoardMemberRoleRead]:
    return [BoardMemberRoleRead.model_validate(role) for role in board_service.list_roles(db)]


@router.post("/board-member-roles", response_model=BoardMemberRoleRead, status_code=201)
def create_role(
    payload: BoardMemberRoleCreate,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member("CHANGE_MEMBERS")),
) -> BoardMemberRoleRead:
    try:
        role = board_service.create_role(
            db,
            payload.member_role,
            assess_fines=payload.assess_fines,
            change_rates=payload.change_rates,
            change_members=payload.change_members,
        )
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="board_role.create",
        target_entity_type="BoardMemberRole",
        target_entity_id=role.id,
        after=payload.model_dump(),
    )
    return BoardMemberRoleRead.model_validate(role)


@router.put("/board-member-roles/{role_id}", response_model=BoardMemberRoleRead)
def update_role(
    role_id: int,
    payload: BoardMemberRoleUpdate,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member("CHANGE_MEMBERS")),
) -> BoardMemberRoleRead:
    try:
        role = board_service.update_role(db, role_id, payload.model_dump(exclude_unset=True))
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="board_role.update",
        target_entity_type="BoardMemberRole",
        target_entity_id=role.id,
        after=payload.model_dump(exclude_unset=True),
    )
    return BoardMemberRoleRead.model_validate(role)


@router.get("/board-members/active", response_model=List[BoardMemberRead])
def list_active_members(
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> List[BoardMemberRead]:
    return [board_member_read(membership) for membership in board_service.active_members(db)]


@router.post("/board-members", response_model=BoardMemberRead, status_code=201)
def add_board_member(
    payload: BoardMemberAdd,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member("CHANGE_MEMBERS")),
) -> BoardMemberRead:
    try:
        membership = board_service.add_board_member(db, payload.owner_id, payload.role_id)
    except LookupError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    db.refresh(membership)
    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="board_member.add",
        target_entity_type="Owner",
        target_entity_id=payload.owner_id,
        after={"role_id": payload.role_id, "start_date": membership.start_date},
    )
    return board_member_read(membership)


@router.put("/board-members/{owner_id}/end-role", response_model=BoardMemberRead)
def end_board_role(
    owner_id: int,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member("CHANGE_MEMBERS")),
) -> BoardMemberRead:
    try:
        membership = board_service.end_board_role(db, actor.id, owner_id)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    db.refresh(membership)
    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="board_member.end_role",
        target_entity_type="Owner",
        target_entity_id=owner_id,
        after={"role_id": membership.role_id, "end_date": membership.end_date},
    )
    return board_member_read(membership)

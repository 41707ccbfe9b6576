from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_active_owner, require_board_member
from ..models.models import Owner, ViolationType
from ..schemas.schemas import (
    ViolationIssueRequest,
    ViolationIssueResponse,
    ViolationTypeCreate,
    ViolationTypeRead,
    ViolationTypeUpdate,
)
from ..services import billing as billing_service
from ..services.audit import audit_log

router = APIRouter()


@router.get("/violation-types", response_model=List[ViolationTypeRead])
def list_violation_types(
    db: Session = Depends(get_db),
    _: Owner = Depends(get_active_owner),
) -> List[ViolationTypeRead]:
    types = db.query(ViolationType).order_by(ViolationType.description.asc()).all()
    return [ViolationTypeRead.model_validate(item) for item in types]


@router.post("/violation-types", status_code=201)
def create_violation_type(
    payload: ViolationTypeCreate,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member("ASSESS_FINES")),
):
    try:
        violation_type, debug = billing_service.create_violation_type(db, payload.description, payload.rate, actor)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="violation_type.create",
        target_entity_type="ViolationType",
        target_entity_id=violation_type.id,
        after={"description": violation_type.description, "rate": violation_type.rate},
    )
    return {"violation_type": ViolationTypeRead.model_validate(violation_type), "debug": debug}


@router.put("/violation-types/{violation_type_id}", response_model=ViolationTypeRead)
def update_violation_type(
    violation_type_id: int,
    payload: ViolationTypeUpdate,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member("ASSESS_FINES")),
) -> ViolationTypeRead:
    try:
        violation_type = billing_service.update_violation_type(
            db, violation_type_id, description=payload.description, rate=payload.rate
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="violation_type.update",
        target_entity_type="ViolationType",
        target_entity_id=violation_type.id,
        after={"description": violation_type.description, "rate": violation_type.rate},
    )
    return ViolationTypeRead.model_validate(violation_type)


@router.post("/violations", response_model=ViolationIssueResponse, status_code=201)
def issue_violation(
    payload: ViolationIssueRequest,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member("ASSESS_FINES")),
) -> ViolationIssueResponse:
    try:
        charge, message, debug = billing_service.issue_violation(
            db,
            owner_id=payload.owner_id,
            violation_type_id=payload.violation_type_id,
            violation_date=payload.violation_date,
            issued_by=actor,
        )
        db.commit()
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="violation.issue",
        target_entity_type="Charge",
        target_entity_id=charge.id,
        after={"owner_id": payload.owner_id, "amount": charge.amount, "violation_type_id": payload.violation_type_id},
    )
    return ViolationIssueResponse(success=True, charge_id=charge.id, message_id=message.id, debug=debug)

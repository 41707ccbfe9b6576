from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_board_member
from ..models.models import AssessmentRate, AssessmentType, Owner
from ..schemas.schemas import (
    AssessmentIssueRequest,
    AssessmentIssueResponse,
    AssessmentRateBatch,
    AssessmentRateRead,
    AssessmentTypeBatch,
    AssessmentTypeRead,
)
from ..services import billing as billing_service
from ..services.audit import audit_log

router = APIRouter()


@router.get("/assessment-types", response_model=List[AssessmentTypeRead])
def list_assessment_types(
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> List[AssessmentTypeRead]:
    types = db.query(AssessmentType).order_by(AssessmentType.description.asc()).all()
    return [AssessmentTypeRead.model_validate(item) for item in types]


@router.post("/assessment-types/batch", response_model=List[AssessmentTypeRead])
def upsert_assessment_types(
    payload: AssessmentTypeBatch,
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member("CHANGE_RATES")),
) -> List[AssessmentTypeRead]:
    types = billing_service.upsert_assessment_types(db, payload.descriptions)
    db.commit()
    return [AssessmentTypeRead.model_validate(item) for item in types]


@router.get("/assessment-rates", response_model=List[AssessmentRateRead])
def list_assessment_rates(
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> List[AssessmentRateRead]:
    rates = db.query(AssessmentRate).order_by(AssessmentRate.year.desc(), AssessmentRate.id.asc()).all()
    return [AssessmentRateRead.model_validate(item) for item in rates]


@router.post("/assessment-rates/batch", response_model=List[AssessmentRateRead])
def upsert_assessment_rates(
    payload: AssessmentRateBatch,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member("CHANGE_RATES")),
) -> List[AssessmentRateRead]:
    try:
        rates = billing_service.upsert_assessment_rates(db, [rate.model_dump() for rate in payload.rates])
    except LookupError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="assessment_rates.upsert",
        target_entity_type="AssessmentRate",
        after=[{"id": rate.id, "year": rate.year, "amount": rate.amount} for rate in rates],
    )
    return [AssessmentRateRead.model_validate(rate) for rate in rates]


@router.get("/assessment-rates/yearly/{year}", response_model=AssessmentRateRead)
def read_yearly_rate(
    year: int,
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> AssessmentRateRead:
    rate = billing_service.get_yearly_rate(db, year)
    if rate is None:
        raise HTTPException(status_code=404, detail=f"No yearly assessment rate found for {year}")
    return AssessmentRateRead.model_validate(rate)


@router.post("/assessments/issue", response_model=AssessmentIssueResponse, status_code=201)
def issue_assessment(
    payload: AssessmentIssueRequest,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member("CHANGE_RATES")),
) -> AssessmentIssueResponse:
    try:
        debug = billing_service.issue_assessment(
            db,
            type_id=payload.type_id,
            amount=payload.amount,
            owners=[target.model_dump() for target in payload.owners],
            rate_id=payload.rate_id,
            issued_by=actor,
        )
        db.commit()
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="assessment.issue",
        target_entity_type="AssessmentType",
        target_entity_id=payload.type_id,
        after={"amount": debug["amount"], "created": debug["created"], "requested": debug["requested"]},
    )
    return AssessmentIssueResponse(success=debug["success"], created=debug["created"], debug=debug)

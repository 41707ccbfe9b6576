from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_active_owner, require_board_member
from ..models.models import Owner, Survey
from ..schemas.schemas import (
    SurveyCreate,
    SurveyCreateResponse,
    SurveyListResponse,
    SurveyRead,
    SurveyResponseCreate,
    SurveyResults,
)
from ..services import surveys as survey_service
from ..services.audit import audit_log

router = APIRouter(prefix="/surveys", tags=["surveys"])


def survey_read(survey: Survey) -> SurveyRead:
    return SurveyRead(
        id=survey.id,
        question=survey.question,
        answers=survey.answers,
        start_date=survey.start_date,
        end_date=survey.end_date,
        status=survey.status,
        results_sent=survey.results_sent,
    )


@router.get("", response_model=SurveyListResponse)
def list_surveys(
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> SurveyListResponse:
    if survey_service.close_expired_surveys(db):
        db.commit()
    listing = survey_service.surveys_for_owner(db, owner.id)
    return SurveyListResponse(
        active=[survey_read(survey) for survey in listing["active"]],
        inactive=[survey_read(survey) for survey in listing["inactive"]],
        user_responses=listing["user_responses"],
    )


@router.post("", response_model=SurveyCreateResponse, status_code=201)
def create_survey(
    payload: SurveyCreate,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member()),
) -> SurveyCreateResponse:
    try:
        survey, email_stats = survey_service.create_survey(
            db,
            question=payload.question,
            answers=payload.answers,
            end_date=payload.end_date,
            created_by=actor,
        )
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="survey.create",
        target_entity_type="Survey",
        target_entity_id=survey.id,
        after={"question": survey.question, "end_date": survey.end_date},
    )
    return SurveyCreateResponse(survey=survey_read(survey), email_stats=email_stats)


@router.post("/{survey_id}/responses", status_code=201)
def submit_response(
    survey_id: int,
    payload: SurveyResponseCreate,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
):
    try:
        response = survey_service.submit_response(db, owner.id, survey_id, payload.answer)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return {"success": True, "survey_id": survey_id, "answer": response.answer}


@router.get("/{survey_id}/results", response_model=SurveyResults)
def read_results(
    survey_id: int,
    db: Session = Depends(get_db),
    _: Owner = Depends(get_active_owner),
) -> SurveyResults:
    try:
        survey = survey_service.get_survey(db, survey_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return SurveyResults(**survey_service.compute_results(db, survey))

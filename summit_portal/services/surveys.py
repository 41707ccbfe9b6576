from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..constants import SURVEY_ANSWER_SLOTS
from ..models.models import Owner, OwnerSurveyMap, Survey
from . import email, preferences
from .email_templates import format_date
from .messages import send_system_message

logger = logging.getLogger(__name__)

NO_RESPONSES_TEXT = "No responses were received for this survey."
ALREADY_RESPONDED_TEXT = "You have already responded to this survey"


def is_open(survey: Survey, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return survey.status == "ACTIVE" and today < survey.end_date


def create_survey(
    session: Session,
    *,
    question: str,
    answers: Sequence[str],
    end_date: date,
    created_by: Optional[Owner] = None,
    today: Optional[date] = None,
) -> Tuple[Survey, Dict[str, int]]:
    today = today or date.today()
    question = (question or "").strip()
    answers = [answer.strip() for answer in answers if answer and answer.strip()]
    if not question:
        raise ValueError("Question is required")
    if not answers or len(answers) > SURVEY_ANSWER_SLOTS:
        raise ValueError("Between 1 and 4 answers are required")
    if end_date <= today:
        raise ValueError("End date must be in the future")

    slots = {f"answer_{index}": text for index, text in enumerate(answers, start=1)}
    survey = Survey(
        question=question,
        start_date=today,
        end_date=end_date,
        status="ACTIVE",
        results_sent=False,
        created_by_owner_id=created_by.id if created_by else None,
        **slots,
    )
    session.add(survey)
    session.flush()

    owners = preferences.owners_opted_in(session, preferences.NotificationCategory.NEWS_DOCS)
    stats = email.broadcast(
        session,
        owners,
        "survey",
        lambda owner: {
            "recipient_name": owner.full_name,
            "survey_question": survey.question,
            "survey_end_date": format_date(survey.end_date),
            "survey_url": f"{settings.frontend_url}/surveys",
        },
    )
    return survey, {"sent": stats["sent"], "failed": stats["failed"]}


def get_survey(session: Session, survey_id: int) -> Survey:
    survey = session.get(Survey, survey_id)
    if survey is None:
        raise LookupError("Survey not found")
    return survey


def has_responded(session: Session, owner_id: int, survey_id: int) -> bool:
    existing = (
        session.query(OwnerSurveyMap.id)
        .filter(OwnerSurveyMap.owner_id == owner_id, OwnerSurveyMap.survey_id == survey_id)
        .first()
    )
    return existing is not None


def submit_response(
    session: Session,
    owner_id: int,
    survey_id: int,
    answer: int,
    today: Optional[date] = None,
) -> OwnerSurveyMap:
    today = today or date.today()
    survey = get_survey(session, survey_id)
    if survey.status != "ACTIVE":
        raise ValueError("Survey is not active")
    if today >= survey.end_date:
        raise ValueError("Survey has ended")
    if answer not in survey.answers:
        raise ValueError("Invalid answer")
    if has_responded(session, owner_id, survey.id):
        raise ValueError(ALREADY_RESPONDED_TEXT)

    response = OwnerSurveyMap(owner_id=owner_id, survey_id=survey.id, answer=answer)
    session.add(response)
    try:
        session.flush()
    except IntegrityError as exc:
        # A concurrent submission won the uq_owner_survey race.
        session.rollback()
        raise ValueError(ALREADY_RESPONDED_TEXT) from exc
    return response


def compute_results(session: Session, survey: Survey) -> Dict[str, Any]:
    counts = dict(
        session.query(OwnerSurveyMap.answer, func.count(OwnerSurveyMap.id))
        .filter(OwnerSurveyMap.survey_id == survey.id)
        .group_by(OwnerSurveyMap.answer)
        .all()
    )
    total = sum(counts.values())
    answers: Dict[int, Dict[str, Any]] = {}
    for slot, text in survey.answers.items():
        count = counts.get(slot, 0)
        percentage = round(count * 100.0 / total, 1) if total else 0.0
        answers[slot] = {"text": text, "count": count, "percentage": percentage}
    return {"survey_id": survey.id, "question": survey.question, "total_responses": total, "answers": answers}


def format_results_message(survey: Survey, results: Dict[str, Any]) -> str:
    total = results["total_responses"]
    lines = [
        "Survey Results",
        "",
        f"Question: {survey.question}",
        "",
        f"Total Responses: {total}",
        "",
    ]
    if not total:
        lines.append(NO_RESPONSES_TEXT)
        return "\n".join(lines)
    lines.append("Results:")
    for slot in sorted(results["answers"]):
        entry = results["answers"][slot]
        if entry["count"]:
            lines.append(f"{entry['text']}: {entry['count']} responses ({entry['percentage']:.1f}%)")
    return "\n".join(lines)


def close_survey(session: Session, survey: Survey) -> bool:
    """Close the survey and broadcast results; only the caller that flips results_sent sends."""
    changed = (
        session.query(Survey)
        .filter(Survey.id == survey.id, Survey.results_sent.is_(False))
        .update({Survey.status: "INACTIVE", Survey.results_sent: True}, synchronize_session=False)
    )
    session.expire(survey, ["status", "results_sent"])
    if changed != 1:
        return False

    results = compute_results(session, survey)
    recipient_ids = [row[0] for row in session.query(Owner.id).order_by(Owner.id.asc()).all()]
    if recipient_ids:
        send_system_message(
            session,
            recipient_ids,
            format_results_message(survey, results),
            subject=f"Survey Results: {survey.question[:80]}",
        )
    logger.info("Closed survey %s with %d responses.", survey.id, results["total_responses"])
    return True


def expired_surveys(session: Session, today: Optional[date] = None) -> List[Survey]:
    today = today or date.today()
    return (
        session.query(Survey)
        .filter(Survey.status == "ACTIVE", Survey.end_date <= today)
        .order_by(Survey.end_date.asc(), Survey.id.asc())
        .all()
    )


def close_expired_surveys(session: Session, today: Optional[date] = None) -> int:
    closed = 0
    for survey in expired_surveys(session, today):
        if close_survey(session, survey):
            closed += 1
    return closed


def surveys_for_owner(session: Session, owner_id: int) -> Dict[str, Any]:
    surveys = session.query(Survey).order_by(Survey.created_at.desc(), Survey.id.desc()).all()
    responses = dict(
        session.query(OwnerSurveyMap.survey_id, OwnerSurveyMap.answer)
        .filter(OwnerSurveyMap.owner_id == owner_id)
        .all()
    )
    return {
        "active": [survey for survey in surveys if survey.status == "ACTIVE"],
        "inactive": [survey for survey in surveys if survey.status != "ACTIVE"],
        "user_responses": responses,
    }

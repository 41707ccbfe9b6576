from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..constants import CHARGE_DUE_DAYS, DEFAULT_ASSESSMENT_TYPES
from ..models.models import (
    Account,
    AssessmentRate,
    AssessmentType,
    Charge,
    Message,
    Owner,
    ViolationType,
)
from . import email
from .accounts import adjust_balance, ensure_decimal, find_active_account
from .email_templates import format_currency, format_date
from .messages import active_board_member_ids, send_system_message

logger = logging.getLogger(__name__)


def validate_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError("Invalid amount format")
    if not amount.is_finite() or amount <= 0:
        raise ValueError("Invalid amount format")
    return amount.quantize(Decimal("0.01"))


def due_date_from(start: date) -> date:
    return start + timedelta(days=CHARGE_DUE_DAYS)


def send_best_effort(
    session: Session,
    debug: Dict[str, Any],
    owner: Owner,
    template: str,
    context: Mapping[str, Any],
    attachments: Optional[Sequence[email.EmailAttachment]] = None,
) -> bool:
    """Send an owner email without letting delivery problems escape; outcome lands in debug."""
    debug.setdefault("emailSent", False)
    if not owner.email:
        debug["emailSkipped"] = "Owner has no email address"
        return False
    try:
        sent = email.send_email(session, to=owner.email, template=template, context=context, attachments=attachments)
    except Exception as exc:
        logger.warning("Best-effort %s email to owner %s failed: %s", template, owner.id, exc)
        debug["emailError"] = str(exc)
        return False
    debug["emailSent"] = sent
    if not sent:
        debug["emailSkipped"] = "Notification preferences"
    return sent


def create_charge(
    session: Session,
    account: Account,
    *,
    charge_type: str,
    amount: Decimal,
    due_date: date,
    issued_by_owner_id: Optional[int] = None,
    **links: Any,
) -> Charge:
    charge = Charge(
        account_id=account.id,
        charge_type=charge_type,
        amount=amount,
        payment_due_date=due_date,
        issued_by_owner_id=issued_by_owner_id,
        **links,
    )
    session.add(charge)
    session.flush()
    adjust_balance(session, account, amount)
    return charge


def issue_violation(
    session: Session,
    *,
    owner_id: int,
    violation_type_id: int,
    violation_date: date,
    issued_by: Optional[Owner] = None,
) -> Tuple[Charge, Message, Dict[str, Any]]:
    """Charge an owner's active account for a violation and notify them.

    Everything except the email joins the caller's transaction; the caller
    commits or rolls back.
    """
    account = find_active_account(session, owner_id)
    if account is None:
        raise ValueError("No active account found for this owner")
    violation_type = session.get(ViolationType, violation_type_id)
    if violation_type is None:
        raise ValueError("Invalid violation type")

    rate = ensure_decimal(violation_type.rate)
    due_date = due_date_from(violation_date)
    debug: Dict[str, Any] = {"accountId": account.id, "chargeCreated": False, "messageCreated": False}

    charge = create_charge(
        session,
        account,
        charge_type="violation",
        amount=rate,
        due_date=due_date,
        issued_by_owner_id=issued_by.id if issued_by else None,
        violation_date=violation_date,
        violation_type_id=violation_type.id,
    )
    debug.update(chargeCreated=True, chargeId=charge.id)

    address = account.property.address
    message = send_system_message(
        session,
        [owner_id],
        (
            f"A violation has been recorded for your property at {address}.\n\n"
            f"Violation Type: {violation_type.description}\n"
            f"Date of Violation: {format_date(violation_date)}\n"
            f"Amount Due: {format_currency(rate)}\n"
            f"Due Date: {format_date(due_date)}"
        ),
        subject="Violation Notice",
    )
    debug.update(messageCreated=True, messageId=message.id)

    owner = session.get(Owner, owner_id)
    send_best_effort(
        session,
        debug,
        owner,
        "violation",
        {
            "recipient_name": owner.full_name,
            "property_address": address,
            "violation_type": violation_type.description,
            "violation_date": format_date(violation_date),
            "amount": format_currency(rate),
            "due_date": format_date(due_date),
        },
    )
    logger.info("Issued violation charge %s (%s) to account %s.", charge.id, rate, account.id)
    return charge, message, debug


def issue_assessment(
    session: Session,
    *,
    type_id: int,
    amount: Any,
    owners: Iterable[Mapping[str, int]],
    rate_id: Optional[int] = None,
    issued_by: Optional[Owner] = None,
) -> Dict[str, Any]:
    validated_amount = validate_amount(amount)
    assessment_type = session.get(AssessmentType, type_id)
    if assessment_type is None:
        raise ValueError("Invalid assessment type")
    if rate_id is not None and session.get(AssessmentRate, rate_id) is None:
        raise ValueError("Invalid assessment rate")

    due_date = due_date_from(date.today())
    targets = list(owners)
    owner_results: List[Dict[str, Any]] = []
    created = 0

    for target in targets:
        result: Dict[str, Any] = {"ownerId": target["owner_id"], "accountId": target["account_id"]}
        try:
            with session.begin_nested():
                account = session.get(Account, target["account_id"])
                if account is None or account.owner_id != target["owner_id"]:
                    raise ValueError("Account not associated with this owner")
                owner = session.get(Owner, target["owner_id"])
                charge = create_charge(
                    session,
                    account,
                    charge_type="assessment",
                    amount=validated_amount,
                    due_date=due_date,
                    issued_by_owner_id=issued_by.id if issued_by else None,
                    assessment_type_id=assessment_type.id,
                    assessment_rate_id=rate_id,
                )
                message = send_system_message(
                    session,
                    [owner.id],
                    (
                        f"A {assessment_type.description} has been issued for {account.property.address}.\n\n"
                        f"Amount Due: {format_currency(validated_amount)}\n"
                        f"Due Date: {format_date(due_date)}"
                    ),
                    subject="New Assessment",
                )
            result.update(success=True, chargeId=charge.id, messageId=message.id)
            created += 1
            send_best_effort(
                session,
                result,
                owner,
                "assessment",
                {
                    "recipient_name": owner.full_name,
                    "assessment_type": assessment_type.description,
                    "amount": format_currency(validated_amount),
                    "property_address": account.property.address,
                    "due_date": format_date(due_date),
                },
            )
        except Exception as exc:
            logger.warning("Assessment for owner %s failed: %s", target["owner_id"], exc)
            result.update(success=False, error=str(exc))
        owner_results.append(result)

    return {
        "success": created == len(targets),
        "created": created,
        "requested": len(targets),
        "amount": str(validated_amount),
        "dueDate": due_date.isoformat(),
        "ownerResults": owner_results,
    }


# --- Violation types ---


def create_violation_type(session: Session, description: str, rate: Decimal, added_by: Owner) -> Tuple[ViolationType, Dict[str, Any]]:
    violation_type = ViolationType(description=description.strip(), rate=validate_amount(rate))
    session.add(violation_type)
    session.flush()

    debug: Dict[str, Any] = {"notified": 0, "errors": []}
    board_members = session.query(Owner).filter(Owner.id.in_(active_board_member_ids(session))).all()
    for member in board_members:
        if not member.email:
            continue
        try:
            if email.send_email(
                session,
                to=member.email,
                template="violation_type",
                context={
                    "description": violation_type.description,
                    "rate": format_currency(violation_type.rate),
                    "added_by": added_by.full_name,
                },
            ):
                debug["notified"] += 1
        except Exception as exc:
            logger.warning("Violation type notice to board member %s failed: %s", member.id, exc)
            debug["errors"].append({"ownerId": member.id, "error": str(exc)})
    return violation_type, debug


def update_violation_type(
    session: Session,
    violation_type_id: int,
    description: Optional[str] = None,
    rate: Optional[Decimal] = None,
) -> ViolationType:
    violation_type = session.get(ViolationType, violation_type_id)
    if violation_type is None:
        raise LookupError("Violation type not found")
    if description is not None:
        if not description.strip():
            raise ValueError("Description is required")
        violation_type.description = description.strip()
    if rate is not None:
        violation_type.rate = validate_amount(rate)
    session.add(violation_type)
    session.flush()
    return violation_type


# --- Assessment types and rates ---


def upsert_assessment_types(session: Session, descriptions: Iterable[str]) -> List[AssessmentType]:
    existing = {item.description.lower(): item for item in session.query(AssessmentType).all()}
    for description in descriptions:
        cleaned = (description or "").strip()
        if not cleaned or cleaned.lower() in existing:
            continue
        assessment_type = AssessmentType(description=cleaned)
        session.add(assessment_type)
        existing[cleaned.lower()] = assessment_type
    session.flush()
    return session.query(AssessmentType).order_by(AssessmentType.description.asc()).all()


def upsert_assessment_rates(session: Session, rates: Iterable[Mapping[str, Any]]) -> List[AssessmentRate]:
    """Create or update rates; a yearly flag clears the flag on the year's other rates."""
    touched: List[AssessmentRate] = []
    for payload in rates:
        rate_id = payload.get("id")
        if rate_id is not None:
            rate = session.get(AssessmentRate, rate_id)
            if rate is None:
                raise LookupError(f"Assessment rate {rate_id} not found")
        else:
            rate = AssessmentRate()
        rate.year = int(payload["year"])
        rate.amount = validate_amount(payload["amount"])
        rate.is_yearly_assessment = bool(payload.get("is_yearly_assessment"))
        session.add(rate)
        session.flush()

        if rate.is_yearly_assessment:
            session.query(AssessmentRate).filter(
                AssessmentRate.year == rate.year,
                AssessmentRate.id != rate.id,
                AssessmentRate.is_yearly_assessment.is_(True),
            ).update({AssessmentRate.is_yearly_assessment: False}, synchronize_session="fetch")
        touched.append(rate)
    session.flush()
    return touched


def get_yearly_rate(session: Session, year: int) -> Optional[AssessmentRate]:
    return (
        session.query(AssessmentRate)
        .filter(AssessmentRate.year == year, AssessmentRate.is_yearly_assessment.is_(True))
        .order_by(AssessmentRate.id.desc())
        .first()
    )


def ensure_assessment_types(session: Session) -> None:
    existing = {item.description.lower() for item in session.query(AssessmentType).all()}
    missing = [name for name in DEFAULT_ASSESSMENT_TYPES if name.lower() not in existing]
    for name in missing:
        session.add(AssessmentType(description=name))
    if missing:
        session.commit()

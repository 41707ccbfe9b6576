"""Scheduled maintenance jobs.

Each job works inside the caller's session, isolates per-row failures in a
savepoint, and commits once when the run is finished.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import PAST_DUE_REMINDER_INTERVAL_DAYS, PAST_DUE_REMINDER_SUBJECT, REGULAR_ASSESSMENT_TYPE
from ..models.models import (
    Account,
    AssessmentType,
    Charge,
    Message,
    Owner,
    OwnerMessageMap,
    PropertyOwnership,
    utcnow,
)
from . import preferences
from .accounts import active_ownerships, ensure_decimal
from .announcements import due_for_publication, notify_owners
from .billing import get_yearly_rate, issue_assessment, send_best_effort
from .email_templates import format_currency
from .messages import SystemSender, send_system_message
from .surveys import close_survey, expired_surveys

logger = logging.getLogger(__name__)


@dataclass
class JobStats:
    processed: int = 0
    emails_sent: int = 0
    errors: int = 0
    details: List[str] = field(default_factory=list)

    def record_error(self, context: str, exc: Exception) -> None:
        self.errors += 1
        self.details.append(f"{context}: {exc}")
        logger.warning("%s failed: %s", context, exc)


def close_expired_surveys_job(session: Session, today: Optional[date] = None) -> JobStats:
    stats = JobStats()
    for survey in expired_surveys(session, today):
        try:
            with session.begin_nested():
                if close_survey(session, survey):
                    stats.processed += 1
        except Exception as exc:
            stats.record_error(f"Closing survey {survey.id}", exc)
    session.commit()
    logger.info("Survey closure job closed %d surveys (%d errors).", stats.processed, stats.errors)
    return stats


def publish_scheduled_announcements(session: Session, now: Optional[datetime] = None) -> JobStats:
    now = now or utcnow().replace(tzinfo=None)
    stats = JobStats()
    for announcement in due_for_publication(session, now):
        try:
            with session.begin_nested():
                announcement.status = "PUBLISHED"
                session.add(announcement)
                session.flush()
            stats.processed += 1
        except Exception as exc:
            stats.record_error(f"Publishing announcement {announcement.id}", exc)
            continue
        email_stats = notify_owners(session, announcement)
        stats.emails_sent += email_stats["sent"]
    session.commit()
    logger.info("Published %d scheduled announcements.", stats.processed)
    return stats


def _owner_standing(session: Session, today: date) -> Dict[int, Dict[str, object]]:
    """Aggregate balance and past-due state per owner across their active accounts."""
    standing: Dict[int, Dict[str, object]] = defaultdict(lambda: {"balance": Decimal("0"), "accounts": []})
    for row in active_ownerships(session, today=today):
        entry = standing[row.owner.id]
        entry["owner"] = row.owner
        entry["balance"] = entry["balance"] + ensure_decimal(row.account.balance)
        entry["accounts"].append(row.account)

    for entry in standing.values():
        account_ids = [account.id for account in entry["accounts"]]
        entry["past_due"] = (
            session.query(Charge.id)
            .filter(Charge.account_id.in_(account_ids), Charge.payment_due_date < today)
            .first()
            is not None
        )
    return standing


def recalculate_voting_rights(session: Session, today: Optional[date] = None) -> JobStats:
    today = today or date.today()
    stats = JobStats()
    for owner_id, entry in _owner_standing(session, today).items():
        owner: Owner = entry["owner"]
        if not owner.email:
            continue
        delinquent = entry["balance"] > 0 and entry["past_due"]
        try:
            with session.begin_nested():
                if delinquent and owner.voting_rights:
                    owner.voting_rights = False
                    send_system_message(
                        session,
                        [owner_id],
                        (
                            "Your voting rights have been suspended due to a past due balance of "
                            f"{format_currency(entry['balance'])}. They will be restored once the balance is paid."
                        ),
                        subject="Voting Rights Suspended",
                    )
                elif not delinquent and not owner.voting_rights:
                    owner.voting_rights = True
                    send_system_message(
                        session,
                        [owner_id],
                        "Your voting rights have been restored. Thank you for bringing your account current.",
                        subject="Voting Rights Restored",
                    )
                else:
                    continue
                session.add(owner)
                session.flush()
            stats.processed += 1
        except Exception as exc:
            stats.record_error(f"Voting rights for owner {owner_id}", exc)
    session.commit()
    logger.info("Voting rights job updated %d owners (%d errors).", stats.processed, stats.errors)
    return stats


def _reminded_recently(session: Session, owner_id: int, since: datetime) -> bool:
    return (
        session.query(OwnerMessageMap.id)
        .join(Message, Message.id == OwnerMessageMap.message_id)
        .filter(
            OwnerMessageMap.owner_id == owner_id,
            Message.sender_kind == SystemSender.kind,
            Message.subject == PAST_DUE_REMINDER_SUBJECT,
            Message.created_at >= since,
        )
        .first()
        is not None
    )


def send_past_due_reminders(session: Session, today: Optional[date] = None) -> JobStats:
    today = today or date.today()
    since = utcnow().replace(tzinfo=None) - timedelta(days=PAST_DUE_REMINDER_INTERVAL_DAYS)
    stats = JobStats()
    for owner_id, entry in _owner_standing(session, today).items():
        if not (entry["balance"] > 0 and entry["past_due"]):
            continue
        if _reminded_recently(session, owner_id, since):
            continue
        owner: Owner = entry["owner"]
        address = ", ".join(account.property.address for account in entry["accounts"])
        try:
            with session.begin_nested():
                send_system_message(
                    session,
                    [owner_id],
                    (
                        f"Your account for {address} has a past due balance of "
                        f"{format_currency(entry['balance'])}. Please make a payment as soon as possible."
                    ),
                    subject=PAST_DUE_REMINDER_SUBJECT,
                )
            stats.processed += 1
        except Exception as exc:
            stats.record_error(f"Past due reminder for owner {owner_id}", exc)
            continue

        debug: Dict[str, object] = {}
        if preferences.should_notify(owner.notification_preference, preferences.NotificationCategory.CHARGES):
            send_best_effort(
                session,
                debug,
                owner,
                "charge",
                {
                    "recipient_name": owner.full_name,
                    "amount": format_currency(entry["balance"]),
                    "property_address": address,
                    "payment_url": f"{settings.frontend_url}/payments",
                },
            )
        if debug.get("emailSent"):
            stats.emails_sent += 1
    session.commit()
    logger.info("Sent %d past due reminders (%d emails).", stats.processed, stats.emails_sent)
    return stats


def issue_yearly_assessments(session: Session, year: Optional[int] = None) -> JobStats:
    year = year or date.today().year
    rate = get_yearly_rate(session, year)
    if rate is None:
        raise ValueError(f"No yearly assessment rate found for {year}")
    assessment_type = (
        session.query(AssessmentType).filter(AssessmentType.description == REGULAR_ASSESSMENT_TYPE).first()
    )
    if assessment_type is None:
        raise ValueError(f"Assessment type '{REGULAR_ASSESSMENT_TYPE}' not found")

    targets = [
        {"owner_id": owner_id, "account_id": account_id}
        for account_id, owner_id in (
            session.query(Account.id, Account.owner_id)
            .join(
                PropertyOwnership,
                (PropertyOwnership.property_id == Account.property_id)
                & (PropertyOwnership.owner_id == Account.owner_id),
            )
            .filter(PropertyOwnership.sell_date.is_(None))
            .order_by(Account.id.asc())
            .all()
        )
    ]
    stats = JobStats()
    if targets:
        result = issue_assessment(session, type_id=assessment_type.id, amount=rate.amount, owners=targets, rate_id=rate.id)
        for owner_result in result["ownerResults"]:
            if owner_result.get("success"):
                stats.processed += 1
            else:
                stats.errors += 1
                stats.details.append(f"Owner {owner_result['ownerId']}: {owner_result.get('error')}")
            if owner_result.get("emailSent"):
                stats.emails_sent += 1
    session.commit()
    logger.info("Issued %s yearly assessments for %s at %s.", stats.processed, year, rate.amount)
    return stats


JOBS = {
    "close-surveys": close_expired_surveys_job,
    "publish-announcements": publish_scheduled_announcements,
    "voting-rights": recalculate_voting_rights,
    "past-due-reminders": send_past_due_reminders,
    "yearly-assessments": issue_yearly_assessments,
}

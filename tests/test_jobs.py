from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from summit_portal.constants import PAST_DUE_REMINDER_SUBJECT
from summit_portal.models.models import Announcement, Charge, Message, Owner, Survey
from summit_portal.services import jobs
from summit_portal.services.billing import upsert_assessment_rates
from summit_portal.services.messages import inbox
from summit_portal.services.surveys import create_survey


def _past_due_charge(db_session, account, amount="100.00", days_overdue=5):
    charge = Charge(
        account_id=account.id,
        charge_type="violation",
        amount=Decimal(amount),
        payment_due_date=date.today() - timedelta(days=days_overdue),
    )
    db_session.add(charge)
    db_session.commit()
    return charge


def _subjects(db_session, owner_id):
    return [message.subject for message, _ in inbox(db_session, owner_id)]


def test_voting_rights_suspended_then_restored(db_session, create_owner, create_account):
    owner = create_owner()
    account = create_account(owner, balance=Decimal("100.00"))
    _past_due_charge(db_session, account)

    stats = jobs.recalculate_voting_rights(db_session)
    assert stats.processed == 1
    assert db_session.get(Owner, owner.id).voting_rights is False
    assert _subjects(db_session, owner.id) == ["Voting Rights Suspended"]

    assert jobs.recalculate_voting_rights(db_session).processed == 0

    account.balance = Decimal("0.00")
    db_session.commit()
    jobs.recalculate_voting_rights(db_session)
    assert db_session.get(Owner, owner.id).voting_rights is True
    assert "Voting Rights Restored" in _subjects(db_session, owner.id)


def test_balance_without_past_due_charge_keeps_voting_rights(db_session, create_owner, create_account):
    owner = create_owner()
    account = create_account(owner, balance=Decimal("100.00"))
    _past_due_charge(db_session, account, days_overdue=-10)

    stats = jobs.recalculate_voting_rights(db_session)

    assert stats.processed == 0
    assert db_session.get(Owner, owner.id).voting_rights is True


def test_unregistered_owners_are_skipped(db_session, create_owner, create_account):
    placeholder = create_owner(email="", voting_rights=False, with_preferences=False)
    placeholder.email = None
    db_session.commit()
    create_account(placeholder)

    assert jobs.recalculate_voting_rights(db_session).processed == 0
    assert db_session.get(Owner, placeholder.id).voting_rights is False


def test_past_due_reminder_sent_once_per_interval(db_session, create_owner, create_account, sent_emails):
    owner = create_owner()
    account = create_account(owner, balance=Decimal("60.00"))
    _past_due_charge(db_session, account, amount="60.00")
    current = create_owner()
    create_account(current)

    first = jobs.send_past_due_reminders(db_session)
    second = jobs.send_past_due_reminders(db_session)

    assert first.processed == 1
    assert first.emails_sent == 1
    assert second.processed == 0
    assert _subjects(db_session, owner.id) == [PAST_DUE_REMINDER_SUBJECT]
    assert _subjects(db_session, current.id) == []
    assert [email["subject"] for email in sent_emails] == ["Past due balance reminder"]
    assert "$60.00" in sent_emails[0]["text"]


def test_past_due_email_respects_charge_preference(db_session, create_owner, create_account, sent_emails):
    owner = create_owner()
    owner.notification_preference.charges_enabled = False
    db_session.commit()
    account = create_account(owner, balance=Decimal("10.00"))
    _past_due_charge(db_session, account, amount="10.00")

    stats = jobs.send_past_due_reminders(db_session)

    assert stats.processed == 1
    assert stats.emails_sent == 0
    assert sent_emails == []


def test_yearly_assessment_charges_current_owners(db_session, create_owner, create_account, sent_emails):
    year = date.today().year
    upsert_assessment_rates(db_session, [{"year": year, "amount": "1200", "is_yearly_assessment": True}])
    db_session.commit()
    current = create_owner()
    current_account = create_account(current)
    seller = create_owner()
    seller_account = create_account(seller, purchase_date=date(2010, 1, 1), sell_date=date(2019, 6, 1))

    stats = jobs.issue_yearly_assessments(db_session, year)

    assert stats.processed == 1
    assert stats.errors == 0
    db_session.refresh(current_account)
    db_session.refresh(seller_account)
    assert current_account.balance == Decimal("1200.00")
    assert seller_account.balance == Decimal("0.00")
    charge = db_session.query(Charge).one()
    assert charge.charge_type == "assessment"
    assert charge.assessment_rate_id is not None


def test_yearly_assessment_requires_rate(db_session):
    with pytest.raises(ValueError, match="No yearly assessment rate found for 1999"):
        jobs.issue_yearly_assessments(db_session, 1999)


def test_scheduled_announcements_are_published(db_session, create_owner, sent_emails):
    create_owner()
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    due = Announcement(title="Due", content="Now", status="SCHEDULED", publish_date=now - timedelta(hours=1))
    later = Announcement(title="Later", content="Tomorrow", status="SCHEDULED", publish_date=now + timedelta(days=1))
    db_session.add_all([due, later])
    db_session.commit()

    stats = jobs.publish_scheduled_announcements(db_session)

    assert stats.processed == 1
    assert stats.emails_sent == 1
    assert db_session.get(Announcement, due.id).status == "PUBLISHED"
    assert db_session.get(Announcement, later.id).status == "SCHEDULED"


def test_close_surveys_job_closes_ended_surveys(db_session, create_owner):
    owner = create_owner()
    survey, _ = create_survey(
        db_session,
        question="Add a dog park?",
        answers=["Yes", "No"],
        end_date=date.today() + timedelta(days=1),
    )
    survey.end_date = date.today()
    db_session.commit()

    stats = jobs.close_expired_surveys_job(db_session)

    assert stats.processed == 1
    assert db_session.get(Survey, survey.id).status == "INACTIVE"
    result = db_session.query(Message).filter(Message.subject.like("Survey Results:%")).one()
    assert result.content == "No responses were received for this survey."
    assert "Survey Results: Add a dog park?" in _subjects(db_session, owner.id)


def test_job_registry_names():
    assert set(jobs.JOBS) == {
        "close-surveys",
        "publish-announcements",
        "voting-rights",
        "past-due-reminders",
        "yearly-assessments",
    }

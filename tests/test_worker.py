from datetime import date, timedelta

from sqlalchemy.orm import sessionmaker

from summit_portal import worker
from summit_portal.models.models import Survey


def test_beat_schedule_matches_job_calendar():
    schedule = worker.app.conf.beat_schedule

    nightly = [
        "close-expired-surveys",
        "publish-scheduled-announcements",
        "recalculate-voting-rights",
    ]
    for name in nightly:
        entry = schedule[name]["schedule"]
        assert entry.hour == {0}
        assert entry.minute == {0}

    reminders = schedule["send-past-due-reminders"]["schedule"]
    assert reminders.day_of_week == {1}
    assert reminders.hour == {9}

    yearly = schedule["issue-yearly-assessments"]["schedule"]
    assert yearly.month_of_year == {1}
    assert yearly.day_of_month == {1}
    assert yearly.minute == {1}


def test_beat_entries_point_at_registered_tasks():
    for entry in worker.app.conf.beat_schedule.values():
        assert entry["task"] in worker.app.tasks


def test_run_job_uses_its_own_session(db_session, create_owner, monkeypatch):
    create_owner()
    survey = Survey(
        question="Replace mailboxes?",
        answer_1="Yes",
        answer_2="No",
        start_date=date.today() - timedelta(days=7),
        end_date=date.today() - timedelta(days=1),
    )
    db_session.add(survey)
    db_session.commit()
    monkeypatch.setattr(worker, "SessionLocal", sessionmaker(bind=db_session.get_bind()))

    result = worker.run_job("close-surveys")

    assert result["processed"] == 1
    assert result["errors"] == 0
    db_session.expire_all()
    assert db_session.get(Survey, survey.id).status == "INACTIVE"

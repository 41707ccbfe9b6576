import sys
from collections.abc import Callable, Generator
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from summit_portal.config import Base, enable_sqlite_savepoints, settings  # noqa: E402
import summit_portal.config as app_config  # noqa: E402
import summit_portal.main as app_main  # noqa: E402
from summit_portal.auth.jwt import get_password_hash  # noqa: E402
from summit_portal.core.rate_limit import limiter  # noqa: E402
# Import the full models module so all tables register with Base metadata.
from summit_portal.models import models as _all_models  # noqa: E402,F401
from summit_portal.models.models import (  # noqa: E402
    Account,
    NotificationPreference,
    Owner,
    OwnerBoardMemberMap,
    Property,
    PropertyOwnership,
)
from summit_portal.services.billing import ensure_assessment_types  # noqa: E402
from summit_portal.services.board import ensure_board_roles  # noqa: E402


def _sqlite_engine(db_path: Path):
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    return enable_sqlite_savepoints(engine)


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Configure the app-wide SessionLocal/engine so TestClient uses a DB with all tables."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    engine = _sqlite_engine(db_dir / "app.db")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    app_main.SessionLocal = SessionLocal
    app_main.engine = engine
    yield
    engine.dispose()


@pytest.fixture(autouse=True)
def _isolated_outputs(tmp_path, monkeypatch):
    """Keep local email and PDF output inside the test's tmp dir."""
    monkeypatch.setattr(settings, "email_backend", "local")
    monkeypatch.setattr(settings, "email_output_dir", str(tmp_path / "emails"))
    monkeypatch.setattr(settings, "pdf_output_dir", str(tmp_path / "pdfs"))
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test, seeded with board roles."""
    engine = _sqlite_engine(tmp_path / "test.db")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()
    ensure_board_roles(session)
    ensure_assessment_types(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def create_owner(db_session: Session) -> Callable[..., Owner]:
    counter = {"value": 0}

    def _create(
        first_name: str = "Owner",
        email: Optional[str] = None,
        password: str = "changeme",
        is_temporary_password: bool = False,
        voting_rights: bool = True,
        with_preferences: bool = True,
    ) -> Owner:
        counter["value"] += 1
        owner = Owner(
            first_name=first_name,
            last_name=f"Number{counter['value']}",
            email=email if email is not None else f"owner{counter['value']}@example.com",
            hashed_password=get_password_hash(password),
            is_temporary_password=is_temporary_password,
            voting_rights=voting_rights,
        )
        db_session.add(owner)
        db_session.flush()
        if with_preferences:
            db_session.add(NotificationPreference(owner_id=owner.id))
        db_session.commit()
        db_session.refresh(owner)
        return owner

    return _create


@pytest.fixture
def create_property(db_session: Session) -> Callable[..., Property]:
    counter = {"value": 0}

    def _create(street: str = "Summit Ridge Drive") -> Property:
        counter["value"] += 1
        prop = Property(unit=str(100 + counter["value"]), street=street, city="Grand Junction", state="CO")
        db_session.add(prop)
        db_session.commit()
        return prop

    return _create


@pytest.fixture
def create_account(db_session: Session, create_property) -> Callable[..., Account]:
    def _create(
        owner: Owner,
        balance: Decimal = Decimal("0.00"),
        purchase_date: Optional[date] = None,
        sell_date: Optional[date] = None,
        prop: Optional[Property] = None,
    ) -> Account:
        prop = prop or create_property()
        db_session.add(
            PropertyOwnership(
                property_id=prop.id,
                owner_id=owner.id,
                purchase_date=purchase_date or date.today() - timedelta(days=365),
                sell_date=sell_date,
            )
        )
        account = Account(property_id=prop.id, owner_id=owner.id, balance=balance)
        db_session.add(account)
        db_session.commit()
        db_session.refresh(account)
        return account

    return _create


@pytest.fixture
def create_board_member(db_session: Session) -> Callable[..., OwnerBoardMemberMap]:
    def _create(
        owner: Owner,
        role_id: int = 2,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> OwnerBoardMemberMap:
        membership = OwnerBoardMemberMap(
            owner_id=owner.id,
            role_id=role_id,
            start_date=start_date or date.today() - timedelta(days=30),
            end_date=end_date,
        )
        db_session.add(membership)
        db_session.commit()
        db_session.refresh(membership)
        return membership

    return _create


@pytest.fixture
def sent_emails(monkeypatch) -> list:
    """Capture delivered emails instead of writing them to disk."""
    from summit_portal.services import email as email_service

    captured: list = []

    def _fake_deliver(rendered, recipients, attachments=None):
        captured.append({"subject": rendered.subject, "text": rendered.text, "to": list(recipients), "attachments": list(attachments or [])})
        return email_service.SendResult(backend="test", status_code=202, request_id=None, error=None)

    monkeypatch.setattr(email_service, "deliver", _fake_deliver)
    return captured

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from summit_portal.api import owners as owners_api
from summit_portal.api.dependencies import get_db
from summit_portal.auth.jwt import get_current_owner, verify_password
from summit_portal.main import app
from summit_portal.manage_create_admin import create_admin
from summit_portal.models.models import Owner, PropertyOwnership
from summit_portal.schemas.schemas import ContactInfoUpdate
from summit_portal.services import accounts
from summit_portal.services.announcements import create_announcement
from summit_portal.services.billing import create_charge
from summit_portal.services.board import is_administrator
from summit_portal.services.messages import inbox


def test_active_account_respects_ownership_window(db_session, create_owner, create_account):
    owner = create_owner()
    create_account(owner, purchase_date=date(2012, 1, 1), sell_date=date(2016, 1, 1))
    with pytest.raises(LookupError, match="No active account found for this owner"):
        accounts.get_active_account(db_session, owner.id)

    current = create_account(owner, purchase_date=date.today() - timedelta(days=10))
    assert accounts.get_active_account(db_session, owner.id).id == current.id

    future_owner = create_owner()
    create_account(future_owner, purchase_date=date.today() + timedelta(days=10))
    assert accounts.find_active_account(db_session, future_owner.id) is None


def test_create_account_transfers_property(db_session, create_owner, create_account, create_board_member):
    actor = create_owner()
    create_board_member(actor)
    seller = create_owner()
    seller_account = create_account(seller)
    effective = date.today()

    account, placeholder, temp_code = accounts.create_account(db_session, actor, seller_account.property_id, effective)
    db_session.commit()

    assert account.balance == Decimal("0")
    assert placeholder.email is None
    assert placeholder.is_temporary_password is True
    assert placeholder.voting_rights is False
    assert verify_password(temp_code, placeholder.hashed_password)

    old = db_session.query(PropertyOwnership).filter_by(owner_id=seller.id).one()
    assert old.sell_date == effective
    new = db_session.query(PropertyOwnership).filter_by(owner_id=placeholder.id).one()
    assert new.purchase_date == effective and new.sell_date is None

    (message, _), = inbox(db_session, actor.id)
    assert message.subject == "New Account Created"
    assert temp_code in message.content
    assert f"Owner ID: {placeholder.id}" in message.content


def test_create_account_requires_property(db_session, create_owner):
    with pytest.raises(LookupError, match="Property not found"):
        accounts.create_account(db_session, create_owner(), 999, date.today())


def test_available_properties_report_current_owner(db_session, create_owner, create_account, create_property):
    owner = create_owner(first_name="Casey")
    create_account(owner)
    create_property()

    rows = accounts.available_properties(db_session)
    owned = [ownership for _, ownership in rows if ownership is not None]
    assert len(rows) == 2
    assert [ownership.owner_id for ownership in owned] == [owner.id]


def test_active_owner_search(db_session, create_owner, create_account):
    match = create_owner(first_name="Morgan")
    create_account(match)
    other = create_owner(first_name="Quinn")
    create_account(other)
    sold = create_owner(first_name="Morgana")
    create_account(sold, purchase_date=date(2010, 1, 1), sell_date=date(2011, 1, 1))

    results = accounts.active_ownerships(db_session, search="morg")
    assert [row.owner.id for row in results] == [match.id]
    assert len(accounts.active_ownerships(db_session)) == 2


def test_contact_info_rejects_taken_email(db_session, create_owner):
    create_owner(email="taken@example.com")
    owner = create_owner()

    with pytest.raises(HTTPException) as exc:
        owners_api.update_contact_info(ContactInfoUpdate(email="Taken@Example.com"), db_session, owner)
    assert exc.value.status_code == 400

    details = owners_api.update_contact_info(
        ContactInfoUpdate(email="New.Address@Example.com", phone="555-0100"),
        db_session,
        owner,
    )
    assert details.email == "new.address@example.com"
    assert db_session.get(Owner, owner.id).phone == "555-0100"


def test_dashboard_and_account_details(db_session, create_owner, create_account, sent_emails):
    owner = create_owner()
    account = create_account(owner)
    for amount in ("10.00", "20.00", "30.00", "40.00"):
        create_charge(
            db_session,
            account,
            charge_type="fee",
            amount=Decimal(amount),
            due_date=date.today() + timedelta(days=30),
        )
    create_announcement(db_session, title="Welcome", content="Hello neighbors")
    db_session.commit()

    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_current_owner] = lambda: owner
    try:
        client = TestClient(app)
        dashboard = client.get("/api/dashboard").json()
        details = client.get("/api/account-details").json()
    finally:
        app.dependency_overrides.clear()

    assert Decimal(dashboard["account"]["balance"]) == Decimal("100.00")
    assert len(dashboard["recent_charges"]) == 3
    assert [item["title"] for item in dashboard["announcements"]] == ["Welcome"]

    history = details["history"]
    assert len(history) == 4
    assert Decimal(history[0]["running_balance"]) == Decimal("100.00")
    assert Decimal(history[-1]["running_balance"]) == Decimal("10.00")


def test_dashboard_without_active_account_is_404(db_session, create_owner):
    owner = create_owner()
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_current_owner] = lambda: owner
    try:
        response = TestClient(app).get("/api/dashboard")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 404
    assert response.json()["detail"] == "No active account found for this owner"


def test_create_admin_assigns_administrator_role(db_session):
    owner = create_admin(db_session, "Admin@Example.com", "strong-password", "Portal", "Admin")
    db_session.commit()

    assert owner.email == "admin@example.com"
    assert is_administrator(db_session, owner.id)
    with pytest.raises(ValueError):
        create_admin(db_session, "admin@example.com", "another-password", "Second", "Admin")


def test_create_account_route_and_board_gate(db_session, create_owner, create_account, create_board_member):
    actor = create_owner()
    create_board_member(actor, role_id=2)
    treasurer = create_owner()
    create_board_member(treasurer, role_id=3)
    prop_account = create_account(create_owner())

    app.dependency_overrides[get_db] = lambda: db_session
    client = TestClient(app)
    try:
        app.dependency_overrides[get_current_owner] = lambda: treasurer
        denied = client.post("/api/accounts/create", json={"property_id": prop_account.property_id, "effective_date": date.today().isoformat()})
        app.dependency_overrides[get_current_owner] = lambda: actor
        created = client.post("/api/accounts/create", json={"property_id": prop_account.property_id, "effective_date": date.today().isoformat()})
        missing = client.post("/api/accounts/create", json={"property_id": 999, "effective_date": date.today().isoformat()})
    finally:
        app.dependency_overrides.clear()

    assert denied.status_code == 403
    assert created.status_code == 201
    body = created.json()
    assert set(body) == {"account_id", "owner_id", "temp_code"}
    assert len(body["temp_code"]) == 8
    assert missing.status_code == 404


def test_contact_change_is_audited_and_listed(db_session, create_owner, create_board_member):
    owner = create_owner()
    old_email = owner.email
    owners_api.update_contact_info(ContactInfoUpdate(email="moved@example.com", phone="555-0101"), db_session, owner)
    admin = create_owner()
    create_board_member(admin, role_id=2)
    resident = create_owner()

    app.dependency_overrides[get_db] = lambda: db_session
    client = TestClient(app)
    try:
        app.dependency_overrides[get_current_owner] = lambda: resident
        denied = client.get("/api/audit-logs")
        app.dependency_overrides[get_current_owner] = lambda: admin
        listed = client.get("/api/audit-logs", params={"entity_type": "Owner"})
    finally:
        app.dependency_overrides.clear()

    assert denied.status_code == 403
    body = listed.json()
    assert body["total"] == 1
    entry = body["items"][0]
    assert entry["action"] == "owner.contact_info"
    assert entry["actor_owner_id"] == owner.id
    assert entry["before"] == {"email": old_email, "phone": None}
    assert entry["after"] == {"email": "moved@example.com", "phone": "555-0101"}

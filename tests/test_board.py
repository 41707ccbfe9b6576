from datetime import date, timedelta

import pytest
from fastapi import HTTPException

from summit_portal.api import auth as auth_api
from summit_portal.api import board as board_api
from summit_portal.auth.jwt import require_board_member
from summit_portal.models.models import AuditLog, BoardMemberRole, OwnerBoardMemberMap
from summit_portal.schemas.schemas import BoardMemberAdd, BoardMemberRoleUpdate, LoginRequest
from summit_portal.services import board
from summit_portal.services.messages import active_board_member_ids


def test_default_roles_are_seeded_once(db_session):
    board.ensure_board_roles(db_session)

    roles = board.list_roles(db_session)
    assert [role.member_role for role in roles] == [
        "Administrator",
        "President",
        "Treasurer",
        "Secretary",
        "Member at Large",
    ]
    treasurer = db_session.get(BoardMemberRole, 3)
    assert (treasurer.assess_fines, treasurer.change_rates, treasurer.change_members) == (False, True, False)


def test_create_role_rejects_duplicate_names(db_session):
    role = board.create_role(db_session, " Architectural Chair ", assess_fines=True)
    assert role.member_role == "Architectural Chair"
    assert role.assess_fines is True
    assert role.change_rates is False

    with pytest.raises(ValueError, match="Board member role already exists"):
        board.create_role(db_session, "treasurer")


def test_protected_roles_cannot_be_modified(db_session, create_owner, create_board_member):
    actor = create_owner()
    create_board_member(actor)

    for role_id in (1, 4):
        with pytest.raises(HTTPException) as exc:
            board_api.update_role(role_id, BoardMemberRoleUpdate(change_rates=True), db_session, actor)
        assert exc.value.status_code == 403

    with pytest.raises(HTTPException) as missing:
        board_api.update_role(99, BoardMemberRoleUpdate(change_rates=True), db_session, actor)
    assert missing.value.status_code == 404

    updated = board_api.update_role(5, BoardMemberRoleUpdate(change_rates=True), db_session, actor)
    assert updated.change_rates is True
    assert updated.assess_fines is True


def test_add_board_member_requires_active_ownership(db_session, create_owner, create_account):
    seller = create_owner()
    create_account(seller, purchase_date=date(2010, 1, 1), sell_date=date(2015, 1, 1))
    owner = create_owner()
    create_account(owner)

    with pytest.raises(ValueError, match="Owner does not have an active property ownership"):
        board.add_board_member(db_session, seller.id, 3)
    with pytest.raises(ValueError, match="Cannot assign administrator role"):
        board.add_board_member(db_session, owner.id, 1)
    with pytest.raises(LookupError):
        board.add_board_member(db_session, owner.id, 42)

    membership = board.add_board_member(db_session, owner.id, 3)
    assert membership.start_date == date.today()
    assert membership.end_date is None


def test_owner_holds_one_active_role(db_session, create_owner, create_account, create_board_member):
    owner = create_owner()
    create_account(owner)
    create_board_member(owner, role_id=3)

    with pytest.raises(ValueError, match="Owner already has an active board member role"):
        board.add_board_member(db_session, owner.id, 5)


def test_readding_same_role_reactivates_membership(db_session, create_owner, create_account, create_board_member):
    owner = create_owner()
    create_account(owner)
    old = create_board_member(
        owner,
        role_id=3,
        start_date=date.today() - timedelta(days=400),
        end_date=date.today() - timedelta(days=10),
    )

    membership = board.add_board_member(db_session, owner.id, 3)
    db_session.commit()

    assert membership.id == old.id
    assert membership.start_date == date.today()
    assert membership.end_date is None
    assert db_session.query(OwnerBoardMemberMap).filter_by(owner_id=owner.id).count() == 1


def test_end_role_guards(db_session, create_owner, create_board_member):
    actor = create_owner()
    create_board_member(actor, role_id=2)
    admin = create_owner()
    create_board_member(admin, role_id=1)
    member = create_owner()
    create_board_member(member, role_id=5)
    resident = create_owner()

    with pytest.raises(ValueError, match="Cannot modify administrator role"):
        board.end_board_role(db_session, actor.id, admin.id)
    with pytest.raises(ValueError, match="Cannot modify your own role"):
        board.end_board_role(db_session, actor.id, actor.id)
    with pytest.raises(ValueError, match="No active board member role found"):
        board.end_board_role(db_session, actor.id, resident.id)

    ended = board.end_board_role(db_session, actor.id, member.id)
    assert ended.end_date == date.today()


def test_end_role_route_writes_audit_entry(db_session, create_owner, create_board_member):
    actor = create_owner()
    create_board_member(actor, role_id=2)
    member = create_owner()
    create_board_member(member, role_id=3)

    response = board_api.end_board_role(member.id, db_session, actor)

    assert response.end_date == date.today()
    entry = db_session.query(AuditLog).filter(AuditLog.action == "board_member.end_role").one()
    assert entry.actor_owner_id == actor.id
    assert entry.target_entity_id == str(member.id)


def test_active_members_excludes_ended_roles(db_session, create_owner, create_board_member):
    current = create_owner()
    create_board_member(current, role_id=2)
    former = create_owner()
    create_board_member(former, role_id=3, end_date=date.today() - timedelta(days=1))

    assert [membership.owner_id for membership in board.active_members(db_session)] == [current.id]


def test_add_member_route_maps_errors(db_session, create_owner, create_account, create_board_member):
    actor = create_owner()
    create_board_member(actor)
    owner = create_owner()
    create_account(owner)

    with pytest.raises(HTTPException) as exc:
        board_api.add_board_member(BoardMemberAdd(owner_id=owner.id, role_id=1), db_session, actor)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as missing:
        board_api.add_board_member(BoardMemberAdd(owner_id=999, role_id=3), db_session, actor)
    assert missing.value.status_code == 404

    created = board_api.add_board_member(BoardMemberAdd(owner_id=owner.id, role_id=3), db_session, actor)
    assert created.member_role == "Treasurer"


def test_role_ended_today_revokes_access_immediately(db_session, create_owner, create_account, create_board_member):
    actor = create_owner()
    create_board_member(actor, role_id=2)
    member = create_owner()
    create_account(member)
    create_board_member(member, role_id=3)

    board.end_board_role(db_session, actor.id, member.id)
    db_session.commit()

    login = auth_api.login(LoginRequest(email=member.email, password="changeme"), db_session)
    assert login.user.role == "resident"
    assert login.user.board_member_details is None

    with pytest.raises(HTTPException) as exc:
        require_board_member("CHANGE_RATES")(owner=member, db=db_session)
    assert exc.value.status_code == 403
    assert member.id not in active_board_member_ids(db_session)

    with pytest.raises(ValueError, match="No active board member role found"):
        board.end_board_role(db_session, actor.id, member.id)

    reassigned = board.add_board_member(db_session, member.id, 5)
    assert reassigned.role_id == 5
    assert reassigned.end_date is None

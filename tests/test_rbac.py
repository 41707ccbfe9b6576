from datetime import date, timedelta

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from summit_portal.auth.jwt import create_access_token, get_current_owner, get_db, require_board_member


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/board")
    def board_route(_: object = Depends(require_board_member())):
        return {"ok": True}

    @app.get("/fines")
    def fines_route(_: object = Depends(require_board_member("ASSESS_FINES"))):
        return {"ok": True}

    @app.get("/members")
    def members_route(_: object = Depends(require_board_member("CHANGE_MEMBERS"))):
        return {"ok": True}

    return app


def _client_for(app: FastAPI, db_session, owner) -> TestClient:
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_current_owner] = lambda: owner
    return TestClient(app)


def test_board_route_requires_active_membership(db_session, create_owner, create_board_member):
    app = _build_app()
    resident = create_owner()
    former = create_owner()
    create_board_member(former, start_date=date.today() - timedelta(days=90), end_date=date.today() - timedelta(days=1))
    member = create_owner()
    create_board_member(member, role_id=5)

    try:
        assert _client_for(app, db_session, resident).get("/board").status_code == 403
        assert _client_for(app, db_session, former).get("/board").status_code == 403
        assert _client_for(app, db_session, member).get("/board").status_code == 200
    finally:
        app.dependency_overrides.clear()


def test_capabilities_follow_role_flags(db_session, create_owner, create_board_member):
    app = _build_app()
    member_at_large = create_owner()
    create_board_member(member_at_large, role_id=5)
    secretary = create_owner()
    create_board_member(secretary, role_id=4)

    try:
        client = _client_for(app, db_session, member_at_large)
        assert client.get("/fines").status_code == 200
        denied = client.get("/members")
        assert denied.status_code == 403
        assert denied.json()["detail"] == "Your board role does not permit this action."

        client = _client_for(app, db_session, secretary)
        assert client.get("/members").status_code == 200
        assert client.get("/fines").status_code == 403
    finally:
        app.dependency_overrides.clear()


def test_temporary_password_owner_is_blocked_before_role_check(db_session, create_owner, create_board_member):
    app = _build_app()
    owner = create_owner(is_temporary_password=True)
    create_board_member(owner)

    try:
        response = _client_for(app, db_session, owner).get("/board")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 403
    assert response.json()["detail"] == "Password change required"


def test_missing_token_is_rejected(db_session):
    app = _build_app()
    app.dependency_overrides[get_db] = lambda: db_session
    try:
        response = TestClient(app).get("/board")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 401
    assert response.json()["detail"] == "No token provided"


def test_bearer_token_resolves_owner(db_session, create_owner, create_board_member):
    app = _build_app()
    owner = create_owner()
    create_board_member(owner, role_id=2)
    app.dependency_overrides[get_db] = lambda: db_session
    try:
        response = TestClient(app).get(
            "/members",
            headers={"Authorization": f"Bearer {create_access_token(owner.id)}"},
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200

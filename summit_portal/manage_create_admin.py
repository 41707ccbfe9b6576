"""Create the initial administrator owner for the Summit Ridge portal.

Run: `python -m summit_portal.manage_create_admin --email admin@example.com --password changeme`
"""

import argparse
from contextlib import contextmanager
from datetime import date

from summit_portal.auth.jwt import get_password_hash
from summit_portal.config import Base, SessionLocal, engine
from summit_portal.constants import ADMIN_ROLE_ID
from summit_portal.models.models import NotificationPreference, Owner, OwnerBoardMemberMap
from summit_portal.services.board import ensure_board_roles


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_admin(session, email: str, password: str, first_name: str, last_name: str) -> Owner:
    existing = session.query(Owner).filter(Owner.email == email.lower()).first()
    if existing:
        raise ValueError("An owner already exists with that email.")

    owner = Owner(
        first_name=first_name,
        last_name=last_name,
        email=email.lower(),
        hashed_password=get_password_hash(password),
        is_temporary_password=False,
        voting_rights=True,
    )
    session.add(owner)
    session.flush()
    session.add(NotificationPreference(owner_id=owner.id))
    session.add(OwnerBoardMemberMap(owner_id=owner.id, role_id=ADMIN_ROLE_ID, start_date=date.today()))
    session.flush()
    return owner


def main():
    parser = argparse.ArgumentParser(description="Create the initial administrator owner")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--first-name", default="Portal")
    parser.add_argument("--last-name", default="Administrator")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        ensure_board_roles(session)
    with session_scope() as db:
        try:
            owner = create_admin(db, args.email, args.password, args.first_name, args.last_name)
        except ValueError as exc:
            print(exc)
            return
        print(f"Created administrator owner {owner.id} ({owner.email}).")


if __name__ == "__main__":
    main()

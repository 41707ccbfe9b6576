#!/usr/bin/env python
"""
Seed script to populate the database with sample data for local development.

Usage:
    python scripts/seed_data.py --homeowners 5
"""

import argparse
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from summit_portal.auth.jwt import get_password_hash  # noqa: E402
from summit_portal.config import Base, SessionLocal, engine  # noqa: E402
from summit_portal.constants import ADMIN_ROLE_ID  # noqa: E402
from summit_portal.models.models import (  # noqa: E402
    Account,
    AssessmentRate,
    NotificationPreference,
    Owner,
    OwnerBoardMemberMap,
    Property,
    PropertyOwnership,
    ViolationType,
)
from summit_portal.services.billing import ensure_assessment_types  # noqa: E402
from summit_portal.services.board import ensure_board_roles  # noqa: E402

DEFAULT_VIOLATION_TYPES = [
    ("Trash bins left out", Decimal("25.00")),
    ("Unapproved exterior modification", Decimal("150.00")),
    ("Parking violation", Decimal("50.00")),
]


def create_owner_bundle(session, index: int, password: str) -> Owner:
    prop = Property(unit=str(100 + index), street="Summit Ridge Drive", city="Grand Junction", state="CO", zip_code="81505")
    owner = Owner(
        first_name="Test",
        last_name=f"Owner {index}",
        email=f"owner{index}@example.com",
        hashed_password=get_password_hash(password),
        is_temporary_password=False,
        voting_rights=True,
    )
    session.add_all([prop, owner])
    session.flush()
    session.add(NotificationPreference(owner_id=owner.id))
    session.add(PropertyOwnership(property_id=prop.id, owner_id=owner.id, purchase_date=date(date.today().year - 1, 1, 1)))
    session.add(Account(property_id=prop.id, owner_id=owner.id, balance=Decimal("0")))
    session.flush()
    return owner


def seed_database(homeowners: int, password: str) -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        ensure_board_roles(session)
        ensure_assessment_types(session)

        existing = session.query(Owner).count()
        owners = [create_owner_bundle(session, existing + offset + 1, password) for offset in range(max(homeowners, 0))]

        has_admin = session.query(OwnerBoardMemberMap).filter(OwnerBoardMemberMap.role_id == ADMIN_ROLE_ID).first()
        if owners and not has_admin:
            session.add(OwnerBoardMemberMap(owner_id=owners[0].id, role_id=ADMIN_ROLE_ID, start_date=date.today()))

        if not session.query(ViolationType).count():
            session.add_all(ViolationType(description=name, rate=rate) for name, rate in DEFAULT_VIOLATION_TYPES)

        year = date.today().year
        if not session.query(AssessmentRate).filter(AssessmentRate.year == year).count():
            session.add(AssessmentRate(year=year, amount=Decimal("600.00"), is_yearly_assessment=True))

        session.commit()
        print(f"Seed complete. Created {len(owners)} owner accounts (password: '{password}').")


def main():
    parser = argparse.ArgumentParser(description="Seed the HOA database with sample data.")
    parser.add_argument("--homeowners", type=int, default=5, help="Number of owner accounts to create")
    parser.add_argument("--password", default="changeme", help="Password for the seeded owners")
    args = parser.parse_args()
    seed_database(args.homeowners, args.password)


if __name__ == "__main__":
    main()

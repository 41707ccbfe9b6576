from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ..auth.jwt import generate_temporary_password, get_password_hash
from ..models.models import Account, Charge, Owner, Payment, Property, PropertyOwnership
from .messages import send_system_message

logger = logging.getLogger(__name__)


@dataclass
class ActiveOwnership:
    owner: Owner
    account: Account
    property: Property
    ownership: PropertyOwnership


def ensure_decimal(amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    if amount is None:
        return Decimal("0")
    return Decimal(str(amount))


def adjust_balance(session: Session, account: Account, delta: Decimal) -> None:
    session.flush()
    session.query(Account).filter(Account.id == account.id).update(
        {Account.balance: Account.balance + delta},
        synchronize_session=False,
    )
    session.expire(account, ["balance"])


def describe_charge(charge: Charge) -> str:
    if charge.charge_type == "violation" and charge.violation_type:
        return f"Violation: {charge.violation_type.description}"
    if charge.charge_type == "assessment" and charge.assessment_type:
        return f"Assessment: {charge.assessment_type.description}"
    return charge.charge_type.title()


def _active_ownership_clause(today: date):
    return (
        PropertyOwnership.purchase_date <= today,
        or_(PropertyOwnership.sell_date.is_(None), PropertyOwnership.sell_date >= today),
    )


def find_active_account(session: Session, owner_id: int, today: Optional[date] = None) -> Optional[Account]:
    today = today or date.today()
    return (
        session.query(Account)
        .join(
            PropertyOwnership,
            (PropertyOwnership.property_id == Account.property_id) & (PropertyOwnership.owner_id == Account.owner_id),
        )
        .options(joinedload(Account.property))
        .filter(Account.owner_id == owner_id, *_active_ownership_clause(today))
        .order_by(PropertyOwnership.purchase_date.desc())
        .first()
    )


def get_active_account(session: Session, owner_id: int, today: Optional[date] = None) -> Account:
    account = find_active_account(session, owner_id, today)
    if account is None:
        raise LookupError("No active account found for this owner")
    return account


def active_ownerships(
    session: Session,
    search: Optional[str] = None,
    today: Optional[date] = None,
) -> List[ActiveOwnership]:
    today = today or date.today()
    query = (
        session.query(Owner, Account, Property, PropertyOwnership)
        .join(PropertyOwnership, PropertyOwnership.owner_id == Owner.id)
        .join(Property, Property.id == PropertyOwnership.property_id)
        .join(Account, (Account.owner_id == Owner.id) & (Account.property_id == Property.id))
        .filter(*_active_ownership_clause(today))
    )
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(Owner.first_name).like(pattern),
                func.lower(Owner.last_name).like(pattern),
                func.lower(Owner.email).like(pattern),
                func.lower(Property.street).like(pattern),
                func.lower(Property.unit).like(pattern),
            )
        )
    rows = query.order_by(Owner.last_name.asc(), Owner.first_name.asc(), Owner.id.asc()).all()
    return [ActiveOwnership(owner=o, account=a, property=p, ownership=m) for o, a, p, m in rows]


def owner_has_active_ownership(session: Session, owner_id: int, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return (
        session.query(PropertyOwnership.id)
        .filter(PropertyOwnership.owner_id == owner_id, *_active_ownership_clause(today))
        .first()
        is not None
    )


def available_properties(session: Session, today: Optional[date] = None) -> List[Tuple[Property, Optional[PropertyOwnership]]]:
    today = today or date.today()
    results: List[Tuple[Property, Optional[PropertyOwnership]]] = []
    for prop in session.query(Property).order_by(Property.street.asc(), Property.unit.asc()).all():
        current = next(
            (ownership for ownership in sorted(prop.ownerships, key=lambda o: o.purchase_date, reverse=True)
             if ownership.is_active(today)),
            None,
        )
        results.append((prop, current))
    return results


def recent_charges(session: Session, account_id: int, limit: int = 3) -> List[Charge]:
    return (
        session.query(Charge)
        .filter(Charge.account_id == account_id)
        .order_by(Charge.created_at.desc(), Charge.id.desc())
        .limit(limit)
        .all()
    )


def _naive(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.min
    return value.replace(tzinfo=None)


def account_history(session: Session, account: Account, limit: int = 50) -> List[dict]:
    """Merge charges and payments newest first with the balance after each entry."""
    entries: List[dict] = []
    charges = (
        session.query(Charge)
        .options(joinedload(Charge.violation_type), joinedload(Charge.assessment_type))
        .filter(Charge.account_id == account.id)
        .all()
    )
    for charge in charges:
        entries.append(
            {
                "entry_type": "charge",
                "id": charge.id,
                "amount": ensure_decimal(charge.amount),
                "occurred_at": charge.created_at,
                "description": describe_charge(charge),
            }
        )
    for payment in session.query(Payment).filter(Payment.account_id == account.id).all():
        entries.append(
            {
                "entry_type": "payment",
                "id": payment.id,
                "amount": ensure_decimal(payment.amount),
                "occurred_at": payment.payment_date,
                "description": "Payment received",
            }
        )

    entries.sort(key=lambda entry: (_naive(entry["occurred_at"]), entry["id"]), reverse=True)
    running = ensure_decimal(account.balance)
    for entry in entries:
        entry["running_balance"] = running
        if entry["entry_type"] == "charge":
            running -= entry["amount"]
        else:
            running += entry["amount"]
    return entries[:limit]


def create_account(
    session: Session,
    actor: Owner,
    property_id: int,
    effective_date: date,
) -> Tuple[Account, Owner, str]:
    prop = session.get(Property, property_id)
    if prop is None:
        raise LookupError("Property not found")

    temp_code = generate_temporary_password(8)
    owner = Owner(
        hashed_password=get_password_hash(temp_code),
        is_temporary_password=True,
        voting_rights=False,
    )
    session.add(owner)
    session.flush()

    open_ownerships = (
        session.query(PropertyOwnership)
        .filter(PropertyOwnership.property_id == property_id, PropertyOwnership.sell_date.is_(None))
        .all()
    )
    for ownership in open_ownerships:
        ownership.sell_date = effective_date
        session.add(ownership)

    session.add(PropertyOwnership(property_id=property_id, owner_id=owner.id, purchase_date=effective_date))
    account = Account(property_id=property_id, owner_id=owner.id, balance=Decimal("0"))
    session.add(account)
    session.flush()

    send_system_message(
        session,
        [actor.id],
        (
            f"A new account was created for {prop.address}.\n\n"
            f"Account ID: {account.id}\n"
            f"Owner ID: {owner.id}\n"
            f"Temporary Code: {temp_code}\n"
            f"Effective Date: {effective_date.isoformat()}\n\n"
            "Share these details with the new owner so they can complete registration."
        ),
        subject="New Account Created",
    )
    logger.info("Created account %s for property %s (closed %d prior ownerships).", account.id, prop.id, len(open_ownerships))
    return account, owner, temp_code

import hashlib
import re
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.models import CreditCard

CARD_NUMBER_PATTERN = re.compile(r"^\d{13,19}$")


def hash_card_number(card_number: str) -> str:
    return hashlib.sha256(card_number.encode("utf-8")).hexdigest()


def normalize_card_number(card_number: str) -> str:
    digits = re.sub(r"[\s-]", "", card_number or "")
    if not CARD_NUMBER_PATTERN.match(digits):
        raise ValueError("Invalid card number")
    return digits


def list_cards(session: Session, account_id: int) -> List[CreditCard]:
    return (
        session.query(CreditCard)
        .filter(CreditCard.account_id == account_id, CreditCard.is_active.is_(True))
        .order_by(CreditCard.is_default.desc(), CreditCard.created_at.desc())
        .all()
    )


def _get_card(session: Session, account_id: int, card_id: int, active_only: bool = True) -> CreditCard:
    query = session.query(CreditCard).filter(CreditCard.id == card_id, CreditCard.account_id == account_id)
    if active_only:
        query = query.filter(CreditCard.is_active.is_(True))
    card = query.first()
    if card is None:
        raise LookupError("Card not found")
    return card


def add_card(
    session: Session,
    account_id: int,
    card_number: str,
    card_type: str,
    expiration_date: Optional[str] = None,
) -> CreditCard:
    """Store a card by hash and last four; the full number is never persisted."""
    digits = normalize_card_number(card_number)
    card_hash = hash_card_number(digits)

    card = (
        session.query(CreditCard)
        .filter(CreditCard.account_id == account_id, CreditCard.card_hash == card_hash)
        .first()
    )
    if card is not None and card.is_active:
        raise ValueError("Card already exists for this account")

    has_active = bool(list_cards(session, account_id))
    if card is None:
        card = CreditCard(account_id=account_id, card_hash=card_hash, last_four=digits[-4:])
    card.card_type = card_type.strip()
    card.expiration_date = expiration_date
    card.is_active = True
    card.is_default = not has_active
    session.add(card)
    session.flush()
    return card


def set_default_card(session: Session, account_id: int, card_id: int) -> CreditCard:
    card = _get_card(session, account_id, card_id)
    session.query(CreditCard).filter(
        CreditCard.account_id == account_id,
        CreditCard.id != card.id,
    ).update({CreditCard.is_default: False}, synchronize_session="fetch")
    card.is_default = True
    session.add(card)
    session.flush()
    return card


def remove_card(session: Session, account_id: int, card_id: int) -> None:
    card = _get_card(session, account_id, card_id)
    was_default = card.is_default
    card.is_active = False
    card.is_default = False
    session.add(card)
    session.flush()

    if was_default:
        replacement = (
            session.query(CreditCard)
            .filter(CreditCard.account_id == account_id, CreditCard.is_active.is_(True))
            .order_by(CreditCard.created_at.desc(), CreditCard.id.desc())
            .first()
        )
        if replacement is not None:
            replacement.is_default = True
            session.add(replacement)
            session.flush()


def get_active_card(session: Session, account_id: int, card_id: int) -> CreditCard:
    return _get_card(session, account_id, card_id)

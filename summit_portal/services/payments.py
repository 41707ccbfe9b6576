from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Session, joinedload

from ..models.models import Account, Charge, Owner, Payment
from ..utils.pdf_utils import generate_payment_receipt_pdf
from . import preferences
from .accounts import adjust_balance, describe_charge, get_active_account
from .billing import send_best_effort, validate_amount
from .cards import get_active_card
from .email import EmailAttachment
from .email_templates import format_currency, format_date

logger = logging.getLogger(__name__)


def make_payment(session: Session, owner: Owner, *, card_id: int, amount: Any) -> Tuple[Payment, Dict[str, Any]]:
    validated_amount = validate_amount(amount)
    account = get_active_account(session, owner.id)
    card = get_active_card(session, account.id, card_id)

    payment = Payment(account_id=account.id, card_id=card.id, amount=validated_amount)
    session.add(payment)
    session.flush()
    adjust_balance(session, account, -validated_amount)
    session.refresh(payment)

    debug: Dict[str, Any] = {
        "paymentId": payment.id,
        "accountId": account.id,
        "amount": str(validated_amount),
        "newBalance": str(account.balance),
        "emailSent": False,
    }

    if preferences.should_notify(owner.notification_preference, preferences.NotificationCategory.PAYMENTS):
        try:
            receipt_path = generate_payment_receipt_pdf(payment, owner, card, account.property.address)
            attachment = EmailAttachment(filename=f"receipt_{payment.id}.pdf", content=Path(receipt_path).read_bytes())
        except Exception as exc:
            logger.warning("Receipt generation for payment %s failed: %s", payment.id, exc)
            debug["receiptError"] = str(exc)
        else:
            debug["receiptGenerated"] = True
            send_best_effort(
                session,
                debug,
                owner,
                "payment",
                {
                    "recipient_name": owner.full_name,
                    "amount": format_currency(validated_amount),
                    "date": format_date(payment.payment_date),
                    "card_description": f"{card.card_type} ending in {card.last_four}",
                    "confirmation_number": payment.id,
                    "balance": format_currency(account.balance),
                },
                attachments=[attachment],
            )
    else:
        debug["emailSkipped"] = "Notification preferences"

    logger.info("Recorded payment %s of %s on account %s.", payment.id, validated_amount, account.id)
    return payment, debug


def payment_history(session: Session, account_id: int) -> List[Payment]:
    return (
        session.query(Payment)
        .options(joinedload(Payment.card))
        .filter(Payment.account_id == account_id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .all()
    )


def get_payment(session: Session, account_ids: List[int], payment_id: int) -> Payment:
    payment = (
        session.query(Payment)
        .options(joinedload(Payment.card))
        .filter(Payment.id == payment_id, Payment.account_id.in_(account_ids))
        .first()
    )
    if payment is None:
        raise LookupError("Payment not found")
    return payment


def get_charge_detail(session: Session, account_ids: List[int], charge_id: int) -> Dict[str, Any]:
    charge = (
        session.query(Charge)
        .options(
            joinedload(Charge.issued_by),
            joinedload(Charge.violation_type),
            joinedload(Charge.assessment_type),
        )
        .filter(Charge.id == charge_id, Charge.account_id.in_(account_ids))
        .first()
    )
    if charge is None:
        raise LookupError("Charge not found")
    return {
        "charge": charge,
        "description": describe_charge(charge),
        "issued_by_name": charge.issued_by.full_name if charge.issued_by else "System",
    }


def owner_account_ids(session: Session, owner_id: int) -> List[int]:
    return [row[0] for row in session.query(Account.id).filter(Account.owner_id == owner_id).all()]

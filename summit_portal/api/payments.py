from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, require_active_account
from ..auth.jwt import get_active_owner
from ..models.models import Account, Owner, Payment
from ..schemas.schemas import (
    CardCreate,
    CardRead,
    ChargeDetail,
    ChargeRead,
    PaymentCreate,
    PaymentRead,
    PaymentResponse,
)
from ..services import cards as card_service
from ..services import payments as payment_service
from ..services.audit import audit_log

router = APIRouter()


def payment_read(payment: Payment) -> PaymentRead:
    return PaymentRead(
        id=payment.id,
        account_id=payment.account_id,
        amount=payment.amount,
        payment_date=payment.payment_date,
        card_type=payment.card.card_type if payment.card else None,
        last_four=payment.card.last_four if payment.card else None,
    )


@router.get("/cards", response_model=List[CardRead])
def list_cards(
    db: Session = Depends(get_db),
    account: Account = Depends(require_active_account),
) -> List[CardRead]:
    return [CardRead.model_validate(card) for card in card_service.list_cards(db, account.id)]


@router.post("/cards", response_model=CardRead, status_code=201)
def add_card(
    payload: CardCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_active_account),
) -> CardRead:
    try:
        card = card_service.add_card(db, account.id, payload.card_number, payload.card_type, payload.expiration_date)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    db.refresh(card)
    return CardRead.model_validate(card)


@router.put("/cards/{card_id}/default", response_model=CardRead)
def set_default_card(
    card_id: int,
    db: Session = Depends(get_db),
    account: Account = Depends(require_active_account),
) -> CardRead:
    try:
        card = card_service.set_default_card(db, account.id, card_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    db.refresh(card)
    return CardRead.model_validate(card)


@router.delete("/cards/{card_id}", status_code=204)
def remove_card(
    card_id: int,
    db: Session = Depends(get_db),
    account: Account = Depends(require_active_account),
) -> Response:
    try:
        card_service.remove_card(db, account.id, card_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return Response(status_code=204)


@router.post("/payments", response_model=PaymentResponse, status_code=201)
def make_payment(
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> PaymentResponse:
    try:
        payment, debug = payment_service.make_payment(db, owner, card_id=payload.card_id, amount=payload.amount)
    except LookupError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    db.refresh(payment.account)

    audit_log(
        db_session=db,
        actor_owner_id=owner.id,
        action="payment.create",
        target_entity_type="Payment",
        target_entity_id=payment.id,
        after={"amount": payment.amount, "account_id": payment.account_id, "card_id": payment.card_id},
    )
    return PaymentResponse(payment=payment_read(payment), new_balance=payment.account.balance, debug=debug)


@router.get("/payments/history", response_model=List[PaymentRead])
def payment_history(
    db: Session = Depends(get_db),
    account: Account = Depends(require_active_account),
) -> List[PaymentRead]:
    return [payment_read(payment) for payment in payment_service.payment_history(db, account.id)]


@router.get("/payments/{payment_id}", response_model=PaymentRead)
def read_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> PaymentRead:
    try:
        payment = payment_service.get_payment(db, payment_service.owner_account_ids(db, owner.id), payment_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return payment_read(payment)


@router.get("/charges/{charge_id}", response_model=ChargeDetail)
def read_charge(
    charge_id: int,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> ChargeDetail:
    try:
        detail = payment_service.get_charge_detail(db, payment_service.owner_account_ids(db, owner.id), charge_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    base = ChargeRead.model_validate(detail["charge"]).model_dump()
    return ChargeDetail(**base, description=detail["description"], issued_by_name=detail["issued_by_name"])

from decimal import Decimal

import pytest
from fastapi import HTTPException

from summit_portal.api import payments as payments_api
from summit_portal.models.models import Charge, CreditCard, Payment
from summit_portal.schemas.schemas import PaymentCreate
from summit_portal.services import cards, payments
from summit_portal.services.billing import create_charge, due_date_from


def test_add_card_stores_hash_and_last_four_only(db_session, create_owner, create_account):
    account = create_account(create_owner())

    card = cards.add_card(db_session, account.id, "4111 1111-1111 1111", "Visa", "12/29")
    db_session.commit()

    stored = db_session.get(CreditCard, card.id)
    assert stored.last_four == "1111"
    assert stored.card_hash == cards.hash_card_number("4111111111111111")
    assert "4111111111111111" not in stored.card_hash
    assert stored.is_default is True


def test_add_card_rejects_duplicates_and_bad_numbers(db_session, create_owner, create_account):
    account = create_account(create_owner())
    cards.add_card(db_session, account.id, "4111111111111111", "Visa")

    with pytest.raises(ValueError, match="Card already exists for this account"):
        cards.add_card(db_session, account.id, "4111-1111-1111-1111", "Visa")
    for bad in ("1234", "4111a11111111111", ""):
        with pytest.raises(ValueError, match="Invalid card number"):
            cards.add_card(db_session, account.id, bad, "Visa")


def test_same_card_may_belong_to_two_accounts(db_session, create_owner, create_account):
    first = create_account(create_owner())
    second = create_account(create_owner())

    cards.add_card(db_session, first.id, "5500000000000004", "Mastercard")
    cards.add_card(db_session, second.id, "5500000000000004", "Mastercard")
    assert db_session.query(CreditCard).count() == 2


def test_removing_default_card_promotes_newest_remaining(db_session, create_owner, create_account):
    account = create_account(create_owner())
    first = cards.add_card(db_session, account.id, "4111111111111111", "Visa")
    second = cards.add_card(db_session, account.id, "5500000000000004", "Mastercard")
    third = cards.add_card(db_session, account.id, "340000000000009", "Amex")
    assert [first.is_default, second.is_default, third.is_default] == [True, False, False]

    cards.remove_card(db_session, account.id, first.id)
    db_session.commit()

    remaining = cards.list_cards(db_session, account.id)
    assert [card.id for card in remaining if card.is_default] == [third.id]
    assert first.id not in [card.id for card in remaining]


def test_set_default_card_is_exclusive(db_session, create_owner, create_account):
    account = create_account(create_owner())
    cards.add_card(db_session, account.id, "4111111111111111", "Visa")
    second = cards.add_card(db_session, account.id, "5500000000000004", "Mastercard")

    cards.set_default_card(db_session, account.id, second.id)
    db_session.commit()

    defaults = [card.id for card in cards.list_cards(db_session, account.id) if card.is_default]
    assert defaults == [second.id]

    with pytest.raises(LookupError):
        cards.set_default_card(db_session, account.id, 9999)


def test_re_adding_removed_card_reactivates_it(db_session, create_owner, create_account):
    account = create_account(create_owner())
    card = cards.add_card(db_session, account.id, "4111111111111111", "Visa")
    cards.remove_card(db_session, account.id, card.id)

    again = cards.add_card(db_session, account.id, "4111111111111111", "Visa", "01/30")
    assert again.id == card.id
    assert again.is_active is True
    assert again.expiration_date == "01/30"


def test_payment_reduces_balance_and_emails_receipt(db_session, create_owner, create_account, sent_emails):
    owner = create_owner()
    account = create_account(owner, balance=Decimal("300.00"))
    card = cards.add_card(db_session, account.id, "4111111111111111", "Visa")
    db_session.commit()

    payment, debug = payments.make_payment(db_session, owner, card_id=card.id, amount="120.50")
    db_session.commit()
    db_session.refresh(account)

    assert account.balance == Decimal("179.50")
    assert payment.amount == Decimal("120.50")
    assert debug["emailSent"] is True
    assert debug["receiptGenerated"] is True
    assert len(sent_emails) == 1
    assert sent_emails[0]["subject"] == "Payment receipt - $120.50"
    assert [item.filename for item in sent_emails[0]["attachments"]] == [f"receipt_{payment.id}.pdf"]
    assert sent_emails[0]["attachments"][0].content.startswith(b"%PDF")


def test_payment_email_respects_preferences(db_session, create_owner, create_account, sent_emails):
    owner = create_owner()
    owner.notification_preference.payments_enabled = False
    db_session.commit()
    account = create_account(owner, balance=Decimal("50.00"))
    card = cards.add_card(db_session, account.id, "4111111111111111", "Visa")

    _, debug = payments.make_payment(db_session, owner, card_id=card.id, amount=Decimal("50"))
    db_session.commit()

    assert debug["emailSkipped"] == "Notification preferences"
    assert sent_emails == []
    db_session.refresh(account)
    assert account.balance == Decimal("0.00")


def test_payment_survives_email_failure(db_session, create_owner, create_account, monkeypatch):
    owner = create_owner()
    account = create_account(owner, balance=Decimal("80.00"))
    card = cards.add_card(db_session, account.id, "4111111111111111", "Visa")

    def _explode(*args, **kwargs):
        raise RuntimeError("sendgrid unavailable")

    monkeypatch.setattr("summit_portal.services.email.deliver", _explode)
    payment, debug = payments.make_payment(db_session, owner, card_id=card.id, amount="30")
    db_session.commit()

    assert debug["emailError"] == "sendgrid unavailable"
    assert db_session.get(Payment, payment.id) is not None
    db_session.refresh(account)
    assert account.balance == Decimal("50.00")


def test_payment_rejects_bad_amounts_and_foreign_cards(db_session, create_owner, create_account):
    owner = create_owner()
    account = create_account(owner)
    card = cards.add_card(db_session, account.id, "4111111111111111", "Visa")
    other_account = create_account(create_owner())
    foreign = cards.add_card(db_session, other_account.id, "5500000000000004", "Mastercard")

    for amount in ("0", "-5", "abc", "NaN"):
        with pytest.raises(ValueError, match="Invalid amount format"):
            payments.make_payment(db_session, owner, card_id=card.id, amount=amount)
    with pytest.raises(LookupError, match="Card not found"):
        payments.make_payment(db_session, owner, card_id=foreign.id, amount="10")


def test_payment_route_reports_new_balance(db_session, create_owner, create_account, sent_emails):
    owner = create_owner()
    account = create_account(owner, balance=Decimal("100.00"))
    card = cards.add_card(db_session, account.id, "4111111111111111", "Visa")
    db_session.commit()

    response = payments_api.make_payment(PaymentCreate(card_id=card.id, amount=Decimal("40")), db_session, owner)
    assert response.new_balance == Decimal("60.00")
    assert response.payment.last_four == "1111"

    with pytest.raises(HTTPException) as exc:
        payments_api.make_payment(PaymentCreate(card_id=card.id, amount=Decimal("-1")), db_session, owner)
    assert exc.value.status_code == 400


def test_charge_detail_is_scoped_to_owner_accounts(db_session, create_owner, create_account):
    owner = create_owner()
    account = create_account(owner)
    charge = create_charge(
        db_session,
        account,
        charge_type="fee",
        amount=Decimal("15.00"),
        due_date=due_date_from(account.created_at.date()),
    )
    db_session.commit()

    detail = payments.get_charge_detail(db_session, payments.owner_account_ids(db_session, owner.id), charge.id)
    assert detail["issued_by_name"] == "System"
    assert detail["description"] == "Fee"

    intruder = create_owner()
    with pytest.raises(LookupError):
        payments.get_charge_detail(db_session, payments.owner_account_ids(db_session, intruder.id), charge.id)
    assert db_session.get(Charge, charge.id).amount == Decimal("15.00")

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, require_active_account
from ..api.announcements import announcement_read
from ..api.owners import property_read
from ..auth.jwt import require_board_member
from ..models.models import Account, Owner
from ..schemas.schemas import (
    AccountCreateRequest,
    AccountCreateResponse,
    AccountDetailsResponse,
    AccountHistoryEntry,
    AccountSummary,
    ChargeRead,
)
from ..services import accounts as account_service
from ..services import announcements as announcement_service
from ..services.audit import audit_log

router = APIRouter()


def account_summary(account: Account) -> AccountSummary:
    return AccountSummary(
        account_id=account.id,
        owner_id=account.owner_id,
        balance=account.balance,
        property=property_read(account.property),
    )


@router.get("/dashboard")
def read_dashboard(
    db: Session = Depends(get_db),
    account: Account = Depends(require_active_account),
) -> Dict[str, Any]:
    charges = account_service.recent_charges(db, account.id, limit=3)
    announcements = announcement_service.list_published(db, limit=5)
    return {
        "account": account_summary(account),
        "recent_charges": [ChargeRead.model_validate(charge) for charge in charges],
        "announcements": [announcement_read(item) for item in announcements],
    }


@router.get("/account-details", response_model=AccountDetailsResponse)
def read_account_details(
    db: Session = Depends(get_db),
    account: Account = Depends(require_active_account),
) -> AccountDetailsResponse:
    history = account_service.account_history(db, account)
    return AccountDetailsResponse(
        account=account_summary(account),
        history=[AccountHistoryEntry(**entry) for entry in history],
    )


@router.post("/accounts/create", response_model=AccountCreateResponse, status_code=201)
def create_account(
    payload: AccountCreateRequest,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member("CHANGE_MEMBERS")),
) -> AccountCreateResponse:
    try:
        account, owner, temp_code = account_service.create_account(db, actor, payload.property_id, payload.effective_date)
    except LookupError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()

    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="account.create",
        target_entity_type="Account",
        target_entity_id=account.id,
        after={"property_id": payload.property_id, "owner_id": owner.id, "effective_date": payload.effective_date},
    )
    return AccountCreateResponse(account_id=account.id, owner_id=owner.id, temp_code=temp_code)

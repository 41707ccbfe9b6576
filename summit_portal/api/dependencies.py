from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.jwt import get_active_owner, get_db
from ..models.models import Account, Owner
from ..services.accounts import find_active_account

__all__ = ["get_db", "require_active_account"]


def require_active_account(
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> Account:
    account = find_active_account(db, owner.id)
    if account is None:
        raise HTTPException(status_code=404, detail="No active account found for this owner")
    return account

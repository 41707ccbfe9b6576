from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..api.auth import owner_details
from ..api.dependencies import get_db
from ..auth.jwt import get_active_owner, get_current_owner, require_board_member
from ..models.models import Owner, Property
from ..schemas.schemas import (
    ActiveOwnerRead,
    AvailablePropertyRead,
    ContactInfoUpdate,
    NotificationPreferenceRead,
    NotificationPreferenceUpdate,
    OwnerDetails,
    PersonalInfoUpdate,
    PropertyRead,
)
from ..services import accounts as account_service
from ..services import preferences as preference_service
from ..services.audit import audit_log, snapshot

router = APIRouter()

NAME_FIELDS = ("first_name", "last_name")
CONTACT_FIELDS = ("email", "phone")


def property_read(prop: Property) -> PropertyRead:
    return PropertyRead(
        id=prop.id,
        unit=prop.unit,
        street=prop.street,
        city=prop.city,
        state=prop.state,
        zip_code=prop.zip_code,
        address=prop.address,
    )


@router.get("/owner/details", response_model=OwnerDetails)
def read_owner_details(
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_current_owner),
) -> OwnerDetails:
    preference_service.get_or_create_preferences(db, owner)
    db.commit()
    return owner_details(owner)


@router.put("/owner/notification-preferences", response_model=NotificationPreferenceRead)
def update_notification_preferences(
    payload: NotificationPreferenceUpdate,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> NotificationPreferenceRead:
    try:
        preference = preference_service.update_preferences(db, owner, payload.model_dump())
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return NotificationPreferenceRead.model_validate(preference)


@router.put("/owner/personal-info", response_model=OwnerDetails)
def update_personal_info(
    payload: PersonalInfoUpdate,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> OwnerDetails:
    before = snapshot(owner, NAME_FIELDS)
    owner.first_name = payload.first_name.strip()
    owner.last_name = payload.last_name.strip()
    db.add(owner)
    audit_log(
        db_session=db,
        actor_owner_id=owner.id,
        action="owner.personal_info",
        target_entity_type="Owner",
        target_entity_id=owner.id,
        before=before,
        after=snapshot(owner, NAME_FIELDS),
    )
    return owner_details(owner)


@router.put("/owner/contact-info", response_model=OwnerDetails)
def update_contact_info(
    payload: ContactInfoUpdate,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> OwnerDetails:
    new_email = payload.email.lower()
    taken = (
        db.query(Owner.id)
        .filter(func.lower(Owner.email) == new_email, Owner.id != owner.id)
        .first()
    )
    if taken:
        raise HTTPException(status_code=400, detail="Email is already in use")

    before = snapshot(owner, CONTACT_FIELDS)
    owner.email = new_email
    owner.phone = payload.phone
    db.add(owner)
    audit_log(
        db_session=db,
        actor_owner_id=owner.id,
        action="owner.contact_info",
        target_entity_type="Owner",
        target_entity_id=owner.id,
        before=before,
        after=snapshot(owner, CONTACT_FIELDS),
    )
    return owner_details(owner)


def _active_owner_rows(db: Session, search: Optional[str]) -> List[ActiveOwnerRead]:
    return [
        ActiveOwnerRead(
            owner_id=row.owner.id,
            account_id=row.account.id,
            first_name=row.owner.first_name,
            last_name=row.owner.last_name,
            email=row.owner.email,
            phone=row.owner.phone,
            property=property_read(row.property),
        )
        for row in account_service.active_ownerships(db, search=search)
    ]


@router.get("/active-owners", response_model=List[ActiveOwnerRead])
def list_active_owners(
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> List[ActiveOwnerRead]:
    return _active_owner_rows(db, None)


@router.get("/owners/active", response_model=List[ActiveOwnerRead])
def search_active_owners(
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> List[ActiveOwnerRead]:
    return _active_owner_rows(db, search)


@router.get("/owners/active/all", response_model=List[ActiveOwnerRead])
def list_all_active_owners(
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> List[ActiveOwnerRead]:
    return _active_owner_rows(db, None)


@router.get("/properties/available", response_model=List[AvailablePropertyRead])
def list_available_properties(
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member("CHANGE_MEMBERS")),
) -> List[AvailablePropertyRead]:
    results = []
    for prop, ownership in account_service.available_properties(db):
        results.append(
            AvailablePropertyRead(
                property=property_read(prop),
                current_owner_id=ownership.owner_id if ownership else None,
                current_owner_name=ownership.owner.full_name if ownership else None,
                purchase_date=ownership.purchase_date if ownership else None,
            )
        )
    return results

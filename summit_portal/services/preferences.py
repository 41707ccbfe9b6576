from __future__ import annotations

import enum
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.models import NotificationPreference, Owner


class NotificationCategory(str, enum.Enum):
    MESSAGES = "messages_enabled"
    NEWS_DOCS = "news_docs_enabled"
    PAYMENTS = "payments_enabled"
    CHARGES = "charges_enabled"


# Templates missing from this map are operational mail and always go out.
TEMPLATE_CATEGORIES: Dict[str, NotificationCategory] = {
    "message": NotificationCategory.MESSAGES,
    "news_document": NotificationCategory.NEWS_DOCS,
    "survey": NotificationCategory.NEWS_DOCS,
    "payment": NotificationCategory.PAYMENTS,
    "charge": NotificationCategory.CHARGES,
    "violation": NotificationCategory.CHARGES,
    "assessment": NotificationCategory.CHARGES,
}

PREFERENCE_FLAGS = ("email_enabled",) + tuple(category.value for category in NotificationCategory)


def category_for_template(template: str) -> Optional[NotificationCategory]:
    return TEMPLATE_CATEGORIES.get(template)


def should_notify(preference: Optional[NotificationPreference], category: Optional[NotificationCategory]) -> bool:
    if preference is None or not preference.email_enabled:
        return False
    if category is None:
        return True
    return bool(getattr(preference, category.value))


def get_or_create_preferences(session: Session, owner: Owner) -> NotificationPreference:
    preference = owner.notification_preference
    if preference is None:
        preference = NotificationPreference(owner_id=owner.id)
        session.add(preference)
        session.flush()
        owner.notification_preference = preference
    return preference


def update_preferences(session: Session, owner: Owner, flags: Dict[str, bool]) -> NotificationPreference:
    values = {name: bool(flags.get(name, False)) for name in PREFERENCE_FLAGS}
    if not values["email_enabled"] and any(values[category.value] for category in NotificationCategory):
        raise ValueError("Invalid preference combination")

    preference = get_or_create_preferences(session, owner)
    for name, value in values.items():
        setattr(preference, name, value)
    session.add(preference)
    session.flush()
    return preference


def preferences_for_email(session: Session, email: str) -> Optional[NotificationPreference]:
    return (
        session.query(NotificationPreference)
        .join(Owner, Owner.id == NotificationPreference.owner_id)
        .filter(func.lower(Owner.email) == email.strip().lower())
        .first()
    )


def owners_opted_in(session: Session, category: NotificationCategory) -> list[Owner]:
    return (
        session.query(Owner)
        .join(NotificationPreference, NotificationPreference.owner_id == Owner.id)
        .filter(
            Owner.email.isnot(None),
            NotificationPreference.email_enabled.is_(True),
            getattr(NotificationPreference, category.value).is_(True),
        )
        .order_by(Owner.id.asc())
        .all()
    )

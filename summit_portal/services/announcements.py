from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import ANNOUNCEMENT_STATUSES, ANNOUNCEMENT_TYPES, MAX_ANNOUNCEMENT_IMAGE_BYTES
from ..models.models import Announcement, Owner, utcnow
from . import email, preferences

logger = logging.getLogger(__name__)


class UploadTooLargeError(ValueError):
    """Raised when an uploaded file exceeds its size cap."""


@dataclass
class UploadedImage:
    filename: Optional[str]
    content_type: Optional[str]
    data: bytes


def validate_image(image: Optional[UploadedImage]) -> Optional[UploadedImage]:
    if image is None or not image.data:
        return None
    if not (image.content_type or "").startswith("image/"):
        raise ValueError("Only image files are allowed")
    if len(image.data) > MAX_ANNOUNCEMENT_IMAGE_BYTES:
        raise UploadTooLargeError("Image exceeds the 10MB limit")
    return image


def _validate_fields(
    title: str,
    content: str,
    announcement_type: str,
    status: str,
    publish_date: Optional[datetime],
    event_date: Optional[datetime],
) -> None:
    if not (title or "").strip() or not (content or "").strip():
        raise ValueError("Title and content are required")
    if announcement_type not in ANNOUNCEMENT_TYPES:
        raise ValueError("Invalid announcement type")
    if status not in ANNOUNCEMENT_STATUSES:
        raise ValueError("Invalid announcement status")
    if announcement_type == "EVENT" and event_date is None:
        raise ValueError("Event date is required for events")
    if status == "SCHEDULED" and publish_date is None:
        raise ValueError("Publish date is required for scheduled announcements")


def encode_image(announcement: Announcement) -> Optional[str]:
    if not announcement.image_data:
        return None
    return base64.b64encode(announcement.image_data).decode("ascii")


def notify_owners(session: Session, announcement: Announcement) -> Dict[str, Any]:
    owners = preferences.owners_opted_in(session, preferences.NotificationCategory.NEWS_DOCS)
    item_type = announcement.announcement_type.title()
    return email.broadcast(
        session,
        owners,
        "news_document",
        lambda owner: {
            "recipient_name": owner.full_name,
            "item_type": item_type,
            "title": announcement.title,
            "summary": announcement.content[:200],
            "item_url": f"{settings.frontend_url}/announcements",
        },
    )


def create_announcement(
    session: Session,
    *,
    title: str,
    content: str,
    announcement_type: str = "ANNOUNCEMENT",
    status: str = "PUBLISHED",
    publish_date: Optional[datetime] = None,
    event_date: Optional[datetime] = None,
    image: Optional[UploadedImage] = None,
    created_by: Optional[Owner] = None,
    notify: bool = True,
) -> Tuple[Announcement, Dict[str, Any]]:
    announcement_type = (announcement_type or "ANNOUNCEMENT").upper()
    status = (status or "PUBLISHED").upper()
    _validate_fields(title, content, announcement_type, status, publish_date, event_date)
    image = validate_image(image)

    announcement = Announcement(
        title=title.strip(),
        content=content.strip(),
        announcement_type=announcement_type,
        status=status,
        publish_date=publish_date or (utcnow() if status == "PUBLISHED" else None),
        event_date=event_date,
        created_by_owner_id=created_by.id if created_by else None,
    )
    if image is not None:
        announcement.image_data = image.data
        announcement.image_filename = image.filename
        announcement.image_content_type = image.content_type
    session.add(announcement)
    session.flush()

    debug: Dict[str, Any] = {"announcementId": announcement.id, "emailsSent": 0, "emailsQueued": False}
    if status == "PUBLISHED":
        if notify:
            stats = notify_owners(session, announcement)
            debug.update(emailsSent=stats["sent"], emailsFailed=stats["failed"], emailErrors=stats["errors"])
        else:
            debug["emailsQueued"] = True
    return announcement, debug


def send_publication_emails(bind: Any, announcement_id: int) -> Dict[str, Any]:
    """Email news subscribers about a committed announcement.

    Runs after the response is sent, so it opens its own session on ``bind``
    instead of borrowing the request's.
    """
    with Session(bind=bind) as session:
        announcement = session.get(Announcement, announcement_id)
        if announcement is None or announcement.status != "PUBLISHED":
            logger.info("Skipping publication emails for announcement %s.", announcement_id)
            return {"sent": 0, "failed": 0, "skipped": 0, "errors": []}
        return notify_owners(session, announcement)


def update_announcement(
    session: Session,
    announcement_id: int,
    *,
    title: Optional[str] = None,
    content: Optional[str] = None,
    announcement_type: Optional[str] = None,
    status: Optional[str] = None,
    publish_date: Optional[datetime] = None,
    event_date: Optional[datetime] = None,
    image: Optional[UploadedImage] = None,
) -> Announcement:
    announcement = get_announcement(session, announcement_id)
    new_type = (announcement_type or announcement.announcement_type).upper()
    new_status = (status or announcement.status).upper()
    new_publish = publish_date if publish_date is not None else announcement.publish_date
    new_event = event_date if event_date is not None else announcement.event_date
    new_title = title if title is not None else announcement.title
    new_content = content if content is not None else announcement.content
    _validate_fields(new_title, new_content, new_type, new_status, new_publish, new_event)
    image = validate_image(image)

    announcement.title = new_title.strip()
    announcement.content = new_content.strip()
    announcement.announcement_type = new_type
    announcement.status = new_status
    announcement.publish_date = new_publish
    announcement.event_date = new_event
    if image is not None:
        announcement.image_data = image.data
        announcement.image_filename = image.filename
        announcement.image_content_type = image.content_type
    session.add(announcement)
    session.flush()
    return announcement


def get_announcement(session: Session, announcement_id: int) -> Announcement:
    announcement = session.get(Announcement, announcement_id)
    if announcement is None:
        raise LookupError("Announcement not found")
    return announcement


def delete_announcement(session: Session, announcement_id: int) -> None:
    session.delete(get_announcement(session, announcement_id))
    session.flush()


def list_published(session: Session, limit: Optional[int] = None) -> List[Announcement]:
    query = (
        session.query(Announcement)
        .filter(Announcement.status == "PUBLISHED")
        .order_by(Announcement.publish_date.desc(), Announcement.id.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def list_all(session: Session) -> List[Announcement]:
    return session.query(Announcement).order_by(Announcement.created_at.desc(), Announcement.id.desc()).all()


def due_for_publication(session: Session, now: datetime) -> List[Announcement]:
    return (
        session.query(Announcement)
        .filter(
            Announcement.status == "SCHEDULED",
            Announcement.publish_date.isnot(None),
            Announcement.publish_date <= now,
        )
        .order_by(Announcement.publish_date.asc())
        .all()
    )

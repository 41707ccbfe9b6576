from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import ALLOWED_DOCUMENT_TYPES, DOCUMENT_CATEGORIES, MAX_DOCUMENT_BYTES
from ..models.models import Document, Owner
from . import email, preferences
from .announcements import UploadTooLargeError

logger = logging.getLogger(__name__)


@dataclass
class UploadedDocument:
    filename: Optional[str]
    content_type: Optional[str]
    data: bytes


def validate_upload(upload: Optional[UploadedDocument]) -> UploadedDocument:
    if upload is None or not upload.data:
        raise ValueError("File is required")
    if upload.content_type not in ALLOWED_DOCUMENT_TYPES:
        raise ValueError("Invalid file type. Only Word, Excel, PowerPoint, PDF and text files are allowed.")
    if len(upload.data) > MAX_DOCUMENT_BYTES:
        raise UploadTooLargeError("File exceeds the 25MB limit")
    return upload


def _clean_category(category: Optional[str]) -> str:
    category = (category or "Other").strip()
    if category not in DOCUMENT_CATEGORIES:
        raise ValueError("Invalid document category")
    return category


def notify_owners(session: Session, document: Document) -> Dict[str, Any]:
    owners = preferences.owners_opted_in(session, preferences.NotificationCategory.NEWS_DOCS)
    return email.broadcast(
        session,
        owners,
        "news_document",
        lambda owner: {
            "recipient_name": owner.full_name,
            "item_type": "Document",
            "title": document.title,
            "summary": document.description,
            "item_url": f"{settings.frontend_url}/documents",
        },
    )


def send_document_emails(bind: Any, document_id: int) -> Dict[str, Any]:
    """Email news subscribers about a committed document on a fresh session."""
    with Session(bind=bind) as session:
        document = session.get(Document, document_id)
        if document is None:
            logger.info("Skipping document emails; document %s is gone.", document_id)
            return {"sent": 0, "failed": 0, "skipped": 0, "errors": []}
        return notify_owners(session, document)


def create_document(
    session: Session,
    *,
    title: str,
    description: str,
    category: Optional[str],
    upload: Optional[UploadedDocument],
    uploaded_by: Optional[Owner] = None,
    notify: bool = True,
) -> Tuple[Document, Dict[str, Any]]:
    if not (title or "").strip() or not (description or "").strip():
        raise ValueError("Title and description are required")
    upload = validate_upload(upload)

    document = Document(
        title=title.strip(),
        description=description.strip(),
        category=_clean_category(category),
        file_data=upload.data,
        file_name=upload.filename or "document",
        content_type=upload.content_type,
        file_size=len(upload.data),
        uploaded_by_owner_id=uploaded_by.id if uploaded_by else None,
    )
    session.add(document)
    session.flush()
    logger.info("Stored document %s (%s bytes, %s).", document.id, document.file_size, document.category)

    debug: Dict[str, Any] = {"documentId": document.id, "emailsSent": 0, "emailsQueued": not notify}
    if notify:
        stats = notify_owners(session, document)
        debug.update(emailsSent=stats["sent"], emailsFailed=stats["failed"], emailErrors=stats["errors"])
    return document, debug


def get_document(session: Session, document_id: int) -> Document:
    document = session.get(Document, document_id)
    if document is None:
        raise LookupError("Document not found")
    return document


def update_document(
    session: Session,
    document_id: int,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    category: Optional[str] = None,
    upload: Optional[UploadedDocument] = None,
) -> Document:
    document = get_document(session, document_id)
    if title is not None:
        if not title.strip():
            raise ValueError("Title is required")
        document.title = title.strip()
    if description is not None:
        if not description.strip():
            raise ValueError("Description is required")
        document.description = description.strip()
    if category is not None:
        document.category = _clean_category(category)
    if upload is not None and upload.data:
        upload = validate_upload(upload)
        document.file_data = upload.data
        document.file_name = upload.filename or document.file_name
        document.content_type = upload.content_type
        document.file_size = len(upload.data)
    session.add(document)
    session.flush()
    return document


def delete_document(session: Session, document_id: int) -> None:
    session.delete(get_document(session, document_id))
    session.flush()


def list_documents(session: Session, category: Optional[str] = None) -> List[Document]:
    query = session.query(Document)
    if category:
        query = query.filter(Document.category == category)
    return query.order_by(Document.created_at.desc(), Document.id.desc()).all()

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_active_owner
from ..models.models import Message, Owner, OwnerMessageMap
from ..schemas.schemas import (
    ContactSubmission,
    MessageCreate,
    MessageRead,
    MessageSendResponse,
    OwnerSearchResult,
)
from ..services import messages as message_service

router = APIRouter()


def message_read(message: Message, mapping: OwnerMessageMap) -> MessageRead:
    return MessageRead(
        id=message.id,
        sender_kind=message.sender_kind,
        sender_id=message.sender_id,
        sender_name=message_service.sender_name(message),
        subject=message.subject,
        content=message.content,
        parent_message_id=message.parent_message_id,
        created_at=message.created_at,
        is_read=mapping.is_read,
    )


@router.get("/messages", response_model=List[MessageRead])
def list_messages(
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> List[MessageRead]:
    return [message_read(message, mapping) for message, mapping in message_service.inbox(db, owner.id)]


@router.post("/messages", response_model=MessageSendResponse, status_code=201)
def send_message(
    payload: MessageCreate,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> MessageSendResponse:
    try:
        message, debug = message_service.send_owner_message(
            db,
            owner,
            payload.receiver_id,
            payload.content,
            subject=payload.subject,
            parent_id=payload.parent_message_id,
        )
    except LookupError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return MessageSendResponse(message_id=message.id, debug=debug)


@router.delete("/messages/{message_id}", status_code=204)
def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> Response:
    try:
        message_service.delete_for_owner(db, owner.id, message_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return Response(status_code=204)


@router.get("/messages/{message_id}/thread", response_model=List[MessageRead])
def read_thread(
    message_id: int,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> List[MessageRead]:
    try:
        rows = message_service.thread(db, owner.id, message_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [message_read(message, mapping) for message, mapping in rows]


@router.put("/messages/{message_id}/read")
def mark_message_read(
    message_id: int,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
):
    try:
        message_service.mark_read(db, owner.id, message_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return {"success": True}


@router.get("/users/search", response_model=List[OwnerSearchResult])
def search_users(
    query: str = Query("", max_length=100),
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_active_owner),
) -> List[OwnerSearchResult]:
    return [
        OwnerSearchResult(id=match.id, name=match.full_name, email=match.email)
        for match in message_service.search_owners(db, query, exclude_owner_id=owner.id)
    ]


@router.post("/contact/submit", status_code=201)
def submit_contact(payload: ContactSubmission, db: Session = Depends(get_db)):
    message = message_service.notify_board(
        db,
        (
            f"Contact form submission from {payload.name} ({payload.email}).\n\n"
            f"Subject: {payload.subject}\n\n"
            f"{payload.message}"
        ),
        subject=f"Contact Form: {payload.subject}",
    )
    db.commit()
    return {"success": True, "message_id": message.id if message else None}

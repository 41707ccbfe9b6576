from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ..config import settings
from ..models.models import Message, Owner, OwnerBoardMemberMap, OwnerMessageMap
from . import email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SystemSender:
    kind: ClassVar[str] = "SYSTEM"

    @property
    def sender_id(self) -> None:
        return None


@dataclass(frozen=True)
class OwnerSender:
    owner_id: int
    kind: ClassVar[str] = "OWNER"

    @property
    def sender_id(self) -> int:
        return self.owner_id


Sender = Union[SystemSender, OwnerSender]
SYSTEM = SystemSender()
SYSTEM_SENDER_NAME = "System"


def sender_of(message: Message) -> Sender:
    if message.sender_kind == SystemSender.kind or message.sender_id is None:
        return SYSTEM
    return OwnerSender(message.sender_id)


def sender_name(message: Message) -> str:
    if isinstance(sender_of(message), SystemSender):
        return SYSTEM_SENDER_NAME
    return message.sender.full_name if message.sender else f"Owner #{message.sender_id}"


def _create_message(
    session: Session,
    sender: Sender,
    recipient_ids: Iterable[int],
    content: str,
    subject: Optional[str] = None,
    parent_id: Optional[int] = None,
    read_by: Optional[int] = None,
) -> Message:
    message = Message(
        sender_kind=sender.kind,
        sender_id=sender.sender_id,
        subject=subject,
        content=content,
        parent_message_id=parent_id,
    )
    session.add(message)
    session.flush()
    for owner_id in dict.fromkeys(recipient_ids):
        session.add(OwnerMessageMap(owner_id=owner_id, message_id=message.id, is_read=owner_id == read_by))
    session.flush()
    return message


def send_system_message(
    session: Session,
    recipient_ids: Iterable[int],
    content: str,
    subject: Optional[str] = None,
    parent_id: Optional[int] = None,
) -> Message:
    return _create_message(session, SYSTEM, recipient_ids, content, subject=subject, parent_id=parent_id)


def active_board_member_ids(session: Session, today: Optional[date] = None) -> List[int]:
    today = today or date.today()
    rows = (
        session.query(OwnerBoardMemberMap.owner_id)
        .filter(
            *OwnerBoardMemberMap.active_clause(today),
        )
        .distinct()
        .all()
    )
    return [row[0] for row in rows]


def notify_board(session: Session, content: str, subject: Optional[str] = None) -> Optional[Message]:
    board_ids = active_board_member_ids(session)
    if not board_ids:
        logger.warning("No active board members to receive message '%s'.", subject or content[:20])
        return None
    return send_system_message(session, board_ids, content, subject=subject)


def send_owner_message(
    session: Session,
    sender: Owner,
    receiver_id: int,
    content: str,
    subject: Optional[str] = None,
    parent_id: Optional[int] = None,
) -> Tuple[Message, Dict[str, Any]]:
    receiver = session.get(Owner, receiver_id)
    if receiver is None:
        raise LookupError("Recipient not found")
    if parent_id is not None and session.get(Message, parent_id) is None:
        raise LookupError("Parent message not found")

    message = _create_message(
        session,
        OwnerSender(sender.id),
        [sender.id, receiver.id],
        content,
        subject=subject,
        parent_id=parent_id,
        read_by=sender.id,
    )
    debug: Dict[str, Any] = {"messageId": message.id, "emailSent": False}

    if receiver.id != sender.id and receiver.email:
        try:
            debug["emailSent"] = email.send_email(
                session,
                to=receiver.email,
                template="message",
                context={
                    "recipient_name": receiver.full_name,
                    "sender_name": sender.full_name,
                    "message": content,
                    "message_url": f"{settings.frontend_url}/messages",
                },
            )
        except Exception as exc:
            logger.warning("Message email to owner %s failed: %s", receiver.id, exc)
            debug["emailError"] = str(exc)
    return message, debug


def _owner_map(session: Session, owner_id: int, message_id: int) -> OwnerMessageMap:
    mapping = (
        session.query(OwnerMessageMap)
        .filter(OwnerMessageMap.owner_id == owner_id, OwnerMessageMap.message_id == message_id)
        .first()
    )
    if mapping is None:
        raise LookupError("Message not found")
    return mapping


def inbox(session: Session, owner_id: int) -> List[Tuple[Message, OwnerMessageMap]]:
    rows = (
        session.query(Message, OwnerMessageMap)
        .join(OwnerMessageMap, OwnerMessageMap.message_id == Message.id)
        .options(joinedload(Message.sender))
        .filter(OwnerMessageMap.owner_id == owner_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )
    return [(message, mapping) for message, mapping in rows]


def delete_for_owner(session: Session, owner_id: int, message_id: int) -> None:
    session.delete(_owner_map(session, owner_id, message_id))
    session.flush()


def mark_read(session: Session, owner_id: int, message_id: int) -> OwnerMessageMap:
    mapping = _owner_map(session, owner_id, message_id)
    mapping.is_read = True
    session.add(mapping)
    session.flush()
    return mapping


def thread(session: Session, owner_id: int, message_id: int) -> List[Tuple[Message, OwnerMessageMap]]:
    """Return the thread containing message_id, limited to messages mapped to the owner."""
    _owner_map(session, owner_id, message_id)

    root = session.get(Message, message_id)
    seen = {root.id}
    while root.parent_message_id is not None and root.parent_message_id not in seen:
        root = session.get(Message, root.parent_message_id)
        seen.add(root.id)

    thread_ids = [root.id]
    frontier = [root.id]
    while frontier:
        child_ids = [
            row[0]
            for row in session.query(Message.id).filter(Message.parent_message_id.in_(frontier)).all()
            if row[0] not in thread_ids
        ]
        thread_ids.extend(child_ids)
        frontier = child_ids

    rows = (
        session.query(Message, OwnerMessageMap)
        .join(OwnerMessageMap, OwnerMessageMap.message_id == Message.id)
        .filter(Message.id.in_(thread_ids), OwnerMessageMap.owner_id == owner_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )
    return [(message, mapping) for message, mapping in rows]


def search_owners(session: Session, query: str, exclude_owner_id: Optional[int] = None, limit: int = 20) -> List[Owner]:
    pattern = f"%{query.strip().lower()}%"
    owners = session.query(Owner).filter(Owner.email.isnot(None), Owner.is_temporary_password.is_(False))
    if query.strip():
        owners = owners.filter(
            or_(
                func.lower(Owner.first_name).like(pattern),
                func.lower(Owner.last_name).like(pattern),
                func.lower(Owner.email).like(pattern),
            )
        )
    if exclude_owner_id is not None:
        owners = owners.filter(Owner.id != exclude_owner_id)
    return owners.order_by(Owner.last_name.asc(), Owner.first_name.asc()).limit(limit).all()

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_board_member
from ..models.models import Announcement, Owner
from ..schemas.schemas import AnnouncementCreateResponse, AnnouncementRead
from ..services import announcements as announcement_service
from ..services.audit import audit_log

router = APIRouter(prefix="/announcements", tags=["announcements"])


def announcement_read(announcement: Announcement) -> AnnouncementRead:
    return AnnouncementRead(
        id=announcement.id,
        title=announcement.title,
        content=announcement.content,
        announcement_type=announcement.announcement_type,
        status=announcement.status,
        publish_date=announcement.publish_date,
        event_date=announcement.event_date,
        image=announcement_service.encode_image(announcement),
        image_content_type=announcement.image_content_type,
        created_at=announcement.created_at,
    )


def _read_image(image: Optional[UploadFile]) -> Optional[announcement_service.UploadedImage]:
    if image is None or not image.filename:
        return None
    return announcement_service.UploadedImage(
        filename=image.filename,
        content_type=image.content_type,
        data=image.file.read(),
    )


@router.get("", response_model=List[AnnouncementRead])
def list_announcements(db: Session = Depends(get_db)) -> List[AnnouncementRead]:
    return [announcement_read(item) for item in announcement_service.list_published(db)]


@router.get("/all", response_model=List[AnnouncementRead])
def list_all_announcements(
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> List[AnnouncementRead]:
    return [announcement_read(item) for item in announcement_service.list_all(db)]


@router.post("", response_model=AnnouncementCreateResponse, status_code=201)
def create_announcement(
    background: BackgroundTasks,
    title: str = Form(...),
    content: str = Form(...),
    announcement_type: str = Form("ANNOUNCEMENT"),
    status: str = Form("PUBLISHED"),
    publish_date: Optional[datetime] = Form(None),
    event_date: Optional[datetime] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member()),
) -> AnnouncementCreateResponse:
    upload = _read_image(image)
    try:
        announcement, debug = announcement_service.create_announcement(
            db,
            title=title,
            content=content,
            announcement_type=announcement_type,
            status=status,
            publish_date=publish_date,
            event_date=event_date,
            image=upload,
            created_by=actor,
            notify=False,
        )
    except announcement_service.UploadTooLargeError as exc:
        db.rollback()
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    if debug["emailsQueued"]:
        background.add_task(announcement_service.send_publication_emails, db.get_bind(), announcement.id)

    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="announcement.create",
        target_entity_type="Announcement",
        target_entity_id=announcement.id,
        after={"title": announcement.title, "status": announcement.status},
    )
    return AnnouncementCreateResponse(announcement=announcement_read(announcement), debug=debug)


@router.put("/{announcement_id}", response_model=AnnouncementRead)
def update_announcement(
    announcement_id: int,
    title: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    announcement_type: Optional[str] = Form(None),
    status: Optional[str] = Form(None),
    publish_date: Optional[datetime] = Form(None),
    event_date: Optional[datetime] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> AnnouncementRead:
    upload = _read_image(image)
    try:
        announcement = announcement_service.update_announcement(
            db,
            announcement_id,
            title=title,
            content=content,
            announcement_type=announcement_type,
            status=status,
            publish_date=publish_date,
            event_date=event_date,
            image=upload,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except announcement_service.UploadTooLargeError as exc:
        db.rollback()
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    db.refresh(announcement)
    return announcement_read(announcement)


@router.delete("/{announcement_id}", status_code=204)
def delete_announcement(
    announcement_id: int,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member()),
) -> Response:
    try:
        announcement_service.delete_announcement(db, announcement_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="announcement.delete",
        target_entity_type="Announcement",
        target_entity_id=announcement_id,
    )
    return Response(status_code=204)

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_active_owner, require_board_member
from ..models.models import Document, Owner
from ..schemas.schemas import DocumentCreateResponse, DocumentRead
from ..services import documents as document_service
from ..services.announcements import UploadTooLargeError
from ..services.audit import audit_log

router = APIRouter(prefix="/documents", tags=["documents"])


def _build_document_read(document: Document) -> DocumentRead:
    return DocumentRead(
        id=document.id,
        title=document.title,
        description=document.description,
        category=document.category,
        file_name=document.file_name,
        content_type=document.content_type,
        file_size=document.file_size,
        created_at=document.created_at,
        download_url=f"/api/documents/{document.id}/download",
    )


def _read_upload(file: Optional[UploadFile]) -> Optional[document_service.UploadedDocument]:
    if file is None or not file.filename:
        return None
    return document_service.UploadedDocument(
        filename=file.filename,
        content_type=file.content_type,
        data=file.file.read(),
    )


@router.get("", response_model=List[DocumentRead])
def list_documents(
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    _: Owner = Depends(get_active_owner),
) -> List[DocumentRead]:
    return [_build_document_read(doc) for doc in document_service.list_documents(db, category)]


@router.post("", response_model=DocumentCreateResponse, status_code=201)
def upload_document(
    background: BackgroundTasks,
    title: str = Form(""),
    description: str = Form(""),
    category: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member()),
) -> DocumentCreateResponse:
    upload = _read_upload(file)
    try:
        document, debug = document_service.create_document(
            db,
            title=title,
            description=description,
            category=category,
            upload=upload,
            uploaded_by=actor,
            notify=False,
        )
    except UploadTooLargeError as exc:
        db.rollback()
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    background.add_task(document_service.send_document_emails, db.get_bind(), document.id)

    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="document.create",
        target_entity_type="Document",
        target_entity_id=document.id,
        after={"title": document.title, "category": document.category, "file_size": document.file_size},
    )
    return DocumentCreateResponse(document=_build_document_read(document), debug=debug)


@router.put("/{document_id}", response_model=DocumentRead)
def update_document(
    document_id: int,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    _: Owner = Depends(require_board_member()),
) -> DocumentRead:
    upload = _read_upload(file)
    try:
        document = document_service.update_document(
            db,
            document_id,
            title=title,
            description=description,
            category=category,
            upload=upload,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UploadTooLargeError as exc:
        db.rollback()
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    db.refresh(document)
    return _build_document_read(document)


@router.delete("/{document_id}", status_code=204)
def delete_document(
    document_id: int,
    db: Session = Depends(get_db),
    actor: Owner = Depends(require_board_member()),
) -> Response:
    try:
        document_service.delete_document(db, document_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    audit_log(
        db_session=db,
        actor_owner_id=actor.id,
        action="document.delete",
        target_entity_type="Document",
        target_entity_id=document_id,
    )
    return Response(status_code=204)


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    db: Session = Depends(get_db),
    _: Owner = Depends(get_active_owner),
):
    try:
        document = document_service.get_document(db, document_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(
        content=document.file_data,
        media_type=document.content_type,
        headers={"Content-Disposition": f'attachment; filename="{document.file_name}"'},
    )

from typing import Annotated, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from starlette.background import BackgroundTask

from linkvault import models
from linkvault.auth import get_optional_user
from linkvault.config import Settings, get_settings
from linkvault.database import get_db
from linkvault.errors import InvalidPassword
from linkvault.schemas import (
    ContentCreated,
    ContentView,
    DeleteTokenPayload,
    PasswordPayload,
    Success,
    ViewCounts,
)
from linkvault.services import content as lifecycle
from linkvault.services.storage import StorageService, get_storage_service

router = APIRouter(prefix="/api", tags=["Content"])


def _attachment_header(filename: str) -> str:
    ascii_name = filename.encode("ascii", errors="ignore").decode("ascii").replace('"', "") or "download"
    return f"attachment; filename=\"{ascii_name}\"; filename*=utf-8''{quote(filename)}"


@router.post("/upload", response_model=ContentCreated)
def upload_content(
    text: Annotated[Optional[str], Form()] = None,
    file: Annotated[Optional[UploadFile], File(description="Binary file")] = None,
    expiry_minutes: Annotated[Optional[str], Form(alias="expiryMinutes")] = None,
    password: Annotated[Optional[str], Form()] = None,
    one_time: Annotated[Optional[str], Form(alias="oneTime")] = None,
    max_views: Annotated[Optional[str], Form(alias="maxViews")] = None,
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    settings: Settings = Depends(get_settings),
    current_user: Optional[models.User] = Depends(get_optional_user),
) -> dict:
    """Store text or a file behind a time-limited link"""
    upload = None
    if file is not None and file.filename:
        upload = lifecycle.FileUpload(
            file_obj=file.file,
            filename=file.filename,
            content_type=file.content_type or "application/octet-stream",
            size=lifecycle.measure_size(file.file),
        )

    record = lifecycle.create_content(
        db,
        storage,
        settings,
        text=text,
        upload=upload,
        password=password,
        one_time=lifecycle.parse_flag(one_time),
        max_views=lifecycle.parse_positive_int(max_views),
        expiry_minutes=lifecycle.parse_positive_int(expiry_minutes),
        owner=current_user,
    )
    return {
        "id": record.id,
        "link": f"{settings.frontend_url.rstrip('/')}/view/{record.id}",
        "expires_at": record.expires_at,
        "delete_token": record.delete_token,
        "view_count": record.view_count,
        "max_views": record.max_views,
    }


@router.post("/access/{content_id}", response_model=ContentView)
def access_content(
    content_id: str,
    payload: Optional[PasswordPayload] = None,
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
) -> lifecycle.AccessResult:
    """Consume one view and return the content"""
    password = payload.password if payload else None
    return lifecycle.access_content(db, storage, content_id, password)


@router.post("/view/{content_id}", response_model=ViewCounts)
def record_view(
    content_id: str,
    payload: Optional[PasswordPayload] = None,
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
) -> dict:
    password = payload.password if payload else None
    view_count, max_views = lifecycle.record_view(db, storage, content_id, password)
    return {"view_count": view_count, "max_views": max_views}


@router.get("/content/{content_id}", response_model=ContentView)
def peek_content(
    content_id: str,
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
) -> lifecycle.AccessResult:
    """Read content that has no password; gated content only reports the gate"""
    return lifecycle.peek_content(db, storage, content_id)


@router.post("/verify/{content_id}", response_model=Success)
def verify_password(
    content_id: str,
    payload: Optional[PasswordPayload] = None,
    db: Session = Depends(get_db),
) -> Success:
    """Check a password without consuming a view"""
    password = payload.password if payload else None
    if not lifecycle.verify_content_password(db, content_id, password):
        raise InvalidPassword()
    return Success()


@router.get("/download/{content_id}")
def download_content(
    content_id: str,
    password: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
):
    """Stream a stored file; one-time files are deleted once fully sent"""
    ticket = lifecycle.open_download(db, storage, content_id, password)
    return StreamingResponse(
        ticket.chunks,
        media_type=ticket.media_type,
        headers={"Content-Disposition": _attachment_header(ticket.filename)},
        background=BackgroundTask(lifecycle.finish_download, db, storage, ticket),
    )


@router.post("/delete/{content_id}", response_model=Success)
def delete_content(
    content_id: str,
    payload: Optional[DeleteTokenPayload] = None,
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    current_user: Optional[models.User] = Depends(get_optional_user),
) -> Success:
    """Delete content as its owner or with the delete token"""
    token = payload.delete_token if payload else None
    lifecycle.delete_authorized(db, storage, content_id, current_user, token)
    return Success()


@router.post("/stats/{content_id}", response_model=ViewCounts)
def content_stats(
    content_id: str,
    payload: Optional[DeleteTokenPayload] = None,
    db: Session = Depends(get_db),
    current_user: Optional[models.User] = Depends(get_optional_user),
) -> dict:
    token = payload.delete_token if payload else None
    view_count, max_views = lifecycle.content_stats(db, content_id, current_user, token)
    return {"view_count": view_count, "max_views": max_views}

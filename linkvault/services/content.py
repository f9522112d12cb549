"""Content lifecycle: creation, gated access, view accounting and deletion.

Every read path runs the same ordered checks: the record must exist, it must
not be past ``expires_at`` (an expired record is deleted on the spot), the
password must match, and only then is a view consumed. The view counter is
bumped with a single conditional UPDATE so that concurrent readers can never
push ``view_count`` past ``max_views``.
"""
import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import PurePath
from typing import BinaryIO, Iterator

from fastapi import status
from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

from linkvault import models
from linkvault.auth import hash_content_password, verify_content_secret
from linkvault.config import Settings
from linkvault.errors import ExpiredOrInvalid, Forbidden, InvalidPassword, NotAFile, ValidationFailed
from linkvault.services.storage import StorageService

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "yes", "on"}
_SUFFIX_RE = re.compile(r"^\.[a-z0-9]{1,10}$")


@dataclass
class FileUpload:
    file_obj: BinaryIO
    filename: str
    content_type: str
    size: int


@dataclass
class AccessResult:
    type: str
    text: str | None
    original_name: str | None
    requires_password: bool
    view_count: int | None = None
    max_views: int | None = None


@dataclass
class DownloadTicket:
    content_id: str
    file_key: str
    filename: str
    media_type: str
    one_time: bool
    chunks: Iterator[bytes]


def parse_positive_int(value) -> int | None:
    """Return a positive int, or None for anything missing, malformed or <= 0."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def parse_flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in TRUE_VALUES


def measure_size(file_obj: BinaryIO) -> int:
    file_obj.seek(0, 2)
    size = file_obj.tell()
    file_obj.seek(0)
    return size


def _file_key(content_id: str, filename: str) -> str:
    suffix = PurePath(filename or "").suffix.lower()
    if not _SUFFIX_RE.match(suffix):
        suffix = ""
    return f"{content_id}{suffix}"


def create_content(
    db: Session,
    storage: StorageService,
    settings: Settings,
    *,
    text: str | None = None,
    upload: FileUpload | None = None,
    password: str | None = None,
    one_time: bool = False,
    max_views: int | None = None,
    expiry_minutes: int | None = None,
    owner: models.User | None = None,
) -> models.Content:
    """Validate and persist a submission. A file takes precedence over text."""
    if upload is None and not text:
        raise ValidationFailed("TEXT_OR_FILE_REQUIRED")
    if upload is not None:
        if upload.content_type not in settings.allowed_mime_types:
            raise ValidationFailed("INVALID_FILE_TYPE")
        if upload.size > settings.max_file_size_bytes:
            raise ValidationFailed("FILE_TOO_LARGE", status.HTTP_413_REQUEST_ENTITY_TOO_LARGE)

    content_id = str(uuid.uuid4())
    created_at = datetime.utcnow()
    minutes = expiry_minutes or settings.default_expiry_minutes
    content = models.Content(
        id=content_id,
        password_hash=hash_content_password(password) if password else None,
        one_time=one_time,
        view_count=0,
        max_views=max_views,
        created_at=created_at,
        expires_at=created_at + timedelta(minutes=minutes),
        owner_id=owner.id if owner else None,
        delete_token=secrets.token_urlsafe(24),
    )

    if upload is not None:
        content.kind = "file"
        content.file_key = _file_key(content_id, upload.filename)
        content.original_name = upload.filename
        content.file_size = upload.size
        content.file_mime = upload.content_type
        storage.upload(key=content.file_key, file_obj=upload.file_obj, content_type=upload.content_type)
    else:
        content.kind = "text"
        content.text_content = text

    db.add(content)
    try:
        db.commit()
    except Exception:
        db.rollback()
        if content.file_key:
            storage.delete(content.file_key)
        raise
    db.refresh(content)
    logger.info("Created %s content %s expiring at %s", content.kind, content.id, content.expires_at)
    return content


def purge_content(db: Session, storage: StorageService, content_id: str, file_key: str | None) -> None:
    """Remove the blob first, then the row.

    A crash in between leaves a row without a blob, never a blob without a row.
    """
    if file_key:
        try:
            storage.delete(file_key)
        except Exception:
            logger.exception("Failed to remove blob %s for content %s", file_key, content_id)
    db.execute(delete(models.Content).where(models.Content.id == content_id))
    db.commit()
    logger.info("Deleted content %s", content_id)


def delete_content(db: Session, storage: StorageService, content: models.Content) -> None:
    purge_content(db, storage, content.id, content.file_key)


def _load_live(db: Session, storage: StorageService, content_id: str) -> models.Content:
    content = db.get(models.Content, content_id)
    if content is None:
        raise ExpiredOrInvalid()
    if datetime.utcnow() > content.expires_at:
        logger.info("Content %s expired on access", content_id)
        delete_content(db, storage, content)
        raise ExpiredOrInvalid()
    return content


def _check_password(content: models.Content, password: str | None) -> None:
    if content.password_hash is not None and not verify_content_secret(password, content.password_hash):
        raise InvalidPassword()


def _consume_view(db: Session, content: models.Content) -> tuple[int, int | None]:
    if content.max_views is not None and content.view_count >= content.max_views:
        raise ExpiredOrInvalid()

    content_id = content.id
    result = db.execute(
        update(models.Content)
        .where(
            models.Content.id == content_id,
            or_(
                models.Content.max_views.is_(None),
                models.Content.view_count < models.Content.max_views,
            ),
            # one-time text can only ever be read from a fresh counter
            or_(
                models.Content.one_time.is_(False),
                models.Content.kind != "text",
                models.Content.view_count == 0,
            ),
        )
        .values(view_count=models.Content.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 0:
        raise ExpiredOrInvalid()

    counts = db.execute(
        select(models.Content.view_count, models.Content.max_views).where(models.Content.id == content_id)
    ).first()
    if counts is None:
        # swept between the increment and the re-read
        raise ExpiredOrInvalid()
    return counts.view_count, counts.max_views


def _grant_view(db: Session, storage: StorageService, content: models.Content) -> AccessResult:
    content_id, kind, file_key = content.id, content.kind, content.file_key
    one_time = content.one_time
    result = AccessResult(
        type=kind,
        text=content.text_content if kind == "text" else None,
        original_name=content.original_name,
        requires_password=content.requires_password,
    )
    result.view_count, result.max_views = _consume_view(db, content)

    # one-time files are consumed by the download, not by reading metadata
    if one_time and kind == "text":
        purge_content(db, storage, content_id, file_key)
    return result


def access_content(
    db: Session, storage: StorageService, content_id: str, password: str | None = None
) -> AccessResult:
    content = _load_live(db, storage, content_id)
    _check_password(content, password)
    return _grant_view(db, storage, content)


def record_view(
    db: Session, storage: StorageService, content_id: str, password: str | None = None
) -> tuple[int, int | None]:
    result = access_content(db, storage, content_id, password)
    return result.view_count, result.max_views


def peek_content(db: Session, storage: StorageService, content_id: str) -> AccessResult:
    """Password-less read: gated content only reveals that it is gated."""
    content = _load_live(db, storage, content_id)
    if content.requires_password:
        return AccessResult(
            type=content.kind,
            text=None,
            original_name=content.original_name,
            requires_password=True,
        )
    return _grant_view(db, storage, content)


def verify_content_password(db: Session, content_id: str, password: str | None) -> bool:
    content = db.get(models.Content, content_id)
    if content is None or datetime.utcnow() > content.expires_at:
        return False
    if content.password_hash is None:
        return False
    return verify_content_secret(password, content.password_hash)


def open_download(
    db: Session, storage: StorageService, content_id: str, password: str | None = None
) -> DownloadTicket:
    content = _load_live(db, storage, content_id)
    _check_password(content, password)
    if content.kind != "file":
        raise NotAFile()

    try:
        chunks = storage.stream(content.file_key)
    except FileNotFoundError:
        logger.warning("Blob missing for content %s", content_id)
        delete_content(db, storage, content)
        raise ExpiredOrInvalid()

    return DownloadTicket(
        content_id=content.id,
        file_key=content.file_key,
        filename=content.original_name or content.file_key,
        media_type=content.file_mime or "application/octet-stream",
        one_time=content.one_time,
        chunks=chunks,
    )


def finish_download(db: Session, storage: StorageService, ticket: DownloadTicket) -> None:
    """Runs once the response body has been sent in full."""
    if ticket.one_time:
        purge_content(db, storage, ticket.content_id, ticket.file_key)


def _authorize(
    db: Session, content_id: str, user: models.User | None, delete_token: str | None
) -> models.Content:
    content = db.get(models.Content, content_id)
    if content is None:
        raise Forbidden()
    is_owner = user is not None and content.owner_id is not None and content.owner_id == user.id
    token_ok = bool(delete_token) and secrets.compare_digest(
        content.delete_token.encode("utf-8"), delete_token.encode("utf-8")
    )
    if not (is_owner or token_ok):
        raise Forbidden()
    return content


def delete_authorized(
    db: Session,
    storage: StorageService,
    content_id: str,
    user: models.User | None = None,
    delete_token: str | None = None,
) -> None:
    content = _authorize(db, content_id, user, delete_token)
    delete_content(db, storage, content)


def content_stats(
    db: Session, content_id: str, user: models.User | None = None, delete_token: str | None = None
) -> tuple[int, int | None]:
    content = _authorize(db, content_id, user, delete_token)
    return content.view_count, content.max_views


def list_owned(db: Session, user: models.User) -> list[models.Content]:
    return (
        db.query(models.Content)
        .filter(models.Content.owner_id == user.id, models.Content.expires_at >= datetime.utcnow())
        .order_by(models.Content.created_at.desc())
        .all()
    )

import logging
import secrets
from datetime import datetime, timedelta
from typing import Annotated

from email_validator import EmailNotValidError, validate_email
from fastapi import Depends, Request, status
from passlib.context import CryptContext
from sqlalchemy import delete
from sqlalchemy.orm import Session

from linkvault import models
from linkvault.config import get_settings
from linkvault.database import get_db
from linkvault.errors import AuthError, ValidationFailed

logger = logging.getLogger(__name__)

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# Content passwords are compared in full, so they are pre-hashed instead of truncated
content_pwd_context = CryptContext(schemes=["bcrypt_sha256"], deprecated="auto")


def _truncate(password: str) -> str:
    # Bcrypt has a 72-byte limit, hashing and verifying must truncate the same way
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > 72:
        password_bytes = password_bytes[:72]
    return password_bytes.decode("utf-8", errors="ignore")


def verify_password(plain_password: str | None, hashed_password: str) -> bool:
    if plain_password is None:
        return False
    return pwd_context.verify(_truncate(plain_password), hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(_truncate(password))


def hash_content_password(password: str) -> str:
    return content_pwd_context.hash(password)


def verify_content_secret(plain_password: str | None, hashed_password: str) -> bool:
    if plain_password is None:
        return False
    return content_pwd_context.verify(plain_password, hashed_password)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def get_user_by_email(db: Session, email: str) -> models.User | None:
    return db.query(models.User).filter(models.User.email == email).first()


def create_session(db: Session, user: models.User) -> models.UserSession:
    """Issue a fresh bearer session; existing sessions of the user stay valid."""
    now = datetime.utcnow()
    session = models.UserSession(
        token=secrets.token_urlsafe(32),
        user_id=user.id,
        created_at=now,
        expires_at=now + timedelta(days=settings.session_ttl_days),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def register_user(db: Session, email: str | None, password: str | None) -> models.UserSession:
    email = normalize_email(email)
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationFailed("INVALID_EMAIL") from exc

    if not password or len(password) < settings.min_password_length:
        raise ValidationFailed("WEAK_PASSWORD")

    if get_user_by_email(db, email):
        raise ValidationFailed("EMAIL_EXISTS", status.HTTP_409_CONFLICT)

    user = models.User(email=email, password_hash=get_password_hash(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return create_session(db, user)


def authenticate_user(db: Session, email: str | None, password: str | None) -> models.UserSession:
    email = normalize_email(email)
    if not email or not password:
        raise ValidationFailed("INVALID_CREDENTIALS")

    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise AuthError("INVALID_CREDENTIALS")
    return create_session(db, user)


def resolve_session(db: Session, token: str | None) -> models.UserSession | None:
    """Look up a bearer token, dropping the session row once it has expired."""
    if not token:
        return None
    session = db.get(models.UserSession, token)
    if session is None:
        return None
    if session.expires_at < datetime.utcnow():
        db.execute(delete(models.UserSession).where(models.UserSession.token == token))
        db.commit()
        return None
    return session


def revoke_session(db: Session, session: models.UserSession) -> None:
    db.execute(delete(models.UserSession).where(models.UserSession.token == session.token))
    db.commit()


def get_token_from_request(request: Request) -> str | None:
    """Extract token from the Bearer header"""
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None


def get_optional_session(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
) -> models.UserSession | None:
    return resolve_session(db, get_token_from_request(request))


def get_optional_user(
    session: Annotated[models.UserSession | None, Depends(get_optional_session)],
) -> models.User | None:
    return session.user if session else None


def get_current_session(
    session: Annotated[models.UserSession | None, Depends(get_optional_session)],
) -> models.UserSession:
    if session is None:
        raise AuthError()
    return session


def get_current_user(
    session: Annotated[models.UserSession, Depends(get_current_session)],
) -> models.User:
    return session.user

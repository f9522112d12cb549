from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from linkvault import models
from linkvault.auth import (
    authenticate_user,
    get_current_session,
    get_current_user,
    register_user,
    revoke_session,
)
from linkvault.database import get_db
from linkvault.schemas import ContentList, Credentials, CurrentUser, SessionRead, Success
from linkvault.services.content import list_owned

router = APIRouter(prefix="/api", tags=["Authentication"])


@router.post("/register", response_model=SessionRead)
def register(payload: Credentials, db: Session = Depends(get_db)) -> models.UserSession:
    return register_user(db, payload.email, payload.password)


@router.post("/login", response_model=SessionRead)
def login(payload: Credentials, db: Session = Depends(get_db)) -> models.UserSession:
    return authenticate_user(db, payload.email, payload.password)


@router.get("/me", response_model=CurrentUser)
def read_current_user(current_user: models.User = Depends(get_current_user)) -> dict:
    return {"user": current_user}


@router.post("/logout", response_model=Success)
def logout(
    session: models.UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> Success:
    revoke_session(db, session)
    return Success()


@router.get("/my-contents", response_model=ContentList)
def list_my_contents(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> dict:
    """Unexpired content uploaded by the current user, newest first"""
    items = [
        {
            "id": item.id,
            "type": item.kind,
            "original_name": item.original_name,
            "created_at": item.created_at,
            "expires_at": item.expires_at,
            "view_count": item.view_count,
            "max_views": item.max_views,
        }
        for item in list_owned(db, current_user)
    ]
    return {"items": items}

import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, BigInteger
from sqlalchemy.orm import relationship

from linkvault.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    contents = relationship("Content", back_populates="owner")


class UserSession(Base):
    __tablename__ = "sessions"

    token = Column(String, primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    user = relationship("User", back_populates="sessions")


class Content(Base):
    __tablename__ = "contents"

    id = Column(String(36), primary_key=True, default=_new_id)
    kind = Column(String(8), nullable=False)  # text | file
    text_content = Column(Text, nullable=True)
    file_key = Column(String, nullable=True, unique=True)
    original_name = Column(String, nullable=True)
    file_size = Column(BigInteger, nullable=True)
    file_mime = Column(String, nullable=True)
    password_hash = Column(String, nullable=True)
    one_time = Column(Boolean, default=False, nullable=False)
    view_count = Column(Integer, default=0, nullable=False)
    max_views = Column(Integer, nullable=True)  # NULL means unlimited
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    delete_token = Column(String, nullable=False, unique=True)

    owner = relationship("User", back_populates="contents")

    @property
    def requires_password(self) -> bool:
        return self.password_hash is not None

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from linkvault.config import get_settings

settings = get_settings()

# SQLite connections are shared across the request threadpool and the sweeper
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

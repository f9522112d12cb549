import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy import delete
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from linkvault import models
from linkvault.services.content import purge_content
from linkvault.services.storage import StorageService

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    contents: int = 0
    sessions: int = 0


def sweep_expired(db: Session, storage: StorageService, now: datetime | None = None) -> SweepResult:
    """Delete every expired content record (blob first) and every stale session."""
    now = now or datetime.utcnow()
    result = SweepResult()

    expired = (
        db.query(models.Content.id, models.Content.file_key)
        .filter(models.Content.expires_at < now)
        .all()
    )
    for content_id, file_key in expired:
        purge_content(db, storage, content_id, file_key)
        result.contents += 1

    deleted = db.execute(delete(models.UserSession).where(models.UserSession.expires_at < now))
    db.commit()
    result.sessions = deleted.rowcount or 0
    return result


class Sweeper:
    """Periodic garbage collection running next to the request handlers.

    Each tick opens its own session and runs in a worker thread; a failed tick
    is logged and the loop carries on with the next one.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        storage_factory: Callable[[], StorageService],
        interval_seconds: float,
    ):
        self.session_factory = session_factory
        self.storage_factory = storage_factory
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    def run_once(self) -> SweepResult:
        db = self.session_factory()
        try:
            result = sweep_expired(db, self.storage_factory())
        finally:
            db.close()
        if result.contents or result.sessions:
            logger.info("Sweep removed %d contents and %d sessions", result.contents, result.sessions)
        return result

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await run_in_threadpool(self.run_once)
            except Exception:
                logger.exception("Sweep failed, retrying next tick")

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._loop())
            logger.info("Sweeper started, interval %ss", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

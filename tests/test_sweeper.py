from __future__ import annotations
import asyncio
import io
import logging
from datetime import datetime, timedelta

from sqlalchemy import update

from linkvault import models
from linkvault.auth import register_user
from linkvault.services import content as lifecycle
from linkvault.services.sweeper import Sweeper, sweep_expired


def test_sweep_removes_expired_contents_and_blobs(db, storage, make_content, expire):
    upload = lifecycle.FileUpload(io.BytesIO(b"data"), "a.txt", "text/plain", 4)
    stale_file = make_content(upload=upload)
    stale_file_id, blob = stale_file.id, storage.root / stale_file.file_key
    stale_text_id = make_content().id
    live_id = make_content().id
    expire(stale_file_id)
    expire(stale_text_id)

    result = sweep_expired(db, storage)

    assert result.contents == 2
    assert not blob.exists()
    assert db.get(models.Content, stale_file_id) is None
    assert db.get(models.Content, stale_text_id) is None
    assert db.get(models.Content, live_id) is not None


def test_sweep_tolerates_missing_blob(db, storage, make_content, expire):
    upload = lifecycle.FileUpload(io.BytesIO(b"data"), "a.txt", "text/plain", 4)
    record = make_content(upload=upload)
    content_id = record.id
    (storage.root / record.file_key).unlink()
    expire(content_id)

    assert sweep_expired(db, storage).contents == 1
    assert db.get(models.Content, content_id) is None


def test_sweep_removes_stale_sessions(db, storage, session_factory):
    live = register_user(db, "live@linkvault.io", "password8").token
    stale = register_user(db, "stale@linkvault.io", "password8").token
    with session_factory() as session:
        session.execute(
            update(models.UserSession)
            .where(models.UserSession.token == stale)
            .values(expires_at=datetime.utcnow() - timedelta(hours=1))
        )
        session.commit()
    db.expire_all()

    result = sweep_expired(db, storage)

    assert result.sessions == 1
    assert db.get(models.UserSession, live) is not None
    assert db.get(models.UserSession, stale) is None
    # users are never removed by the sweep
    assert db.query(models.User).count() == 2


def test_sweep_with_nothing_to_do(db, storage, make_content):
    make_content()
    result = sweep_expired(db, storage)
    assert (result.contents, result.sessions) == (0, 0)


def test_run_once_uses_its_own_session(session_factory, storage, make_content, expire):
    content_id = make_content().id
    expire(content_id)

    sweeper = Sweeper(session_factory, lambda: storage, interval_seconds=300)
    assert sweeper.run_once().contents == 1


def test_loop_survives_failed_tick(session_factory, storage, caplog):
    calls = []

    def flaky_storage():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("storage unavailable")
        return storage

    sweeper = Sweeper(session_factory, flaky_storage, interval_seconds=0.01)

    async def run():
        sweeper.start()
        for _ in range(300):
            await asyncio.sleep(0.01)
            if len(calls) >= 2:
                break
        await sweeper.stop()

    with caplog.at_level(logging.ERROR, logger="linkvault.services.sweeper"):
        asyncio.run(run())

    assert len(calls) >= 2
    assert "Sweep failed" in caplog.text

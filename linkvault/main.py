import logging

from fastapi import FastAPI

from linkvault.config import get_settings
from linkvault.database import SessionLocal, engine
from linkvault.errors import ServiceError, service_error_handler
from linkvault.migrations import apply_migrations
from linkvault.routers import content, users
from linkvault.services.storage import get_storage_service
from linkvault.services.sweeper import Sweeper

settings = get_settings()

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)

app.include_router(users.router)
app.include_router(content.router)
app.add_exception_handler(ServiceError, service_error_handler)

sweeper = Sweeper(SessionLocal, get_storage_service, settings.sweep_interval_seconds)


@app.on_event("startup")
async def on_startup() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    applied = apply_migrations(engine)
    if applied:
        logger.info("Database migrated to version %d", applied[-1])
    # fail at boot rather than on the first upload if storage is misconfigured
    get_storage_service()
    if settings.sweeper_enabled:
        sweeper.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await sweeper.stop()


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}

import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .db import Base, engine, SessionLocal
from .cleanup import purge_expired_sessions
from .admin_auth import seed_super_admin
from .settings import settings
from .routers import health
from .routers import auth
from .routers import content
from .routers import ai_stories
from .routers import files
from .routers import family
from .routers import admin_auth
from .cache import close_cache
from . import story_service

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60

app = FastAPI(title="WonderNest API", version=settings.version)
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(content.router)
app.include_router(ai_stories.router)
app.include_router(files.router)
app.include_router(family.router)
app.include_router(admin_auth.router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
	error_id = id(exc)
	logger.error(
		f"Unhandled exception [{error_id}] in {request.method} {request.url.path}: {exc}",
		exc_info=exc,
		extra={"error_id": error_id, "method": request.method, "path": request.url.path, "error_type": type(exc).__name__},
	)
	return JSONResponse(
		status_code=500,
		content={"detail": "Internal server error", "error_id": error_id, "error_type": type(exc).__name__},
	)


def _run_cleanup() -> None:
	db = SessionLocal()
	try:
		purge_expired_sessions(db)
	except SQLAlchemyError:
		logger.exception("Admin session cleanup failed")
		db.rollback()
	finally:
		db.close()


async def _cleanup_watcher():
	# Runs once at startup, then daily
	while True:
		_run_cleanup()
		await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)


@app.on_event("startup")
async def startup_event():
	Base.metadata.create_all(bind=engine)
	db = SessionLocal()
	try:
		seed_super_admin(db)
	finally:
		db.close()
	app.state.cleanup_task = asyncio.create_task(_cleanup_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	task = getattr(app.state, "cleanup_task", None)
	if task is not None:
		task.cancel()
	await story_service.close_story_service()
	close_cache()

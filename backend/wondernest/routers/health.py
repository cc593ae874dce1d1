from datetime import datetime, timezone
from typing import Dict, Optional, Tuple
import logging
import time

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import redis

from ..cache import CacheManager, get_cache
from ..db import get_db, is_healthy
from ..settings import settings

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)


class ServiceHealth(BaseModel):
	status: str
	message: Optional[str] = None
	responseTime: Optional[int] = None


class HealthStatus(BaseModel):
	status: str
	timestamp: str
	version: str
	environment: str
	services: Dict[str, ServiceHealth]


def _check_database(db: Session) -> Tuple[bool, int]:
	started = time.monotonic()
	try:
		healthy = is_healthy(db)
	except SQLAlchemyError as e:
		logger.warning(f"Database health check failed: {e}")
		healthy = False
	return healthy, int((time.monotonic() - started) * 1000)


def _check_redis(cache: Optional[CacheManager]) -> Tuple[Optional[bool], int]:
	"""None when Redis is not configured."""
	if cache is None:
		return None, 0
	started = time.monotonic()
	try:
		healthy = cache.ping()
	except redis.RedisError as e:
		logger.warning(f"Redis health check failed: {e}")
		healthy = False
	return healthy, int((time.monotonic() - started) * 1000)


def _up_down(healthy: Optional[bool]) -> str:
	if healthy is None:
		return "DISABLED"
	return "UP" if healthy else "DOWN"


@router.get("")
async def health():
	return {"status": "UP"}


@router.head("")
async def health_head():
	return Response(status_code=200)


@router.get("/detailed", response_model=HealthStatus)
def detailed(db: Session = Depends(get_db), cache: Optional[CacheManager] = Depends(get_cache)):
	db_healthy, db_time = _check_database(db)
	redis_healthy, redis_time = _check_redis(cache)
	services = {
		"database": ServiceHealth(
			status=_up_down(db_healthy),
			message="Connected" if db_healthy else "Connection failed",
			responseTime=db_time,
		),
		"redis": ServiceHealth(
			status=_up_down(redis_healthy),
			message="Not configured" if redis_healthy is None else ("Connected" if redis_healthy else "Connection failed"),
			responseTime=redis_time if redis_healthy is not None else None,
		),
	}
	overall = db_healthy and redis_healthy is not False
	body = HealthStatus(
		status="UP" if overall else "DOWN",
		timestamp=datetime.now(timezone.utc).isoformat(),
		version=settings.version,
		environment=settings.environment,
		services=services,
	)
	return JSONResponse(status_code=200 if overall else 503, content=body.model_dump())


@router.get("/ready")
def ready(db: Session = Depends(get_db), cache: Optional[CacheManager] = Depends(get_cache)):
	db_healthy, _ = _check_database(db)
	redis_healthy, _ = _check_redis(cache)
	if db_healthy and redis_healthy is not False:
		return {"status": "READY"}
	return JSONResponse(
		status_code=503,
		content={"status": "NOT_READY", "database": _up_down(db_healthy), "redis": _up_down(redis_healthy)},
	)


@router.get("/live")
async def live():
	return {"status": "ALIVE"}


@router.get("/startup")
def startup(db: Session = Depends(get_db)):
	db_healthy, _ = _check_database(db)
	if db_healthy:
		return {"status": "STARTED"}
	return JSONResponse(status_code=503, content={"status": "STARTING"})

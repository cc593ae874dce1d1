"""Redis-backed cache for image analyses and health probes."""
from __future__ import annotations
import json
import logging
from typing import Any, Dict, Optional

import redis

from .settings import settings

logger = logging.getLogger(__name__)


class CacheManager:
	def __init__(self, redis_url: Optional[str] = None, *, client: Optional[redis.Redis] = None) -> None:
		self.redis_url = redis_url or settings.redis_url
		self.redis_client = client or redis.from_url(self.redis_url, decode_responses=True)
		self.default_ttl = settings.cache_ttl_seconds

	def ping(self) -> bool:
		"""Raises redis.RedisError when the server cannot be reached."""
		return bool(self.redis_client.ping())

	def get_json(self, key: str) -> Optional[Dict[str, Any]]:
		try:
			raw = self.redis_client.get(key)
		except redis.RedisError as e:
			logger.error(f"Error getting cache key {key}: {e}")
			return None
		if raw is None:
			return None
		try:
			return json.loads(raw)
		except ValueError:
			logger.warning(f"Discarding non-JSON cache value for {key}")
			return None

	def set_json(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> bool:
		try:
			return bool(self.redis_client.setex(key, ttl or self.default_ttl, json.dumps(value)))
		except redis.RedisError as e:
			logger.error(f"Error setting cache key {key}: {e}")
			return False

	def close(self) -> None:
		self.redis_client.close()


_cache: Optional[CacheManager] = None


def get_cache() -> Optional[CacheManager]:
	"""Process-wide cache, or None when REDIS_URL is not configured."""
	global _cache
	if not settings.redis_url:
		return None
	if _cache is None:
		_cache = CacheManager()
	return _cache


def close_cache() -> None:
	global _cache
	if _cache is not None:
		_cache.close()
		_cache = None

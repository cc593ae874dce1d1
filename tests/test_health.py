import pytest
import redis

from wondernest import cache as cache_module
from wondernest.cache import CacheManager, close_cache, get_cache
from wondernest.db import get_db
from wondernest.main import app


class FakeRedis:
	def __init__(self, fail: bool = False) -> None:
		self.fail = fail
		self.store = {}
		self.closed = False

	def ping(self):
		if self.fail:
			raise redis.ConnectionError("connection refused")
		return True

	def get(self, key):
		return self.store.get(key)

	def setex(self, key, ttl, value):
		self.store[key] = value
		return True

	def close(self):
		self.closed = True


class BrokenSession:
	def execute(self, *args, **kwargs):
		from sqlalchemy.exc import OperationalError
		raise OperationalError("SELECT 1", {}, Exception("database is down"))


@pytest.fixture
def broken_db():
	app.dependency_overrides[get_db] = lambda: BrokenSession()


def test_basic_health(client):
	assert client.get("/health").json() == {"status": "UP"}
	assert client.head("/health").status_code == 200
	assert client.get("/health/live").json() == {"status": "ALIVE"}


def test_status_is_only_served_under_health(client):
	assert client.get("/info").status_code == 404


def test_detailed_without_redis(client):
	r = client.get("/health/detailed")
	assert r.status_code == 200
	body = r.json()
	assert body["status"] == "UP"
	assert body["services"]["database"]["status"] == "UP"
	assert body["services"]["redis"]["status"] == "DISABLED"
	assert "version" in body and "environment" in body


def test_detailed_with_failing_redis(client):
	app.dependency_overrides[get_cache] = lambda: CacheManager(client=FakeRedis(fail=True))
	r = client.get("/health/detailed")
	assert r.status_code == 503
	assert r.json()["services"]["redis"]["status"] == "DOWN"
	ready = client.get("/health/ready")
	assert ready.status_code == 503
	assert ready.json() == {"status": "NOT_READY", "database": "UP", "redis": "DOWN"}


def test_ready_with_healthy_redis(client):
	app.dependency_overrides[get_cache] = lambda: CacheManager(client=FakeRedis())
	assert client.get("/health/ready").json() == {"status": "READY"}
	assert client.get("/health/detailed").json()["services"]["redis"]["status"] == "UP"


def test_database_down(client, broken_db):
	r = client.get("/health/detailed")
	assert r.status_code == 503
	assert r.json()["services"]["database"]["status"] == "DOWN"
	startup = client.get("/health/startup")
	assert startup.status_code == 503
	assert startup.json() == {"status": "STARTING"}


def test_startup(client):
	assert client.get("/health/startup").json() == {"status": "STARTED"}


def test_cache_json_round_trip():
	cache = CacheManager(client=FakeRedis())
	assert cache.get_json("missing") is None
	assert cache.set_json("image_analysis:1", {"description": "a cat"})
	assert cache.get_json("image_analysis:1") == {"description": "a cat"}


def test_close_cache_releases_the_client(monkeypatch):
	fake = FakeRedis()
	monkeypatch.setattr(cache_module, "_cache", CacheManager(client=fake))
	close_cache()
	assert fake.closed is True
	assert cache_module._cache is None
	close_cache()

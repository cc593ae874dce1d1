import asyncio
import json
from datetime import datetime, timedelta

import pytest

from wondernest.cache import CacheManager
from wondernest.llm import StoryGenerationRequest
from wondernest.models import StoryGeneration, UploadedFile
from wondernest.settings import settings
from wondernest.story_service import RESULT_FAILED, RESULT_QUOTA_EXCEEDED, RESULT_SUCCESS, StoryService
from wondernest import storage

from .conftest import FakeProvider
from .test_health import FakeRedis


class SlowProvider(FakeProvider):
	async def generate_story(self, request):
		await asyncio.sleep(1)
		return await super().generate_story(request)


class BrokenHealthProvider(FakeProvider):
	name = "other"

	async def health_check(self):
		raise RuntimeError("probe crashed")


async def test_generation_times_out(db, parent):
	service = StoryService({"gemini": SlowProvider()}, timeout_seconds=0.05)
	result = await service.generate_story(db, parent.id, parent.family_id, None, StoryGenerationRequest(prompt="hi"))
	assert result.status == RESULT_FAILED
	assert result.retryable is True
	assert "timed out" in result.error
	assert db.get(StoryGeneration, result.generation_id).status == "failed"


async def test_missing_provider_is_retryable(db, parent):
	service = StoryService({}, timeout_seconds=1)
	result = await service.generate_story(db, parent.id, parent.family_id, None, StoryGenerationRequest(prompt="hi"))
	assert result.status == RESULT_FAILED
	assert result.retryable is True


async def test_successful_generation_is_stored(db, parent):
	service = StoryService({"gemini": FakeProvider()}, timeout_seconds=1)
	result = await service.generate_story(db, parent.id, parent.family_id, "child-1", StoryGenerationRequest(prompt="hi"))
	assert result.status == RESULT_SUCCESS
	row = service.get_status(db, result.generation_id, parent.id)
	assert row.child_id == "child-1"
	assert row.completed_at is not None
	assert json.loads(row.safety_scores_json)["overallSafetyScore"] == 1.0
	assert service.get_status(db, result.generation_id, "someone-else") is None


async def test_provider_health_survives_exceptions():
	service = StoryService({"gemini": FakeProvider(), "other": BrokenHealthProvider()})
	health = await service.check_provider_health()
	assert health["gemini"].is_healthy is True
	assert health["other"].is_healthy is False
	assert health["other"].error_message == "probe crashed"
	assert health["other"].response_time_ms == -1


async def test_image_analyses_are_cached(db, parent, upload_dir):
	key = storage.save(parent.family_id, "img-1", "image/png", b"\x89PNG....")
	db.add(UploadedFile(
		id="img-1",
		family_id=parent.family_id,
		uploaded_by=parent.id,
		original_name="a.png",
		mime_type="image/png",
		size=8,
		storage_path=key,
	))
	db.commit()
	provider = FakeProvider()
	service = StoryService({"gemini": provider}, cache=CacheManager(client=FakeRedis()))
	first = await service.analyze_images(db, parent.family_id, ["img-1"])
	second = await service.analyze_images(db, parent.family_id, ["img-1"])
	assert first.success and second.success
	assert second.analyses["img-1"].description == first.analyses["img-1"].description
	assert provider.analyzed == [["img-1"]]


async def test_images_of_other_families_are_ignored(db, parent, upload_dir):
	key = storage.save("another-family", "img-2", "image/png", b"\x89PNG....")
	db.add(UploadedFile(
		id="img-2",
		family_id="another-family",
		uploaded_by="someone",
		original_name="b.png",
		mime_type="image/png",
		size=8,
		storage_path=key,
	))
	db.commit()
	service = StoryService({"gemini": FakeProvider()})
	result = await service.analyze_images(db, parent.family_id, ["img-2"])
	assert result.error == "No images found for analysis"


async def test_concurrent_requests_share_the_daily_quota(db, parent, monkeypatch):
	monkeypatch.setattr(settings, "ai_daily_limit", 1)
	service = StoryService({"gemini": SlowProvider()}, timeout_seconds=5)
	results = await asyncio.gather(*(
		service.generate_story(db, parent.id, parent.family_id, None, StoryGenerationRequest(prompt="hi"))
		for _ in range(3)
	))
	assert sorted(r.status for r in results) == [RESULT_QUOTA_EXCEEDED, RESULT_QUOTA_EXCEEDED, RESULT_SUCCESS]
	assert service.get_quota(db, parent.id).daily_used == 1


async def test_stale_pending_rows_do_not_hold_quota(db, parent, monkeypatch):
	monkeypatch.setattr(settings, "ai_daily_limit", 1)
	db.add(StoryGeneration(
		parent_id=parent.id,
		family_id=parent.family_id,
		prompt="abandoned",
		target_age="6-8",
		status="pending",
		created_at=datetime.utcnow() - timedelta(minutes=10),
	))
	db.commit()
	service = StoryService({"gemini": FakeProvider()}, timeout_seconds=5)
	assert service.has_quota(db, parent.id) is True
	result = await service.generate_story(db, parent.id, parent.family_id, None, StoryGenerationRequest(prompt="hi"))
	assert result.status == RESULT_SUCCESS
	assert service.has_quota(db, parent.id) is False


async def test_cancelled_generation_is_marked_failed(db, parent):
	service = StoryService({"gemini": SlowProvider()}, timeout_seconds=5)
	task = asyncio.create_task(
		service.generate_story(db, parent.id, parent.family_id, None, StoryGenerationRequest(prompt="hi"))
	)
	await asyncio.sleep(0.05)
	task.cancel()
	with pytest.raises(asyncio.CancelledError):
		await task
	row = db.query(StoryGeneration).one()
	assert row.status == "failed"
	assert row.error == "Story generation cancelled"
	assert row.completed_at is not None

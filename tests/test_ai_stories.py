import uuid
from datetime import datetime

import pytest

from wondernest.errors import (
	GenerationFailedError,
	ProviderUnavailableError,
	RateLimitExceededError,
	SafetyViolationError,
)
from wondernest.llm import ContentSafetyLevel, SafetyScores
from wondernest.models import StoryGeneration
from wondernest.settings import settings
from wondernest.story_service import next_daily_reset, next_monthly_reset

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

GENERATE = "/api/v2/ai/stories/generate"


def _generate(client, headers, **overrides):
	body = {"prompt": "A fox who learns to share", "targetAge": "6-8"}
	body.update(overrides)
	return client.post(GENERATE, json=body, headers=headers)


def test_generate_success(client, auth_headers, fake_provider, db, parent):
	r = _generate(client, auth_headers, contentSafetyLevel="moderate", educationalGoals=["sharing"])
	assert r.status_code == 200
	body = r.json()
	assert body["success"] is True
	assert body["status"] == "completed"
	assert body["content"].startswith("Once upon a time")
	assert body["safetyScores"]["overallSafetyScore"] == 1.0
	assert body["qualityMetrics"]["storyStructureScore"] == 0.9
	sent = fake_provider.requests[0]
	assert sent.content_safety_level is ContentSafetyLevel.MODERATE
	assert sent.educational_goals == ["sharing"]
	assert sent.max_tokens == 4000
	row = db.get(StoryGeneration, body["generationId"])
	assert row.status == "completed"
	assert row.story_id == body["storyId"]
	assert row.family_id == parent.family_id


def test_generate_for_child(client, auth_headers, child, db):
	r = _generate(client, auth_headers, childId=child.id)
	assert r.status_code == 200
	assert db.get(StoryGeneration, r.json()["generationId"]).child_id == child.id


def test_generate_rejects_unknown_child(client, auth_headers, fake_provider, db):
	r = _generate(client, auth_headers, childId=str(uuid.uuid4()))
	assert r.status_code == 404
	assert r.json() == {"error": "Child not found"}
	assert fake_provider.requests == []
	assert db.query(StoryGeneration).count() == 0


def test_unknown_safety_level_is_strict(client, auth_headers, fake_provider):
	_generate(client, auth_headers, contentSafetyLevel="anything-goes")
	assert fake_provider.requests[0].content_safety_level is ContentSafetyLevel.STRICT


@pytest.mark.parametrize(
	"overrides, message",
	[
		({"prompt": "   "}, "Prompt cannot be empty"),
		({"prompt": "x" * 1001}, "Prompt must be 1000 characters or less"),
		({"targetAge": "4-6"}, "Invalid target age range"),
	],
)
def test_generate_validation(client, auth_headers, fake_provider, overrides, message):
	r = _generate(client, auth_headers, **overrides)
	assert r.status_code == 400
	assert r.json() == {"error": message}
	assert fake_provider.requests == []


def test_generate_requires_auth(client):
	assert client.post(GENERATE, json={"prompt": "hi"}).status_code == 401


@pytest.mark.parametrize(
	"error, status, retryable",
	[
		(RateLimitExceededError("slow down", retry_after_seconds=60), 503, True),
		(ProviderUnavailableError("down"), 503, True),
		(GenerationFailedError("bad output"), 400, False),
	],
)
def test_generation_failures(client, auth_headers, fake_provider, db, error, status, retryable):
	fake_provider.error = error
	r = _generate(client, auth_headers)
	assert r.status_code == status
	body = r.json()
	assert body["status"] == "failed"
	assert body["retryable"] is retryable
	assert db.get(StoryGeneration, body["generationId"]).status == "failed"


def test_safety_violation(client, auth_headers, fake_provider):
	fake_provider.error = SafetyViolationError(
		"Generated content was blocked by safety filters",
		SafetyScores(overall_safety_score=0.2, age_appropriate_score=0.2, educational_score=0.8, content_flags=["X: HIGH"]),
	)
	r = _generate(client, auth_headers)
	assert r.status_code == 400
	body = r.json()
	assert body["status"] == "safety_violation"
	assert body["safetyScores"]["contentFlags"] == ["X: HIGH"]


def test_daily_quota(client, auth_headers, monkeypatch):
	monkeypatch.setattr(settings, "ai_daily_limit", 2)
	assert _generate(client, auth_headers).status_code == 200
	assert _generate(client, auth_headers).status_code == 200
	r = _generate(client, auth_headers)
	assert r.status_code == 429
	assert r.json()["status"] == "quota_exceeded"
	quota = client.get("/api/v2/ai/quotas", headers=auth_headers).json()
	assert quota["dailyUsed"] == 2
	assert quota["dailyRemaining"] == 0
	assert quota["subscriptionTier"] == "free"


def test_failed_generations_do_not_use_quota(client, auth_headers, fake_provider):
	fake_provider.error = GenerationFailedError("nope")
	_generate(client, auth_headers)
	quota = client.get("/api/v2/ai/quotas", headers=auth_headers).json()
	assert quota["dailyUsed"] == 0
	assert quota["dailyLimit"] == settings.ai_daily_limit
	assert quota["monthlyRemaining"] == settings.ai_monthly_limit


def test_status(client, auth_headers):
	generation_id = _generate(client, auth_headers).json()["generationId"]
	r = client.get(f"/api/v2/ai/stories/status/{generation_id}", headers=auth_headers)
	assert r.status_code == 200
	assert r.json()["status"] == "completed"
	assert r.json()["progress"] == 100
	assert client.get("/api/v2/ai/stories/status/not-a-uuid", headers=auth_headers).status_code == 400
	assert client.get(f"/api/v2/ai/stories/status/{uuid.uuid4()}", headers=auth_headers).status_code == 404


def test_templates(client, auth_headers):
	listed = client.get("/api/v2/ai/templates", headers=auth_headers).json()
	assert listed["total"] == 1
	assert listed["templates"][0]["name"] == "Adventure Quest"
	created = client.post(
		"/api/v2/ai/templates",
		json={"name": "Space Trip", "basePrompt": "Fly {hero} to the moon", "category": "space", "placeholders": {"hero": "Name"}},
		headers=auth_headers,
	)
	assert created.status_code == 201
	assert created.json()["message"] == "Prompt template created successfully"
	mine = client.get("/api/v2/ai/templates", params={"category": "space"}, headers=auth_headers).json()
	assert [t["name"] for t in mine["templates"]] == ["Space Trip"]
	public_only = client.get("/api/v2/ai/templates", params={"public": "true"}, headers=auth_headers).json()
	assert [t["name"] for t in public_only["templates"]] == ["Adventure Quest"]


def test_template_validation(client, auth_headers):
	r = client.post("/api/v2/ai/templates", json={"name": " ", "basePrompt": "x"}, headers=auth_headers)
	assert r.status_code == 400
	assert r.json() == {"error": "Name and base prompt are required"}


def _upload(client, headers):
	r = client.post("/api/v1/files/upload", files={"file": ("dragon.png", PNG, "image/png")}, headers=headers)
	assert r.status_code == 201
	return r.json()["id"]


def test_analyze_images(client, auth_headers, fake_provider):
	image_id = _upload(client, auth_headers)
	r = client.post("/api/v2/ai/images/analyze", json={"imageIds": [image_id]}, headers=auth_headers)
	assert r.status_code == 200
	analysis = r.json()["analyses"][0]
	assert analysis["imageId"] == image_id
	assert analysis["sceneAnalysis"]["setting"] == "meadow"
	assert fake_provider.analyzed == [[image_id]]


def test_analyze_images_errors(client, auth_headers):
	assert client.post("/api/v2/ai/images/analyze", json={"imageIds": []}, headers=auth_headers).status_code == 400
	missing = client.post("/api/v2/ai/images/analyze", json={"imageIds": [str(uuid.uuid4())]}, headers=auth_headers)
	assert missing.status_code == 400
	assert missing.json()["error"] == "No images found for analysis"


def test_generate_with_images_uses_descriptions(client, auth_headers, fake_provider):
	image_id = _upload(client, auth_headers)
	r = _generate(client, auth_headers, imageIds=[image_id])
	assert r.status_code == 200
	assert fake_provider.requests[0].image_descriptions == ["A friendly dragon in picture 1"]


def test_over_quota_generation_skips_image_analysis(client, auth_headers, fake_provider, monkeypatch):
	image_id = _upload(client, auth_headers)
	monkeypatch.setattr(settings, "ai_daily_limit", 0)
	r = _generate(client, auth_headers, imageIds=[image_id])
	assert r.status_code == 429
	assert fake_provider.analyzed == []
	assert fake_provider.requests == []


def test_providers_health(client, auth_headers):
	providers = client.get("/api/v2/ai/providers/health", headers=auth_headers).json()["providers"]
	assert providers[0]["name"] == "gemini"
	assert providers[0]["isHealthy"] is True
	assert providers[0]["availableModels"] == ["fake-model"]


def test_reset_times():
	now = datetime(2024, 12, 31, 15, 30)
	assert next_daily_reset(now) == datetime(2025, 1, 1)
	assert next_monthly_reset(now) == datetime(2025, 1, 1)
	assert next_monthly_reset(datetime(2024, 2, 10)) == datetime(2024, 3, 1)

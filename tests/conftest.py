import os

# Settings are read at import time
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REDIS_URL", None)
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("OPENROUTER_API_KEY", None)
os.environ.pop("SEED_ADMIN_EMAIL", None)

from datetime import date
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wondernest.cache import get_cache
from wondernest.db import Base, get_db
from wondernest.llm import (
	ImageAnalysis,
	ImageInput,
	LLMProvider,
	LLMResponse,
	ProviderHealth,
	QualityMetrics,
	SafetyScores,
	SceneAnalysis,
	StoryGenerationRequest,
	TokenUsage,
)
from wondernest.main import app
from wondernest.family import create_child
from wondernest.models import ParentAccount
from wondernest.security import create_parent_token_pair, create_token, access_token_lifetime, hash_password
from wondernest.settings import settings
from wondernest.story_service import StoryService, get_story_service

STORY_TEXT = "Once upon a time a little fox found a shiny key in the forest. She shared it with her friends. The End."


class FakeProvider(LLMProvider):
	name = "gemini"
	supported_models = ["fake-model"]

	def __init__(self) -> None:
		self.requests: List[StoryGenerationRequest] = []
		self.analyzed: List[List[str]] = []
		self.error: Exception | None = None
		self.healthy = True

	async def generate_story(self, request: StoryGenerationRequest) -> LLMResponse:
		self.requests.append(request)
		if self.error is not None:
			raise self.error
		return LLMResponse(
			content=STORY_TEXT,
			token_usage=TokenUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150),
			safety_scores=SafetyScores(overall_safety_score=1.0, age_appropriate_score=1.0, educational_score=0.8),
			quality_metrics=QualityMetrics(
				coherence_score=0.9,
				creativity_score=0.6,
				educational_value=0.8,
				age_appropriateness=0.9,
				story_structure_score=0.9,
				vocabulary_complexity=0.9,
			),
			processing_time_ms=12,
			cost=0.00005,
			provider=self.name,
		)

	async def analyze_images(self, images: List[ImageInput]) -> Dict[str, ImageAnalysis]:
		self.analyzed.append([i.image_id for i in images])
		if self.error is not None:
			raise self.error
		return {
			i.image_id: ImageAnalysis(
				image_id=i.image_id,
				description=f"A friendly dragon in picture {n}",
				scene_analysis=SceneAnalysis(setting="meadow", mood="happy"),
			)
			for n, i in enumerate(images, start=1)
		}

	async def health_check(self) -> ProviderHealth:
		return ProviderHealth(
			is_healthy=self.healthy,
			response_time_ms=3,
			last_checked="2024-01-01T00:00:00+00:00",
			available_models=list(self.supported_models),
		)


@pytest.fixture
def engine():
	engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
	Base.metadata.create_all(bind=engine)
	yield engine
	engine.dispose()


@pytest.fixture
def session_factory(engine):
	return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
	session = session_factory()
	try:
		yield session
	finally:
		session.close()


@pytest.fixture
def fake_provider():
	return FakeProvider()


@pytest.fixture
def story_service(fake_provider):
	return StoryService({"gemini": fake_provider}, cache=None, timeout_seconds=5)


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
	monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
	return tmp_path / "uploads"


@pytest.fixture
def client(session_factory, story_service, upload_dir):
	def override_get_db():
		session = session_factory()
		try:
			yield session
		finally:
			session.close()

	app.dependency_overrides[get_db] = override_get_db
	app.dependency_overrides[get_cache] = lambda: None
	app.dependency_overrides[get_story_service] = lambda: story_service
	# Not used as a context manager so startup hooks stay off the test database
	yield TestClient(app)
	app.dependency_overrides.clear()


@pytest.fixture
def parent(db):
	account = ParentAccount(email="parent@example.com", password_hash=hash_password("Sunshine42"), first_name="Pat")
	db.add(account)
	db.commit()
	db.refresh(account)
	return account


@pytest.fixture
def auth_headers(parent):
	tokens = create_parent_token_pair(parent.id, parent.email, parent.family_id)
	return {"Authorization": f"Bearer {tokens['accessToken']}"}


@pytest.fixture
def no_family_headers(parent):
	token = create_token(
		{"sub": parent.id, "userId": parent.id, "email": parent.email, "role": "PARENT", "type": "access"},
		access_token_lifetime(),
	)
	return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def child(db, parent):
	return create_child(db, parent.family_id, "Maya", date(2018, 5, 20), interests=["animals"])

"""Story generation orchestration: quotas, generation records and provider calls."""
from __future__ import annotations
import asyncio
import base64
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .cache import CacheManager, get_cache
from .gemini_client import GeminiClient
from .errors import (
	LLMError,
	ProviderUnavailableError,
	QuotaExceededError,
	RateLimitExceededError,
	SafetyViolationError,
)
from .llm import ImageAnalysis, ImageInput, LLMProvider, ProviderHealth, QualityMetrics, SafetyScores, StoryGenerationRequest
from .models import StoryGeneration, UploadedFile
from .settings import settings
from . import storage

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_QUOTA_EXCEEDED = "quota_exceeded"

RESULT_SUCCESS = "success"
RESULT_FAILED = "failed"
RESULT_SAFETY_VIOLATION = "safety_violation"
RESULT_QUOTA_EXCEEDED = "quota_exceeded"


@dataclass
class StoryGenerationResult:
	status: str
	generation_id: str
	story_id: Optional[str] = None
	content: Optional[str] = None
	safety_scores: Optional[SafetyScores] = None
	quality_metrics: Optional[QualityMetrics] = None
	cost: Optional[float] = None
	processing_time_ms: Optional[int] = None
	error: Optional[str] = None
	retryable: bool = False


@dataclass
class UserQuota:
	daily_limit: int
	daily_used: int
	monthly_limit: int
	monthly_used: int
	next_reset_daily: datetime
	next_reset_monthly: datetime
	subscription_tier: str = "free"
	bonus_credits: int = 0

	@property
	def daily_remaining(self) -> int:
		return max(self.daily_limit - self.daily_used, 0)

	@property
	def monthly_remaining(self) -> int:
		return max(self.monthly_limit - self.monthly_used, 0)


@dataclass
class ImageAnalysisResult:
	analyses: Dict[str, ImageAnalysis] = field(default_factory=dict)
	processing_time_ms: int = 0
	error: Optional[str] = None

	@property
	def success(self) -> bool:
		return self.error is None


def _utcnow() -> datetime:
	return datetime.utcnow()


def _day_start(now: datetime) -> datetime:
	return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _month_start(now: datetime) -> datetime:
	return _day_start(now).replace(day=1)


def next_daily_reset(now: datetime) -> datetime:
	return _day_start(now) + timedelta(days=1)


def next_monthly_reset(now: datetime) -> datetime:
	start = _month_start(now)
	if start.month == 12:
		return start.replace(year=start.year + 1, month=1)
	return start.replace(month=start.month + 1)


class StoryService:
	def __init__(
		self,
		providers: Dict[str, LLMProvider],
		*,
		default_provider: str = "gemini",
		cache: Optional[CacheManager] = None,
		timeout_seconds: Optional[float] = None,
	) -> None:
		self.providers = providers
		self.default_provider = default_provider
		self.cache = cache
		self.timeout_seconds = timeout_seconds or settings.ai_generation_timeout_seconds
		logger.info(f"StoryService initialized with providers: {', '.join(providers) or 'none'}")

	def _provider(self) -> LLMProvider:
		provider = self.providers.get(self.default_provider)
		if provider is None:
			raise ProviderUnavailableError(f"Provider {self.default_provider} not available")
		return provider

	def get_quota(self, db: Session, parent_id: str, now: Optional[datetime] = None) -> UserQuota:
		now = now or _utcnow()

		def completed_since(start: datetime) -> int:
			return db.query(func.count(StoryGeneration.id)).filter(
				StoryGeneration.parent_id == parent_id,
				StoryGeneration.status == STATUS_COMPLETED,
				StoryGeneration.created_at >= start,
			).scalar() or 0

		return UserQuota(
			daily_limit=settings.ai_daily_limit,
			daily_used=completed_since(_day_start(now)),
			monthly_limit=settings.ai_monthly_limit,
			monthly_used=completed_since(_month_start(now)),
			next_reset_daily=next_daily_reset(now),
			next_reset_monthly=next_monthly_reset(now),
		)

	def _check_quota(self, db: Session, parent_id: str) -> None:
		now = _utcnow()
		quota = self.get_quota(db, parent_id, now)
		# Pending rows younger than the timeout are still running and hold a slot
		in_flight = db.query(func.count(StoryGeneration.id)).filter(
			StoryGeneration.parent_id == parent_id,
			StoryGeneration.status == STATUS_PENDING,
			StoryGeneration.created_at >= now - timedelta(seconds=self.timeout_seconds),
		).scalar() or 0
		if quota.daily_used + in_flight >= quota.daily_limit:
			raise QuotaExceededError(f"Daily generation limit exceeded ({quota.daily_limit})")
		if quota.monthly_used + in_flight >= quota.monthly_limit:
			raise QuotaExceededError(f"Monthly generation limit exceeded ({quota.monthly_limit})")

	def has_quota(self, db: Session, parent_id: str) -> bool:
		try:
			self._check_quota(db, parent_id)
		except QuotaExceededError:
			return False
		return True

	async def generate_story(
		self,
		db: Session,
		parent_id: str,
		family_id: str,
		child_id: Optional[str],
		request: StoryGenerationRequest,
	) -> StoryGenerationResult:
		logger.info(f"Generating story for parent {parent_id}, child {child_id}")
		row = StoryGeneration(
			parent_id=parent_id,
			family_id=family_id,
			child_id=child_id,
			prompt=request.prompt,
			target_age=request.target_age,
			status=STATUS_PENDING,
		)
		try:
			self._check_quota(db, parent_id)
		except QuotaExceededError as e:
			row.status = STATUS_QUOTA_EXCEEDED
			row.error = str(e)
			row.completed_at = _utcnow()
			db.add(row)
			db.commit()
			logger.info(f"Quota exceeded for parent {parent_id}: {e}")
			return StoryGenerationResult(status=RESULT_QUOTA_EXCEEDED, generation_id=row.id, error=str(e))

		db.add(row)
		db.commit()
		db.refresh(row)
		generation_id = row.id

		try:
			provider = self._provider()
			row.provider = provider.name
			logger.info(f"Using provider: {provider.name} for generation {generation_id}")
			response = await asyncio.wait_for(provider.generate_story(request), timeout=self.timeout_seconds)
		except asyncio.CancelledError:
			logger.warning(f"Story generation {generation_id} cancelled")
			self._finish(db, row, STATUS_FAILED, error="Story generation cancelled")
			raise
		except SafetyViolationError as e:
			logger.warning(f"Story generation {generation_id} blocked: {e}")
			self._finish(db, row, STATUS_FAILED, error=str(e), safety_scores=e.safety_scores)
			return StoryGenerationResult(
				status=RESULT_SAFETY_VIOLATION,
				generation_id=generation_id,
				safety_scores=e.safety_scores,
				error=str(e) or "Safety violation occurred",
			)
		except QuotaExceededError as e:
			self._finish(db, row, STATUS_FAILED, error=str(e))
			return StoryGenerationResult(status=RESULT_QUOTA_EXCEEDED, generation_id=generation_id, error=str(e))
		except asyncio.TimeoutError:
			message = f"Story generation timed out after {self.timeout_seconds:g} seconds"
			logger.error(f"Story generation {generation_id} timed out")
			self._finish(db, row, STATUS_FAILED, error=message)
			return StoryGenerationResult(status=RESULT_FAILED, generation_id=generation_id, error=message, retryable=True)
		except LLMError as e:
			logger.error(f"Story generation failed for {generation_id}: {e}")
			self._finish(db, row, STATUS_FAILED, error=str(e))
			return StoryGenerationResult(
				status=RESULT_FAILED,
				generation_id=generation_id,
				error=str(e) or "Unknown error",
				retryable=isinstance(e, (RateLimitExceededError, ProviderUnavailableError)),
			)
		except Exception as e:
			logger.exception(f"Unexpected error during story generation {generation_id}")
			self._finish(db, row, STATUS_FAILED, error=str(e))
			return StoryGenerationResult(status=RESULT_FAILED, generation_id=generation_id, error="Internal error occurred")

		story_id = str(uuid.uuid4())
		row.story_id = story_id
		row.content = response.content
		row.provider = response.provider or row.provider
		row.quality_metrics_json = response.quality_metrics.model_dump_json(by_alias=True)
		row.cost = response.cost
		row.processing_time_ms = response.processing_time_ms
		self._finish(db, row, STATUS_COMPLETED, safety_scores=response.safety_scores)
		logger.info(f"Story generation {generation_id} completed ({response.processing_time_ms} ms, ${response.cost:.6f})")
		return StoryGenerationResult(
			status=RESULT_SUCCESS,
			generation_id=generation_id,
			story_id=story_id,
			content=response.content,
			safety_scores=response.safety_scores,
			quality_metrics=response.quality_metrics,
			cost=response.cost,
			processing_time_ms=response.processing_time_ms,
		)

	def _finish(
		self,
		db: Session,
		row: StoryGeneration,
		status: str,
		*,
		error: Optional[str] = None,
		safety_scores: Optional[SafetyScores] = None,
	) -> None:
		row.status = status
		row.error = error
		if safety_scores is not None:
			row.safety_scores_json = safety_scores.model_dump_json(by_alias=True)
		row.completed_at = _utcnow()
		db.add(row)
		db.commit()

	def get_status(self, db: Session, generation_id: str, parent_id: str) -> Optional[StoryGeneration]:
		return db.query(StoryGeneration).filter(
			StoryGeneration.id == generation_id,
			StoryGeneration.parent_id == parent_id,
		).first()

	async def analyze_images(self, db: Session, family_id: str, image_ids: List[str]) -> ImageAnalysisResult:
		logger.info(f"Analyzing {len(image_ids)} images for story context")
		started = _utcnow()
		rows = db.query(UploadedFile).filter(
			UploadedFile.id.in_(image_ids),
			UploadedFile.family_id == family_id,
			UploadedFile.is_deleted.is_(False),
		).all()
		if not rows:
			return ImageAnalysisResult(error="No images found for analysis")

		analyses: Dict[str, ImageAnalysis] = {}
		uncached: List[UploadedFile] = []
		for row in rows:
			cached = self.cache.get_json(f"image_analysis:{row.id}") if self.cache else None
			if cached is not None:
				analyses[row.id] = ImageAnalysis.model_validate(cached)
			else:
				uncached.append(row)

		if uncached:
			try:
				inputs = [
					ImageInput(
						image_id=row.id,
						mime_type=row.mime_type,
						data_base64=base64.b64encode(storage.read_bytes(row.storage_path)).decode("ascii"),
					)
					for row in uncached
				]
				fresh = await self._provider().analyze_images(inputs)
			except (LLMError, OSError) as e:
				logger.error(f"Image analysis failed: {e}")
				return ImageAnalysisResult(error=f"Image analysis failed: {e}")
			for image_id, analysis in fresh.items():
				analyses[image_id] = analysis
				if self.cache:
					self.cache.set_json(f"image_analysis:{image_id}", analysis.model_dump(by_alias=True))

		elapsed = int((_utcnow() - started).total_seconds() * 1000)
		# Keep the caller's ordering
		ordered = {image_id: analyses[image_id] for image_id in image_ids if image_id in analyses}
		return ImageAnalysisResult(analyses=ordered, processing_time_ms=elapsed)

	async def check_provider_health(self) -> Dict[str, ProviderHealth]:
		async def probe(provider: LLMProvider) -> ProviderHealth:
			try:
				return await provider.health_check()
			except Exception as e:
				return ProviderHealth(
					is_healthy=False,
					response_time_ms=-1,
					last_checked=datetime.now(timezone.utc).isoformat(),
					error_message=str(e) or type(e).__name__,
				)

		names = list(self.providers)
		results = await asyncio.gather(*(probe(self.providers[name]) for name in names))
		return dict(zip(names, results))

	async def aclose(self) -> None:
		for provider in self.providers.values():
			await provider.aclose()


def generation_progress(status: str) -> int:
	if status == STATUS_PENDING:
		return 50
	return 100


_service: Optional[StoryService] = None


def build_story_service() -> StoryService:
	providers: Dict[str, LLMProvider] = {}
	if settings.gemini_api_key:
		providers["gemini"] = GeminiClient()
	else:
		logger.warning("GEMINI_API_KEY is not set; AI story generation is unavailable")
	return StoryService(providers, cache=get_cache())


def get_story_service() -> StoryService:
	global _service
	if _service is None:
		_service = build_story_service()
	return _service


async def close_story_service() -> None:
	global _service
	if _service is not None:
		await _service.aclose()
		_service = None

"""Provider-neutral types for AI story generation."""
from __future__ import annotations
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .schemas import CamelModel


TARGET_AGES = ("3-5", "6-8", "9-12", "13+")


class ContentSafetyLevel(str, Enum):
	STRICT = "strict"
	MODERATE = "moderate"
	PERMISSIVE = "permissive"

	@classmethod
	def parse(cls, value: Optional[str]) -> "ContentSafetyLevel":
		# Unknown levels fall back to the most conservative setting
		try:
			return cls((value or "").strip().lower())
		except ValueError:
			return cls.STRICT


class StoryGenerationRequest(BaseModel):
	prompt: str
	image_descriptions: List[str] = Field(default_factory=list)
	target_age: str = "6-8"
	theme: Optional[str] = None
	educational_goals: List[str] = Field(default_factory=list)
	content_safety_level: ContentSafetyLevel = ContentSafetyLevel.STRICT
	max_tokens: int = 4000
	temperature: float = 0.7


class TokenUsage(CamelModel):
	prompt_tokens: int = 0
	completion_tokens: int = 0
	total_tokens: int = 0


class SafetyScores(CamelModel):
	overall_safety_score: float  # 0.0 to 1.0, higher is safer
	age_appropriate_score: float
	educational_score: float
	violence_score: float = 0.0
	scary_content_score: float = 0.0
	profanity_score: float = 0.0
	content_flags: List[str] = Field(default_factory=list)


class QualityMetrics(CamelModel):
	coherence_score: float
	creativity_score: float
	educational_value: float
	age_appropriateness: float
	story_structure_score: float
	vocabulary_complexity: float


class LLMResponse(BaseModel):
	content: str
	token_usage: TokenUsage
	safety_scores: SafetyScores
	quality_metrics: QualityMetrics
	processing_time_ms: int = 0
	cost: float = 0.0
	provider: str = ""


class DetectedObject(CamelModel):
	name: str
	confidence: float


class SceneAnalysis(CamelModel):
	setting: str = "unknown"
	mood: str = "neutral"
	time_of_day: Optional[str] = None
	location: Optional[str] = None


class CharacterAnalysis(CamelModel):
	description: str
	estimated_age: Optional[str] = None
	emotions: List[str] = Field(default_factory=list)


class ImageAnalysis(CamelModel):
	image_id: str
	description: str
	detected_objects: List[DetectedObject] = Field(default_factory=list)
	scene_analysis: SceneAnalysis = Field(default_factory=SceneAnalysis)
	characters: List[CharacterAnalysis] = Field(default_factory=list)


class ImageInput(BaseModel):
	image_id: str
	mime_type: str
	data_base64: str


class ProviderHealth(BaseModel):
	is_healthy: bool
	response_time_ms: int
	last_checked: str
	error_message: Optional[str] = None
	available_models: List[str] = Field(default_factory=list)


class LLMProvider(ABC):
	name: str
	supported_models: List[str]

	@abstractmethod
	async def generate_story(self, request: StoryGenerationRequest) -> LLMResponse:
		"""Return generated content or raise an LLMError subclass."""

	@abstractmethod
	async def analyze_images(self, images: List[ImageInput]) -> Dict[str, ImageAnalysis]:
		"""Map each input image id to its analysis."""

	@abstractmethod
	async def health_check(self) -> ProviderHealth:
		...

	async def aclose(self) -> None:
		return None

from __future__ import annotations
import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .errors import (
	GenerationFailedError,
	InvalidRequestError,
	LLMError,
	ProviderUnavailableError,
	RateLimitExceededError,
	SafetyViolationError,
)
from .llm import (
	CharacterAnalysis,
	ContentSafetyLevel,
	DetectedObject,
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
from .settings import settings

logger = logging.getLogger(__name__)

# Gemini Flash pricing per 1k tokens
PROMPT_COST_PER_1K = 0.00015
COMPLETION_COST_PER_1K = 0.0006

PROBABILITY_SCORES = {"NEGLIGIBLE": 1.0, "LOW": 0.8, "MEDIUM": 0.5, "HIGH": 0.2}
FLAG_THRESHOLD = 0.7
INAPPROPRIATE_WORDS = ("scary", "frightening", "violent", "death", "kill")

SAFETY_THRESHOLDS = {
	ContentSafetyLevel.STRICT: "BLOCK_MEDIUM_AND_ABOVE",
	ContentSafetyLevel.MODERATE: "BLOCK_ONLY_HIGH",
	ContentSafetyLevel.PERMISSIVE: "BLOCK_NONE",
}


def build_story_prompt(request: StoryGenerationRequest) -> str:
	goals = ", ".join(request.educational_goals) or "creativity and imagination"
	lines = [
		"You are a creative children's story writer specializing in age-appropriate, educational, and engaging stories.",
		"",
		"Create a complete children's story with the following requirements:",
		f"- Target age: {request.target_age}",
		f"- Theme: {request.theme or 'adventure and learning'}",
		f"- Educational goals: {goals}",
		f"- Content safety: {request.content_safety_level.value} level",
	]
	if request.image_descriptions:
		lines.append(f"Include these characters/elements from the provided images: {', '.join(request.image_descriptions)}")
	lines += [
		"",
		"Story requirements:",
		f"1. Age-appropriate vocabulary and themes for {request.target_age} year olds",
		"2. Clear story structure with beginning, middle, and end",
		"3. Positive moral lesson or educational value",
		"4. Engaging characters children can relate to",
		"5. Safe content with no violence, scary elements, or inappropriate themes",
		"6. Length appropriate for attention span of target age",
		"",
		f"User prompt: {request.prompt}",
		"",
		"Please write a complete story following these guidelines. Format as a structured story with title, and clear paragraphs.",
	]
	return "\n".join(lines)


IMAGE_ANALYSIS_PROMPT = (
	"Analyze the provided images for children's story creation. For each image, in order, provide a detailed "
	"description, notable objects, the setting, the mood and any characters.\n"
	"Return ONLY a JSON object of the form:\n"
	'{"images": [{"description": "...", "objects": [{"name": "...", "confidence": 0.9}], '
	'"setting": "...", "mood": "...", "timeOfDay": null, "location": null, '
	'"characters": [{"description": "...", "estimatedAge": null, "emotions": []}]}]}'
)


def build_safety_settings(level: ContentSafetyLevel) -> List[Dict[str, str]]:
	threshold = SAFETY_THRESHOLDS[level]
	return [
		{"category": "HARM_CATEGORY_HARASSMENT", "threshold": threshold},
		{"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": threshold},
		# Always strict for children
		{"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
		{"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": threshold},
	]


def analyze_safety_ratings(ratings: Optional[List[Dict[str, Any]]]) -> SafetyScores:
	if ratings is None:
		return SafetyScores(overall_safety_score=1.0, age_appropriate_score=1.0, educational_score=0.8)
	flags: List[str] = []
	lowest = 1.0
	for rating in ratings:
		probability = rating.get("probability", "")
		score = PROBABILITY_SCORES.get(probability, 0.7)
		lowest = min(lowest, score)
		if score < FLAG_THRESHOLD:
			flags.append(f"{rating.get('category', 'UNKNOWN')}: {probability}")
	return SafetyScores(
		overall_safety_score=lowest,
		age_appropriate_score=lowest,
		educational_score=0.8,
		content_flags=flags,
	)


def _vocabulary_complexity(words: List[str], target_age: str) -> float:
	if not words:
		return 0.0
	avg = sum(len(w) for w in words) / len(words)
	if target_age == "3-5":
		return 0.9 if avg < 5.0 else 0.6
	if target_age == "6-8":
		return 0.9 if 4.0 <= avg <= 6.0 else 0.7
	if target_age == "9-12":
		return 0.9 if 5.0 <= avg <= 8.0 else 0.7
	return 0.8


def assess_story_quality(text: str, target_age: str) -> QualityMetrics:
	words = text.split()
	sentences = [s for s in re.split(r"[.!?]", text) if s.strip()]
	words_per_sentence = len(words) / len(sentences) if sentences else 0.0
	lowered = text.lower()
	return QualityMetrics(
		coherence_score=0.9 if 8.0 <= words_per_sentence <= 15.0 else 0.7,
		creativity_score=0.8 if len(words) > 200 else 0.6,
		educational_value=0.8,
		age_appropriateness=0.5 if any(w in lowered for w in INAPPROPRIATE_WORDS) else 0.9,
		story_structure_score=0.9 if ("Once upon" in text or "The End" in text) else 0.7,
		vocabulary_complexity=_vocabulary_complexity(words, target_age),
	)


def calculate_cost(usage: TokenUsage) -> float:
	return (usage.prompt_tokens / 1000.0) * PROMPT_COST_PER_1K + (usage.completion_tokens / 1000.0) * COMPLETION_COST_PER_1K


def extract_json_object(text: str) -> Optional[Any]:
	try:
		return json.loads(text)
	except ValueError:
		pass
	code_block = re.search(r"```json\s*([\s\S]*?)\s*```", text)
	if code_block:
		try:
			return json.loads(code_block.group(1))
		except ValueError:
			pass
	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last > first:
		try:
			return json.loads(text[first:last + 1])
		except ValueError:
			pass
	return None


def _now_iso() -> str:
	return datetime.now(timezone.utc).isoformat()


class GeminiClient(LLMProvider):
	name = "gemini"
	supported_models = ["gemini-1.5-flash", "gemini-1.5-pro", "gemini-1.0-pro"]

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
		self._client = httpx.AsyncClient(timeout=30, transport=transport)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._fallback_enabled = bool(settings.openrouter_api_key)
		self._openrouter_api_key = settings.openrouter_api_key
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		if self._fallback_enabled:
			self._fallback_client = httpx.AsyncClient(timeout=30, transport=transport)

	def _generate_url(self) -> str:
		return f"{self.base_url}/models/{self.model}:generateContent"

	def _headers(self) -> Dict[str, str]:
		return {"x-goog-api-key": self.api_key}

	async def generate_story(self, request: StoryGenerationRequest) -> LLMResponse:
		logger.info(f"Generating story with Gemini for age {request.target_age}")
		prompt = build_story_prompt(request)
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": prompt}]}],
			"generationConfig": {
				"temperature": request.temperature,
				"maxOutputTokens": request.max_tokens,
				"topP": 0.9,
				"topK": 40,
			},
			"safetySettings": build_safety_settings(request.content_safety_level),
		}
		started = time.monotonic()
		try:
			data = await self._post_payload(payload)
			response = self._process_story_response(data, request)
		except LLMError as err:
			if not err.retryable or not self._fallback_enabled:
				raise
			logger.warning(f"Gemini failed ({err}); falling back to OpenRouter")
			response = await self._fallback_generate(prompt, request, err)
		response.processing_time_ms = int((time.monotonic() - started) * 1000)
		return response

	async def _post_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
		try:
			r = await self._client.post(self._generate_url(), headers=self._headers(), json=payload)
		except httpx.RequestError as net_err:
			logger.error(f"Unexpected error calling Gemini API: {net_err}")
			raise ProviderUnavailableError("Gemini provider unavailable") from net_err
		if r.status_code == 429:
			raise RateLimitExceededError("Gemini rate limit exceeded", retry_after_seconds=60)
		if r.status_code == 400:
			raise InvalidRequestError(f"Invalid request to Gemini: {r.text}")
		if r.status_code != 200:
			raise GenerationFailedError(f"Gemini request failed: {r.status_code} - {r.text}")
		try:
			return r.json()
		except ValueError as err:
			raise GenerationFailedError(f"Unexpected Gemini response: {r.text}") from err

	def _process_story_response(self, data: Dict[str, Any], request: StoryGenerationRequest) -> LLMResponse:
		feedback = data.get("promptFeedback") or {}
		if feedback.get("blockReason"):
			scores = analyze_safety_ratings(feedback.get("safetyRatings") or [])
			raise SafetyViolationError(f"Prompt blocked by safety filters ({feedback['blockReason']})", scores)
		candidates = data.get("candidates") or []
		if not candidates:
			raise GenerationFailedError("No candidates returned by Gemini")
		candidate = candidates[0]
		safety_scores = analyze_safety_ratings(candidate.get("safetyRatings"))
		if candidate.get("finishReason") == "SAFETY":
			raise SafetyViolationError("Generated content was blocked by safety filters", safety_scores)
		parts = (candidate.get("content") or {}).get("parts") or []
		text = parts[0].get("text") if parts else None
		if not text:
			raise GenerationFailedError("No text content generated")
		meta = data.get("usageMetadata") or {}
		usage = TokenUsage(
			prompt_tokens=meta.get("promptTokenCount", 0),
			completion_tokens=meta.get("candidatesTokenCount", 0),
			total_tokens=meta.get("totalTokenCount", 0),
		)
		return LLMResponse(
			content=text,
			token_usage=usage,
			safety_scores=safety_scores,
			quality_metrics=assess_story_quality(text, request.target_age),
			cost=calculate_cost(usage),
			provider=self.name,
		)

	async def analyze_images(self, images: List[ImageInput]) -> Dict[str, ImageAnalysis]:
		logger.info(f"Analyzing {len(images)} images with Gemini Vision")
		parts: List[Dict[str, Any]] = [{"text": IMAGE_ANALYSIS_PROMPT}]
		for image in images:
			parts.append({"inlineData": {"mimeType": image.mime_type, "data": image.data_base64}})
		payload: Dict[str, Any] = {
			"contents": [{"role": "user", "parts": parts}],
			"generationConfig": {"temperature": 0.3, "maxOutputTokens": 2000},
			"safetySettings": build_safety_settings(ContentSafetyLevel.STRICT),
		}
		data = await self._post_payload(payload)
		candidates = data.get("candidates") or []
		if not candidates:
			raise GenerationFailedError("No candidates returned for image analysis")
		parts_out = (candidates[0].get("content") or {}).get("parts") or []
		text = parts_out[0].get("text") if parts_out else None
		if not text:
			raise GenerationFailedError("No analysis content generated")
		parsed = extract_json_object(text)
		entries = _as_list(parsed.get("images")) if isinstance(parsed, dict) else []
		results: Dict[str, ImageAnalysis] = {}
		for index, image in enumerate(images):
			entry = entries[index] if index < len(entries) and isinstance(entries[index], dict) else {}
			results[image.image_id] = _image_analysis_from_entry(image.image_id, entry)
		return results

	async def health_check(self) -> ProviderHealth:
		started = time.monotonic()
		try:
			r = await self._client.get(f"{self.base_url}/models", headers=self._headers())
		except httpx.RequestError as e:
			logger.error(f"Gemini health check failed: {e}")
			return ProviderHealth(is_healthy=False, response_time_ms=-1, last_checked=_now_iso(), error_message=str(e) or "Unknown error")
		elapsed = int((time.monotonic() - started) * 1000)
		if r.status_code == 200:
			return ProviderHealth(is_healthy=True, response_time_ms=elapsed, last_checked=_now_iso(), available_models=list(self.supported_models))
		return ProviderHealth(is_healthy=False, response_time_ms=elapsed, last_checked=_now_iso(), error_message=f"HTTP {r.status_code}")

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(self, prompt: str, request: StoryGenerationRequest, primary_error: LLMError) -> LLMResponse:
		if not self._fallback_client or not self._openrouter_api_key:
			raise primary_error
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": [{"role": "user", "content": prompt}],
			"max_tokens": request.max_tokens,
			"temperature": request.temperature,
		}
		try:
			r = await self._fallback_client.post(self._openrouter_base_url, headers=headers, json=payload)
			r.raise_for_status()
			data = r.json()
			text = data["choices"][0]["message"]["content"]
		except (httpx.HTTPError, KeyError, IndexError, ValueError) as fallback_err:
			raise ProviderUnavailableError(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err
		usage_raw = data.get("usage") or {}
		usage = TokenUsage(
			prompt_tokens=usage_raw.get("prompt_tokens", 0),
			completion_tokens=usage_raw.get("completion_tokens", 0),
			total_tokens=usage_raw.get("total_tokens", 0),
		)
		return LLMResponse(
			content=text,
			token_usage=usage,
			safety_scores=analyze_safety_ratings(None),
			quality_metrics=assess_story_quality(text, request.target_age),
			cost=calculate_cost(usage),
			provider="openrouter",
		)


def _as_list(value: Any) -> List[Any]:
	return value if isinstance(value, list) else []


def _optional_str(value: Any) -> Optional[str]:
	if value is None or isinstance(value, (dict, list)):
		return None
	return str(value)


def _confidence(value: Any) -> Optional[float]:
	if value is None:
		return 0.5
	if isinstance(value, bool):
		return None
	try:
		return min(max(float(value), 0.0), 1.0)
	except (TypeError, ValueError):
		return None


def _image_analysis_from_entry(image_id: str, entry: Dict[str, Any]) -> ImageAnalysis:
	# Model output is untrusted; fields of the wrong type are dropped
	objects = []
	for obj in _as_list(entry.get("objects")):
		if isinstance(obj, dict) and obj.get("name"):
			confidence = _confidence(obj.get("confidence"))
			if confidence is not None:
				objects.append(DetectedObject(name=str(obj["name"]), confidence=confidence))
		elif isinstance(obj, str):
			objects.append(DetectedObject(name=obj, confidence=0.5))
	characters = []
	for char in _as_list(entry.get("characters")):
		if isinstance(char, dict) and char.get("description"):
			characters.append(CharacterAnalysis(
				description=str(char["description"]),
				estimated_age=_optional_str(char.get("estimatedAge")),
				emotions=[str(e) for e in _as_list(char.get("emotions"))],
			))
		elif isinstance(char, str):
			characters.append(CharacterAnalysis(description=char))
	return ImageAnalysis(
		image_id=image_id,
		description=_optional_str(entry.get("description")) or "Image analysis from Gemini",
		detected_objects=objects,
		scene_analysis=SceneAnalysis(
			setting=_optional_str(entry.get("setting")) or "unknown",
			mood=_optional_str(entry.get("mood")) or "neutral",
			time_of_day=_optional_str(entry.get("timeOfDay")),
			location=_optional_str(entry.get("location")),
		),
		characters=characters,
	)

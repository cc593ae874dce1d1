from datetime import timedelta
from typing import Any, Dict, List, Optional
import json
import logging
import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..db import get_db
from ..family import find_child
from ..llm import TARGET_AGES, ContentSafetyLevel, ImageAnalysis, StoryGenerationRequest
from ..models import PromptTemplate
from ..schemas import CamelModel
from ..story_service import (
	RESULT_QUOTA_EXCEEDED,
	RESULT_SAFETY_VIOLATION,
	RESULT_SUCCESS,
	STATUS_PENDING,
	StoryService,
	generation_progress,
	get_story_service,
)
from ..validation import is_valid_uuid
from .auth import FamilyContext, get_family_context

router = APIRouter(prefix="/api/v2/ai", tags=["ai"])
logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 1000

BUILTIN_TEMPLATE_ID = str(uuid.uuid5(uuid.NAMESPACE_URL, "wondernest/templates/adventure-quest"))


class AIStoryGenerationRequest(CamelModel):
	prompt: str
	image_ids: List[str] = []
	child_id: Optional[str] = None
	target_age: str = "6-8"
	theme: Optional[str] = None
	educational_goals: List[str] = []
	content_safety_level: str = "strict"
	max_tokens: Optional[int] = None
	temperature: Optional[float] = None


class AIPromptTemplate(CamelModel):
	id: str
	name: str
	description: str
	category: str
	base_prompt: str
	placeholders: Dict[str, str]
	recommended_age: str
	required_images: int
	price: int
	is_public: bool
	creator_name: str
	rating: float
	usage_count: int


class CreatePromptTemplateRequest(CamelModel):
	name: str
	description: str = ""
	category: str = "general"
	base_prompt: str
	placeholders: Dict[str, str] = {}
	recommended_age: str = "6-8"
	required_images: int = 0
	is_public: bool = False
	price: int = 0


class ImageAnalysisRequest(CamelModel):
	image_ids: List[str]


BUILTIN_TEMPLATES = [
	AIPromptTemplate(
		id=BUILTIN_TEMPLATE_ID,
		name="Adventure Quest",
		description="Create exciting adventure stories",
		category="adventure",
		base_prompt="Create an adventure story about {character} who discovers {item}...",
		placeholders={"character": "Main character name", "item": "Special object they find"},
		recommended_age="6-8",
		required_images=2,
		price=0,
		is_public=True,
		creator_name="WonderNest",
		rating=4.8,
		usage_count=1250,
	),
]


def _error(status_code: int, message: str) -> JSONResponse:
	return JSONResponse(status_code=status_code, content={"error": message})


def _dump(model: Optional[CamelModel]) -> Optional[Dict[str, Any]]:
	return model.model_dump(by_alias=True) if model is not None else None


def _template_from_row(row: PromptTemplate) -> AIPromptTemplate:
	return AIPromptTemplate(
		id=row.id,
		name=row.name,
		description=row.description or "",
		category=row.category,
		base_prompt=row.base_prompt,
		placeholders=json.loads(row.placeholders_json or "{}"),
		recommended_age=row.recommended_age,
		required_images=row.required_images,
		price=row.price,
		is_public=row.is_public,
		creator_name=row.creator_name or "",
		rating=row.rating,
		usage_count=row.usage_count,
	)


def _analysis_payload(analysis: ImageAnalysis) -> Dict[str, Any]:
	return analysis.model_dump(by_alias=True)


@router.post("/stories/generate")
async def generate_story(
	req: AIStoryGenerationRequest,
	ctx: FamilyContext = Depends(get_family_context),
	db: Session = Depends(get_db),
	service: StoryService = Depends(get_story_service),
):
	logger.info(f"AI story generation request from user: {ctx.user_id}")
	if not req.prompt.strip():
		return _error(400, "Prompt cannot be empty")
	if len(req.prompt) > MAX_PROMPT_LENGTH:
		return _error(400, f"Prompt must be {MAX_PROMPT_LENGTH} characters or less")
	if req.target_age not in TARGET_AGES:
		return _error(400, "Invalid target age range")
	child_id = None
	if req.child_id:
		child = find_child(db, ctx.family_id, req.child_id)
		if child is None:
			return _error(404, "Child not found")
		child_id = child.id

	story_request = StoryGenerationRequest(
		prompt=req.prompt,
		target_age=req.target_age,
		theme=req.theme,
		educational_goals=req.educational_goals,
		content_safety_level=ContentSafetyLevel.parse(req.content_safety_level),
		max_tokens=req.max_tokens or 4000,
		temperature=req.temperature if req.temperature is not None else 0.7,
	)

	# Over-quota requests go straight to generate_story, which records the rejection
	if req.image_ids and service.has_quota(db, ctx.user_id):
		analysis = await service.analyze_images(db, ctx.family_id, req.image_ids)
		if not analysis.success:
			return _error(400, analysis.error)
		story_request.image_descriptions = [a.description for a in analysis.analyses.values()]

	result = await service.generate_story(db, ctx.user_id, ctx.family_id, child_id, story_request)

	if result.status == RESULT_SUCCESS:
		return {
			"success": True,
			"generationId": result.generation_id,
			"storyId": result.story_id,
			"content": result.content,
			"safetyScores": _dump(result.safety_scores),
			"qualityMetrics": _dump(result.quality_metrics),
			"cost": result.cost,
			"processingTimeMs": result.processing_time_ms,
			"status": "completed",
		}
	if result.status == RESULT_SAFETY_VIOLATION:
		return JSONResponse(status_code=400, content={
			"success": False,
			"generationId": result.generation_id,
			"error": result.error,
			"safetyScores": _dump(result.safety_scores),
			"status": "safety_violation",
		})
	if result.status == RESULT_QUOTA_EXCEEDED:
		return JSONResponse(status_code=429, content={
			"success": False,
			"generationId": result.generation_id,
			"error": result.error,
			"status": "quota_exceeded",
		})
	return JSONResponse(status_code=503 if result.retryable else 400, content={
		"success": False,
		"generationId": result.generation_id,
		"error": result.error,
		"retryable": result.retryable,
		"status": "failed",
	})


@router.get("/stories/status/{generation_id}")
async def generation_status(
	generation_id: str,
	ctx: FamilyContext = Depends(get_family_context),
	db: Session = Depends(get_db),
	service: StoryService = Depends(get_story_service),
):
	if not is_valid_uuid(generation_id):
		return _error(400, "Invalid generation ID")
	row = service.get_status(db, generation_id.strip(), ctx.user_id)
	if row is None:
		return _error(404, "Generation not found")
	estimated = None
	if row.status == STATUS_PENDING:
		estimated = (row.created_at + timedelta(seconds=service.timeout_seconds)).isoformat() + "Z"
	return {
		"generationId": row.id,
		"status": row.status,
		"progress": generation_progress(row.status),
		"estimatedCompletionTime": estimated,
		"error": row.error,
	}


@router.get("/quotas")
async def quotas(
	ctx: FamilyContext = Depends(get_family_context),
	db: Session = Depends(get_db),
	service: StoryService = Depends(get_story_service),
):
	quota = service.get_quota(db, ctx.user_id)
	return {
		"dailyLimit": quota.daily_limit,
		"dailyUsed": quota.daily_used,
		"dailyRemaining": quota.daily_remaining,
		"monthlyLimit": quota.monthly_limit,
		"monthlyUsed": quota.monthly_used,
		"monthlyRemaining": quota.monthly_remaining,
		"subscriptionTier": quota.subscription_tier,
		"bonusCredits": quota.bonus_credits,
		"nextResetDaily": quota.next_reset_daily.isoformat() + "Z",
		"nextResetMonthly": quota.next_reset_monthly.isoformat() + "Z",
	}


@router.get("/templates")
async def list_templates(
	category: Optional[str] = None,
	public: Optional[str] = None,
	ctx: FamilyContext = Depends(get_family_context),
	db: Session = Depends(get_db),
):
	is_public = {"true": True, "false": False}.get((public or "").strip().lower())
	query = db.query(PromptTemplate).filter(
		or_(PromptTemplate.is_public.is_(True), PromptTemplate.creator_id == ctx.user_id)
	)
	if category:
		query = query.filter(PromptTemplate.category == category)
	if is_public is not None:
		query = query.filter(PromptTemplate.is_public.is_(is_public))
	templates = [
		t for t in BUILTIN_TEMPLATES
		if (not category or t.category == category) and (is_public is None or t.is_public == is_public)
	]
	templates += [_template_from_row(row) for row in query.order_by(PromptTemplate.created_at.desc()).all()]
	return {"templates": [t.model_dump(by_alias=True) for t in templates], "total": len(templates)}


@router.post("/templates", status_code=201)
async def create_template(
	req: CreatePromptTemplateRequest,
	ctx: FamilyContext = Depends(get_family_context),
	db: Session = Depends(get_db),
):
	if not req.name.strip() or not req.base_prompt.strip():
		return _error(400, "Name and base prompt are required")
	if req.recommended_age not in TARGET_AGES:
		return _error(400, "Invalid target age range")
	row = PromptTemplate(
		creator_id=ctx.user_id,
		name=req.name.strip(),
		description=req.description,
		category=req.category or "general",
		base_prompt=req.base_prompt,
		placeholders_json=json.dumps(req.placeholders),
		recommended_age=req.recommended_age,
		required_images=max(req.required_images, 0),
		price=max(req.price, 0),
		is_public=req.is_public,
	)
	db.add(row)
	db.commit()
	db.refresh(row)
	return {"id": row.id, "message": "Prompt template created successfully"}


@router.post("/images/analyze")
async def analyze_images(
	req: ImageAnalysisRequest,
	ctx: FamilyContext = Depends(get_family_context),
	db: Session = Depends(get_db),
	service: StoryService = Depends(get_story_service),
):
	if not req.image_ids:
		return _error(400, "No images provided")
	result = await service.analyze_images(db, ctx.family_id, req.image_ids)
	if not result.success:
		return JSONResponse(status_code=400, content={"success": False, "analyses": [], "error": result.error})
	return {
		"success": True,
		"analyses": [_analysis_payload(a) for a in result.analyses.values()],
		"processingTimeMs": result.processing_time_ms,
	}


@router.get("/providers/health")
async def providers_health(
	ctx: FamilyContext = Depends(get_family_context),
	service: StoryService = Depends(get_story_service),
):
	health = await service.check_provider_health()
	return {
		"providers": [
			{
				"name": name,
				"isHealthy": h.is_healthy,
				"responseTimeMs": h.response_time_ms,
				"lastChecked": h.last_checked,
				"error": h.error_message,
				"availableModels": h.available_models,
			}
			for name, h in health.items()
		]
	}

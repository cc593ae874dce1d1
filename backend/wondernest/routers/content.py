from typing import Any, Dict, List, Optional
import json
import logging
import time

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import catalog
from ..family import find_child
from ..catalog import ContentCategory, ContentItem, ContentPage
from ..db import get_db
from ..models import ContentEngagement
from ..schemas import CamelModel
from ..validation import validate_engagement_type
from .auth import FamilyContext, get_family_context

router = APIRouter(prefix="/api/v1", tags=["content"])
logger = logging.getLogger(__name__)


class RecommendationResponse(CamelModel):
	child_id: str
	recommendations: List[ContentItem]
	reason: str
	generated_at: int


class CategoriesResponse(CamelModel):
	categories: List[ContentCategory]


class EngagementRequest(CamelModel):
	content_id: str
	child_id: str
	engagement_type: Optional[str] = None
	action: Optional[str] = None
	duration: Optional[int] = None
	metadata: Optional[Dict[str, Any]] = None


def _message(status_code: int, message: str) -> JSONResponse:
	return JSONResponse(status_code=status_code, content={"message": message})


@router.get("/content", response_model=ContentPage)
async def list_content(
	category: Optional[str] = None,
	age_group: Optional[str] = Query(None, alias="ageGroup"),
	page: Optional[str] = None,
	limit: Optional[str] = None,
	ctx: FamilyContext = Depends(get_family_context),
):
	items = catalog.filter_content(age_group=catalog.parse_int(age_group), category=category or None)
	return catalog.paginate(items, catalog.parse_int(page), catalog.parse_int(limit))


@router.get("/content/library")
async def content_library(ctx: FamilyContext = Depends(get_family_context)):
	return {"message": "Use /content instead of /content/library"}


@router.get("/content/recommendations/{child_id}", response_model=RecommendationResponse)
async def recommendations(child_id: str, ctx: FamilyContext = Depends(get_family_context), db: Session = Depends(get_db)):
	child = find_child(db, ctx.family_id, child_id)
	if child is None:
		return _message(404, "Child not found")
	completed = db.query(ContentEngagement.content_id).filter(
		ContentEngagement.family_id == ctx.family_id,
		ContentEngagement.child_id == child.id,
		ContentEngagement.engagement_type == "completed",
	).distinct().all()
	return RecommendationResponse(
		child_id=child.id,
		recommendations=catalog.recommend(row[0] for row in completed),
		reason="Based on age-appropriate content and interests",
		generated_at=int(time.time() * 1000),
	)


@router.post("/content/engagement", status_code=201)
async def track_engagement(req: EngagementRequest, ctx: FamilyContext = Depends(get_family_context), db: Session = Depends(get_db)):
	engagement_type = req.engagement_type or req.action
	result = validate_engagement_type(engagement_type)
	if not result.is_valid:
		return _message(400, result.error_message)
	if catalog.find_content(req.content_id) is None:
		return _message(404, "Content not found")
	if not req.child_id.strip():
		return _message(400, "Child ID is required")
	child = find_child(db, ctx.family_id, req.child_id)
	if child is None:
		return _message(404, "Child not found")
	row = ContentEngagement(
		family_id=ctx.family_id,
		child_id=child.id,
		content_id=req.content_id,
		engagement_type=engagement_type.strip().lower(),
		duration_seconds=req.duration,
		metadata_json=json.dumps(req.metadata) if req.metadata is not None else None,
		recorded_by=ctx.user_id,
	)
	db.add(row)
	db.commit()
	logger.info(f"Engagement {row.engagement_type} on {row.content_id} for child {child.id}")
	return {"message": "Content engagement tracked"}


@router.get("/content/{content_id}", response_model=ContentItem)
async def get_content(content_id: str, ctx: FamilyContext = Depends(get_family_context)):
	item = catalog.find_content(content_id)
	if item is None:
		return _message(404, "Content not found")
	return item


@router.get("/categories", response_model=CategoriesResponse)
async def categories(ctx: FamilyContext = Depends(get_family_context)):
	return CategoriesResponse(categories=catalog.list_categories())

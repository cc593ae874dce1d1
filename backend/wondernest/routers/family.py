from typing import List, Optional
import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import family
from ..db import get_db
from ..family import ChildProfileResponse, ContentSettings, TimeRestrictions
from ..models import ChildProfile
from ..schemas import CamelModel
from .auth import FamilyContext, get_family_context

router = APIRouter(prefix="/api/v1/family", tags=["family"])
logger = logging.getLogger(__name__)


class CreateChildRequest(CamelModel):
	name: str
	birth_date: str
	gender: Optional[str] = None
	avatar_url: Optional[str] = None
	interests: List[str] = []


class UpdateChildRequest(CamelModel):
	name: Optional[str] = None
	gender: Optional[str] = None
	avatar_url: Optional[str] = None
	interests: Optional[List[str]] = None
	content_settings: Optional[ContentSettings] = None
	time_restrictions: Optional[TimeRestrictions] = None


def _child_or_404(db: Session, ctx: FamilyContext, child_id: str) -> ChildProfile:
	child = family.find_child(db, ctx.family_id, child_id)
	if child is None:
		raise HTTPException(status_code=404, detail="Child profile not found")
	return child


@router.get("/children", response_model=List[ChildProfileResponse])
def list_children(ctx: FamilyContext = Depends(get_family_context), db: Session = Depends(get_db)):
	children = family.list_children(db, ctx.family_id)
	logger.info(f"Retrieved {len(children)} children for family: {ctx.family_id}")
	return [family.to_response(c) for c in children]


@router.post("/children", status_code=201, response_model=ChildProfileResponse)
def create_child(req: CreateChildRequest, ctx: FamilyContext = Depends(get_family_context), db: Session = Depends(get_db)):
	name = family.clean_name(req.name)
	if name is None:
		raise HTTPException(status_code=400, detail="Child name is required")
	try:
		birth_date = family.parse_birth_date(req.birth_date)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	child = family.create_child(
		db,
		ctx.family_id,
		name,
		birth_date,
		gender=req.gender,
		avatar_url=req.avatar_url,
		interests=req.interests,
	)
	return family.to_response(child)


@router.get("/children/{child_id}", response_model=ChildProfileResponse)
def get_child(child_id: str, ctx: FamilyContext = Depends(get_family_context), db: Session = Depends(get_db)):
	return family.to_response(_child_or_404(db, ctx, child_id))


@router.put("/children/{child_id}", response_model=ChildProfileResponse)
def update_child(
	child_id: str,
	req: UpdateChildRequest,
	ctx: FamilyContext = Depends(get_family_context),
	db: Session = Depends(get_db),
):
	child = _child_or_404(db, ctx, child_id)
	if req.name is not None:
		name = family.clean_name(req.name)
		if name is None:
			raise HTTPException(status_code=400, detail="Child name is required")
		child.name = name
	if req.gender is not None:
		child.gender = req.gender.strip() or None
	if req.avatar_url is not None:
		child.avatar_url = req.avatar_url.strip() or None
	if req.interests is not None:
		child.interests_json = json.dumps(req.interests)
	if req.content_settings is not None:
		child.content_settings_json = req.content_settings.model_dump_json()
	if req.time_restrictions is not None:
		child.time_restrictions_json = req.time_restrictions.model_dump_json()
	db.add(child)
	db.commit()
	db.refresh(child)
	logger.info(f"Updated child profile: {child.id}")
	return family.to_response(child)


@router.delete("/children/{child_id}")
def delete_child(child_id: str, ctx: FamilyContext = Depends(get_family_context), db: Session = Depends(get_db)):
	family.archive_child(db, _child_or_404(db, ctx, child_id))
	return {"message": "Child profile archived"}

"""Child profiles belonging to a parent's family."""
from __future__ import annotations
import json
import logging
from datetime import date, datetime
from typing import List, Optional

from pydantic import Field
from sqlalchemy.orm import Session

from .models import ChildProfile
from .schemas import CamelModel
from .validation import is_valid_uuid, sanitize_string

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
# Profiles for children this age or older need extra parental verification
COPPA_AGE = 13


class ContentSettings(CamelModel):
	max_age_rating: int
	blocked_categories: List[str] = Field(default_factory=list)
	subtitles_enabled: bool = False
	audio_monitoring_enabled: bool = True
	educational_content_only: bool = False


class TimeRestrictions(CamelModel):
	daily_screen_time_minutes: int
	bedtime_enabled: bool = True
	bedtime_start: str
	bedtime_end: str


class ChildProfileResponse(CamelModel):
	id: str
	family_id: str
	name: str
	age: int
	birth_date: date
	gender: Optional[str] = None
	avatar_url: Optional[str] = None
	interests: List[str]
	content_settings: ContentSettings
	time_restrictions: TimeRestrictions
	created_at: datetime
	updated_at: datetime


def age_on(birth_date: date, today: date) -> int:
	return today.year - birth_date.year - ((today.month, today.day) < (birth_date.month, birth_date.day))


def default_content_settings(age: int) -> ContentSettings:
	return ContentSettings(
		max_age_rating=min(age + 2, 18),
		blocked_categories=["horror", "violence", "mature"] if age < 8 else [],
		educational_content_only=age < 6,
	)


def default_time_restrictions(age: int) -> TimeRestrictions:
	if age < 6:
		return TimeRestrictions(daily_screen_time_minutes=30, bedtime_start="18:30", bedtime_end="07:00")
	if age < 10:
		return TimeRestrictions(daily_screen_time_minutes=60, bedtime_start="19:30", bedtime_end="07:00")
	return TimeRestrictions(daily_screen_time_minutes=90, bedtime_start="20:30", bedtime_end="07:30")


def clean_name(name: Optional[str]) -> Optional[str]:
	"""The stored form of a child's name, or None when it is blank or too long."""
	cleaned = sanitize_string(name)
	if not cleaned or len(cleaned) > MAX_NAME_LENGTH:
		return None
	return cleaned


def parse_birth_date(value: Optional[str], today: Optional[date] = None) -> date:
	"""Raises ValueError with a user-facing message."""
	try:
		birth_date = date.fromisoformat((value or "").strip())
	except ValueError:
		raise ValueError("Invalid birth date format. Use YYYY-MM-DD") from None
	if birth_date > (today or datetime.utcnow().date()):
		raise ValueError("Birth date cannot be in the future")
	return birth_date


def to_response(child: ChildProfile, today: Optional[date] = None) -> ChildProfileResponse:
	return ChildProfileResponse(
		id=child.id,
		family_id=child.family_id,
		name=child.name,
		age=age_on(child.birth_date, today or datetime.utcnow().date()),
		birth_date=child.birth_date,
		gender=child.gender,
		avatar_url=child.avatar_url,
		interests=json.loads(child.interests_json or "[]"),
		content_settings=ContentSettings.model_validate_json(child.content_settings_json),
		time_restrictions=TimeRestrictions.model_validate_json(child.time_restrictions_json),
		created_at=child.created_at,
		updated_at=child.updated_at,
	)


def list_children(db: Session, family_id: str) -> List[ChildProfile]:
	return db.query(ChildProfile).filter(
		ChildProfile.family_id == family_id,
		ChildProfile.archived_at.is_(None),
	).order_by(ChildProfile.created_at).all()


def find_child(db: Session, family_id: str, child_id: Optional[str]) -> Optional[ChildProfile]:
	"""The family's active child with this id; ids are matched exactly after trimming whitespace."""
	if not is_valid_uuid(child_id):
		return None
	return db.query(ChildProfile).filter(
		ChildProfile.id == child_id.strip(),
		ChildProfile.family_id == family_id,
		ChildProfile.archived_at.is_(None),
	).first()


def create_child(
	db: Session,
	family_id: str,
	name: str,
	birth_date: date,
	*,
	gender: Optional[str] = None,
	avatar_url: Optional[str] = None,
	interests: Optional[List[str]] = None,
) -> ChildProfile:
	age = age_on(birth_date, datetime.utcnow().date())
	if age >= COPPA_AGE:
		logger.warning(f"Creating child profile for age {age} - COPPA verification required for {COPPA_AGE}+")
	child = ChildProfile(
		family_id=family_id,
		name=name,
		birth_date=birth_date,
		gender=(gender or "").strip() or None,
		avatar_url=(avatar_url or "").strip() or None,
		interests_json=json.dumps(interests or []),
		content_settings_json=default_content_settings(age).model_dump_json(),
		time_restrictions_json=default_time_restrictions(age).model_dump_json(),
	)
	db.add(child)
	db.commit()
	db.refresh(child)
	logger.info(f"Created child profile {child.id} for family {family_id}")
	return child


def archive_child(db: Session, child: ChildProfile) -> None:
	child.archived_at = datetime.utcnow()
	db.add(child)
	db.commit()
	logger.info(f"Archived child profile {child.id}")

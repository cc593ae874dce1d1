from __future__ import annotations
import json
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, Date, String, DateTime, Float, Integer, Text
from .db import Base


def _uuid() -> str:
	return str(uuid.uuid4())


class ParentAccount(Base):
	__tablename__ = "parent_accounts"
	id = Column(String(36), primary_key=True, default=_uuid)
	email = Column(String(256), unique=True, index=True, nullable=False)
	password_hash = Column(String(256), nullable=False)
	first_name = Column(String(128), nullable=True)
	last_name = Column(String(128), nullable=True)
	# One family per parent account for now
	family_id = Column(String(36), nullable=False, default=_uuid, index=True)
	pin_hash = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ChildProfile(Base):
	__tablename__ = "child_profiles"
	id = Column(String(36), primary_key=True, default=_uuid)
	family_id = Column(String(36), index=True, nullable=False)
	name = Column(String(128), nullable=False)
	birth_date = Column(Date, nullable=False)
	gender = Column(String(32), nullable=True)
	avatar_url = Column(String(512), nullable=True)
	interests_json = Column(Text, nullable=False, default="[]")
	content_settings_json = Column(Text, nullable=False, default="{}")
	time_restrictions_json = Column(Text, nullable=False, default="{}")
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
	# Archived profiles are hidden but keep their engagement history
	archived_at = Column(DateTime, nullable=True)


class AdminUser(Base):
	__tablename__ = "admin_users"
	id = Column(String(36), primary_key=True, default=_uuid)
	email = Column(String(256), unique=True, index=True, nullable=False)
	password_hash = Column(String(256), nullable=False)
	first_name = Column(String(128), nullable=False, default="")
	last_name = Column(String(128), nullable=False, default="")
	role = Column(String(32), nullable=False)
	permissions_json = Column(Text, nullable=False, default="[]")
	two_factor_enabled = Column(Boolean, nullable=False, default=False)
	is_active = Column(Boolean, nullable=False, default=True)
	last_login_at = Column(DateTime, nullable=True)
	failed_login_attempts = Column(Integer, nullable=False, default=0)
	locked_until = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	@property
	def permissions(self) -> list[str]:
		return json.loads(self.permissions_json or "[]")

	def is_locked(self, now: datetime | None = None) -> bool:
		return self.locked_until is not None and self.locked_until > (now or datetime.utcnow())


class AdminSession(Base):
	__tablename__ = "admin_sessions"
	id = Column(String(36), primary_key=True, default=_uuid)
	admin_user_id = Column(String(36), index=True, nullable=False)
	# SHA-256 digests; raw tokens are only ever returned to the client
	session_token_hash = Column(String(64), unique=True, index=True, nullable=False)
	refresh_token_hash = Column(String(64), unique=True, index=True, nullable=True)
	ip_address = Column(String(64), nullable=True)
	user_agent = Column(String(512), nullable=True)
	expires_at = Column(DateTime, nullable=False)
	last_activity = Column(DateTime, default=datetime.utcnow, nullable=False)
	is_active = Column(Boolean, nullable=False, default=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	def is_expired(self, now: datetime | None = None) -> bool:
		return self.expires_at < (now or datetime.utcnow())


class ContentEngagement(Base):
	__tablename__ = "content_engagements"
	id = Column(String(36), primary_key=True, default=_uuid)
	family_id = Column(String(36), index=True, nullable=False)
	child_id = Column(String(64), index=True, nullable=False)
	content_id = Column(String(64), nullable=False)
	engagement_type = Column(String(32), nullable=False)
	duration_seconds = Column(Integer, nullable=True)
	metadata_json = Column(Text, nullable=True)
	recorded_by = Column(String(36), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class StoryGeneration(Base):
	__tablename__ = "story_generations"
	id = Column(String(36), primary_key=True, default=_uuid)
	parent_id = Column(String(36), index=True, nullable=False)
	family_id = Column(String(36), nullable=False)
	child_id = Column(String(36), nullable=True)
	prompt = Column(Text, nullable=False)
	target_age = Column(String(8), nullable=False)
	status = Column(String(32), nullable=False, default="pending")
	provider = Column(String(32), nullable=True)
	story_id = Column(String(36), nullable=True)
	content = Column(Text, nullable=True)
	safety_scores_json = Column(Text, nullable=True)
	quality_metrics_json = Column(Text, nullable=True)
	cost = Column(Float, nullable=True)
	processing_time_ms = Column(Integer, nullable=True)
	error = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	completed_at = Column(DateTime, nullable=True)


class PromptTemplate(Base):
	__tablename__ = "ai_prompt_templates"
	id = Column(String(36), primary_key=True, default=_uuid)
	creator_id = Column(String(36), index=True, nullable=False)
	creator_name = Column(String(256), nullable=False, default="")
	name = Column(String(256), nullable=False)
	description = Column(Text, nullable=False, default="")
	category = Column(String(64), nullable=False, default="general")
	base_prompt = Column(Text, nullable=False)
	placeholders_json = Column(Text, nullable=False, default="{}")
	recommended_age = Column(String(8), nullable=False, default="6-8")
	required_images = Column(Integer, nullable=False, default=0)
	price = Column(Integer, nullable=False, default=0)
	is_public = Column(Boolean, nullable=False, default=False)
	rating = Column(Float, nullable=False, default=0.0)
	usage_count = Column(Integer, nullable=False, default=0)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UploadedFile(Base):
	__tablename__ = "uploaded_files"
	id = Column(String(36), primary_key=True, default=_uuid)
	family_id = Column(String(36), index=True, nullable=False)
	uploaded_by = Column(String(36), nullable=False)
	original_name = Column(String(256), nullable=False)
	mime_type = Column(String(64), nullable=False)
	size = Column(Integer, nullable=False)
	storage_path = Column(String(512), nullable=False)
	is_deleted = Column(Boolean, nullable=False, default=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

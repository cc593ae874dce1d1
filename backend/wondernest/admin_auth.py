"""Admin portal accounts, roles and server-side sessions."""
from __future__ import annotations
import json
import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .errors import AccountDisabledError, AccountLockedError, AuthenticationError
from .models import AdminSession, AdminUser
from .schemas import CamelModel
from .security import create_token, hash_password, hash_token, new_opaque_token, verify_password
from .settings import settings

logger = logging.getLogger(__name__)


class AdminRole(str, Enum):
	SUPER_ADMIN = "super_admin"
	CONTENT_MODERATOR = "content_moderator"
	CONTENT_CREATOR = "content_creator"
	ANALYTICS_VIEWER = "analytics_viewer"
	SUPPORT_AGENT = "support_agent"

	@property
	def level(self) -> int:
		return ROLE_LEVELS[self]

	def has_higher_level_than(self, other: "AdminRole") -> bool:
		return self.level > other.level


ROLE_LEVELS = {
	AdminRole.SUPER_ADMIN: 100,
	AdminRole.CONTENT_MODERATOR: 50,
	AdminRole.CONTENT_CREATOR: 30,
	AdminRole.ANALYTICS_VIEWER: 20,
	AdminRole.SUPPORT_AGENT: 10,
}


class AdminPermission(str, Enum):
	# User management
	MANAGE_USERS = "manage_users"
	VIEW_USER_DATA = "view_user_data"
	MODERATE_USER_CONTENT = "moderate_user_content"
	# Content management
	CREATE_CONTENT = "create_content"
	EDIT_CONTENT = "edit_content"
	PUBLISH_CONTENT = "publish_content"
	MODERATE_CONTENT = "moderate_content"
	DELETE_CONTENT = "delete_content"
	# Analytics and reporting
	VIEW_PLATFORM_ANALYTICS = "view_platform_analytics"
	EXPORT_DATA = "export_data"
	VIEW_FINANCIAL_DATA = "view_financial_data"
	# System administration
	MANAGE_SYSTEM_SETTINGS = "manage_system_settings"
	VIEW_AUDIT_LOGS = "view_audit_logs"
	MANAGE_ADMIN_USERS = "manage_admin_users"
	# Security
	MANAGE_SECURITY_SETTINGS = "manage_security_settings"
	VIEW_SECURITY_LOGS = "view_security_logs"
	FORCE_PASSWORD_RESET = "force_password_reset"


P = AdminPermission

ROLE_PERMISSIONS: Dict[AdminRole, List[AdminPermission]] = {
	AdminRole.SUPER_ADMIN: list(AdminPermission),
	AdminRole.CONTENT_MODERATOR: [
		P.VIEW_USER_DATA, P.MODERATE_USER_CONTENT, P.CREATE_CONTENT, P.EDIT_CONTENT,
		P.MODERATE_CONTENT, P.VIEW_PLATFORM_ANALYTICS, P.VIEW_AUDIT_LOGS,
	],
	AdminRole.CONTENT_CREATOR: [P.CREATE_CONTENT, P.EDIT_CONTENT, P.VIEW_PLATFORM_ANALYTICS],
	AdminRole.ANALYTICS_VIEWER: [P.VIEW_PLATFORM_ANALYTICS, P.EXPORT_DATA, P.VIEW_AUDIT_LOGS],
	AdminRole.SUPPORT_AGENT: [P.VIEW_USER_DATA, P.MODERATE_USER_CONTENT, P.VIEW_PLATFORM_ANALYTICS],
}


def permissions_for_role(role: AdminRole) -> List[str]:
	return [p.value for p in ROLE_PERMISSIONS[role]]


class AdminUserProfile(CamelModel):
	id: str
	email: str
	first_name: str
	last_name: str
	role: str
	permissions: List[str]
	two_factor_enabled: bool


class AdminLoginResponse(CamelModel):
	access_token: str
	refresh_token: str
	admin_user: AdminUserProfile
	permissions: List[str]
	expires_in: int
	requires_two_factor: bool = False


class AdminSessionInfo(CamelModel):
	id: str
	ip_address: Optional[str] = None
	user_agent: Optional[str] = None
	created_at: datetime
	last_activity: datetime
	expires_at: datetime


def to_profile(user: AdminUser) -> AdminUserProfile:
	return AdminUserProfile(
		id=user.id,
		email=user.email,
		first_name=user.first_name or "",
		last_name=user.last_name or "",
		role=user.role,
		permissions=user.permissions,
		two_factor_enabled=bool(user.two_factor_enabled),
	)


def to_session_info(session: AdminSession) -> AdminSessionInfo:
	return AdminSessionInfo(
		id=session.id,
		ip_address=session.ip_address,
		user_agent=session.user_agent,
		created_at=session.created_at,
		last_activity=session.last_activity,
		expires_at=session.expires_at,
	)


def create_admin_user(
	db: Session,
	email: str,
	password: str,
	role: AdminRole,
	*,
	first_name: str = "",
	last_name: str = "",
	two_factor_enabled: bool = False,
) -> AdminUser:
	user = AdminUser(
		email=email.strip().lower(),
		password_hash=hash_password(password),
		first_name=first_name,
		last_name=last_name,
		role=role.value,
		permissions_json=json.dumps(permissions_for_role(role)),
		two_factor_enabled=two_factor_enabled,
	)
	db.add(user)
	db.commit()
	db.refresh(user)
	return user


def seed_super_admin(db: Session) -> Optional[AdminUser]:
	email = settings.seed_admin_email
	password = settings.seed_admin_password
	if not email or not password:
		return None
	if db.query(AdminUser).filter(AdminUser.email == email.strip().lower()).first():
		return None
	user = create_admin_user(db, email, password, AdminRole.SUPER_ADMIN, first_name="Super", last_name="Admin")
	logger.info(f"Seeded super admin {user.email}")
	return user


class AdminAuthService:
	def __init__(self, db: Session) -> None:
		self.db = db
		self.session_duration = timedelta(hours=settings.admin_session_hours)
		self.max_login_attempts = settings.admin_max_login_attempts
		self.lockout_duration = timedelta(minutes=settings.admin_lockout_minutes)

	def _issue_tokens(self, user: AdminUser, session_id: str) -> tuple[str, str]:
		claims = {
			"sub": user.id,
			"userId": user.id,
			"email": user.email,
			"role": user.role,
			"permissions": user.permissions,
			"sid": session_id,
			"type": "admin",
		}
		return create_token(claims, self.session_duration), new_opaque_token()

	def _login_response(self, user: AdminUser, access_token: str, refresh_token: str) -> AdminLoginResponse:
		return AdminLoginResponse(
			access_token=access_token,
			refresh_token=refresh_token,
			admin_user=to_profile(user),
			permissions=user.permissions,
			expires_in=int(self.session_duration.total_seconds()),
		)

	def authenticate(
		self,
		email: str,
		password: str,
		two_factor_code: Optional[str] = None,
		ip_address: Optional[str] = None,
		user_agent: Optional[str] = None,
	) -> AdminLoginResponse:
		logger.info(f"Admin login attempt for email: {email} from IP: {ip_address}")
		user = self.db.query(AdminUser).filter(AdminUser.email == email.strip().lower()).first()
		if user is None:
			logger.warning(f"Failed admin login attempt for {email} from {ip_address}: User not found")
			raise AuthenticationError("Invalid credentials")
		if not user.is_active:
			logger.warning(f"Failed admin login attempt for {user.email} from {ip_address}: Account disabled")
			raise AccountDisabledError()
		now = datetime.utcnow()
		if user.is_locked(now):
			logger.warning(f"Failed admin login attempt for {user.email} from {ip_address}: Account locked")
			raise AccountLockedError()

		if not verify_password(password, user.password_hash):
			user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
			if user.failed_login_attempts >= self.max_login_attempts:
				user.locked_until = now + self.lockout_duration
				logger.warning(f"Admin account {user.id} locked due to too many failed attempts from {ip_address}")
			self.db.add(user)
			self.db.commit()
			logger.warning(f"Failed admin login attempt for {user.email} from {ip_address}: Invalid password")
			raise AuthenticationError("Invalid credentials")

		if user.two_factor_enabled:
			if not (two_factor_code or "").strip():
				return AdminLoginResponse(
					access_token="",
					refresh_token="",
					admin_user=to_profile(user),
					permissions=[],
					expires_in=0,
					requires_two_factor=True,
				)
			# TODO: verify TOTP codes once a 2FA enrollment flow stores per-admin secrets
			logger.warning(f"Rejected 2FA code for admin {user.id}: no verifier configured")
			raise AuthenticationError("Invalid two-factor code")

		user.failed_login_attempts = 0
		user.locked_until = None
		user.last_login_at = now

		session_id = str(uuid.uuid4())
		access_token, refresh_token = self._issue_tokens(user, session_id)
		session = AdminSession(
			id=session_id,
			admin_user_id=user.id,
			session_token_hash=hash_token(access_token),
			refresh_token_hash=hash_token(refresh_token),
			ip_address=ip_address,
			user_agent=user_agent,
			expires_at=now + self.session_duration,
			last_activity=now,
			is_active=True,
		)
		self.db.add(user)
		self.db.add(session)
		self.db.commit()
		logger.info(f"Successful admin login for {user.id} from {ip_address}")
		return self._login_response(user, access_token, refresh_token)

	def _deactivate(self, session: AdminSession) -> None:
		session.is_active = False
		self.db.add(session)
		self.db.commit()

	def refresh(self, refresh_token: str) -> AdminLoginResponse:
		session = self.db.query(AdminSession).filter(
			AdminSession.refresh_token_hash == hash_token(refresh_token)
		).first()
		if session is None:
			raise AuthenticationError("Invalid refresh token")
		if not session.is_active or session.is_expired():
			self._deactivate(session)
			raise AuthenticationError("Session expired")
		user = self.db.get(AdminUser, session.admin_user_id)
		if user is None:
			raise AuthenticationError("User not found")
		if not user.is_active:
			self._deactivate(session)
			raise AuthenticationError("Account is disabled")

		now = datetime.utcnow()
		access_token, new_refresh_token = self._issue_tokens(user, session.id)
		session.session_token_hash = hash_token(access_token)
		session.refresh_token_hash = hash_token(new_refresh_token)
		session.last_activity = now
		session.expires_at = now + self.session_duration
		self.db.add(session)
		self.db.commit()
		logger.info(f"Admin token refreshed for user: {user.id}")
		return self._login_response(user, access_token, new_refresh_token)

	def logout(self, session_id: str, access_token: Optional[str] = None) -> bool:
		session = self.db.get(AdminSession, session_id)
		if session is None or not session.is_active:
			return False
		if access_token is not None and hash_token(access_token) != session.session_token_hash:
			return False
		self._deactivate(session)
		logger.info(f"Admin logout successful for session: {session.id}")
		return True

	def validate_session(self, session_id: str, access_token: Optional[str] = None) -> Optional[AdminUser]:
		"""The session's user, or None. A given access token must be the one issued last for the session."""
		session = self.db.get(AdminSession, session_id)
		if session is None:
			return None
		if access_token is not None and hash_token(access_token) != session.session_token_hash:
			logger.warning(f"Rejected superseded access token for admin session {session.id}")
			return None
		if not session.is_active or session.is_expired():
			if session.is_active:
				self._deactivate(session)
			return None
		user = self.db.get(AdminUser, session.admin_user_id)
		if user is None:
			return None
		if not user.is_active:
			self._deactivate(session)
			return None
		session.last_activity = datetime.utcnow()
		self.db.add(session)
		self.db.commit()
		return user

	def active_sessions(self, admin_user_id: str) -> List[AdminSession]:
		return self.db.query(AdminSession).filter(
			AdminSession.admin_user_id == admin_user_id,
			AdminSession.is_active.is_(True),
			AdminSession.expires_at > datetime.utcnow(),
		).order_by(AdminSession.created_at.desc()).all()

	def deactivate_all_sessions(self, admin_user_id: str) -> int:
		count = self.db.query(AdminSession).filter(
			AdminSession.admin_user_id == admin_user_id,
			AdminSession.is_active.is_(True),
		).update({AdminSession.is_active: False}, synchronize_session=False)
		self.db.commit()
		logger.info(f"Force logout for admin {admin_user_id}: {count} sessions deactivated")
		return count

	def cleanup_expired_sessions(self) -> int:
		removed = self.db.query(AdminSession).filter(
			or_(AdminSession.expires_at < datetime.utcnow(), AdminSession.is_active.is_(False))
		).delete(synchronize_session=False)
		self.db.commit()
		return removed

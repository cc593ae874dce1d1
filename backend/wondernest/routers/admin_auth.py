from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..admin_auth import AdminAuthService, AdminPermission, AdminLoginResponse, AdminUserProfile, to_profile, to_session_info
from ..db import get_db
from ..errors import AccountDisabledError, AccountLockedError, AuthenticationError
from ..models import AdminUser
from ..schemas import CamelModel, ErrorResponse
from ..security import decode_token

router = APIRouter(prefix="/admin/auth", tags=["admin-auth"])
logger = logging.getLogger(__name__)

admin_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/admin/auth/login")


class AdminPrincipal(BaseModel):
	user_id: str
	email: Optional[str] = None
	role: Optional[str] = None
	permissions: List[str] = []
	session_id: str
	access_token: str


class AdminLoginRequest(CamelModel):
	email: str = ""
	password: str = ""
	two_factor_code: Optional[str] = None


class RefreshTokenRequest(CamelModel):
	refresh_token: str = ""


def _error(status_code: int, error: str, message: Optional[str]) -> JSONResponse:
	return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, message=message).model_dump())


def get_admin_auth_service(db: Session = Depends(get_db)) -> AdminAuthService:
	return AdminAuthService(db)


def get_admin_principal(token: str = Depends(admin_oauth2_scheme)) -> AdminPrincipal:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = decode_token(token)
	except JWTError:
		raise credentials_exception
	if payload.get("type") != "admin" or not payload.get("userId") or not payload.get("sid"):
		raise credentials_exception
	return AdminPrincipal(
		user_id=payload["userId"],
		email=payload.get("email"),
		role=payload.get("role"),
		permissions=payload.get("permissions") or [],
		session_id=payload["sid"],
		access_token=token,
	)


def require_admin_session(
	principal: AdminPrincipal = Depends(get_admin_principal),
	service: AdminAuthService = Depends(get_admin_auth_service),
) -> AdminUser:
	user = service.validate_session(principal.session_id, principal.access_token)
	if user is None or user.id != principal.user_id:
		raise HTTPException(status_code=401, detail="Session not valid")
	return user


def _client_ip(request: Request) -> Optional[str]:
	forwarded = request.headers.get("X-Forwarded-For")
	if forwarded:
		return forwarded.split(",")[0].strip()
	return request.headers.get("X-Real-IP") or (request.client.host if request.client else None)


@router.post("/login", response_model=AdminLoginResponse)
def login(req: AdminLoginRequest, request: Request, service: AdminAuthService = Depends(get_admin_auth_service)):
	if not req.email.strip() or not req.password.strip():
		return _error(400, "validation_error", "Email and password are required")
	ip_address = _client_ip(request)
	try:
		return service.authenticate(
			req.email,
			req.password,
			two_factor_code=req.two_factor_code,
			ip_address=ip_address,
			user_agent=request.headers.get("User-Agent"),
		)
	except AccountLockedError as e:
		return _error(403, "account_locked", str(e))
	except AccountDisabledError as e:
		return _error(403, "account_disabled", str(e))
	except AuthenticationError as e:
		logger.warning(f"Admin authentication failed: {e}")
		return _error(401, "authentication_failed", str(e))


@router.post("/refresh", response_model=AdminLoginResponse)
def refresh(req: RefreshTokenRequest, service: AdminAuthService = Depends(get_admin_auth_service)):
	if not req.refresh_token.strip():
		return _error(400, "validation_error", "Refresh token is required")
	try:
		return service.refresh(req.refresh_token)
	except AuthenticationError as e:
		logger.warning(f"Admin token refresh failed: {e}")
		return _error(401, "token_refresh_failed", str(e))


@router.post("/logout")
def logout(principal: AdminPrincipal = Depends(get_admin_principal), service: AdminAuthService = Depends(get_admin_auth_service)):
	if not service.logout(principal.session_id, principal.access_token):
		return _error(400, "logout_failed", "Invalid session")
	return {"message": "Logged out successfully"}


@router.get("/profile", response_model=AdminUserProfile)
def profile(user: AdminUser = Depends(require_admin_session)):
	return to_profile(user)


@router.get("/sessions")
def sessions(user: AdminUser = Depends(require_admin_session), service: AdminAuthService = Depends(get_admin_auth_service)):
	return {"sessions": [to_session_info(s).model_dump(by_alias=True, mode="json") for s in service.active_sessions(user.id)]}


@router.post("/logout-all")
def logout_all(
	principal: AdminPrincipal = Depends(get_admin_principal),
	service: AdminAuthService = Depends(get_admin_auth_service),
):
	if AdminPermission.MANAGE_SECURITY_SETTINGS.value not in principal.permissions:
		return _error(403, "insufficient_permissions", "Security management permission required")
	if service.validate_session(principal.session_id, principal.access_token) is None:
		return _error(401, "invalid_session", "Session not valid")
	count = service.deactivate_all_sessions(principal.user_id)
	return {"message": "All sessions logged out successfully", "sessionsLoggedOut": count}

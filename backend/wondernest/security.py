from __future__ import annotations
import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from .settings import settings

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _bcrypt_safe(secret: str) -> str:
	# Truncate to 72 bytes for bcrypt compatibility
	secret_bytes = secret.encode('utf-8')
	if len(secret_bytes) > 72:
		secret_bytes = secret_bytes[:72]
	return secret_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def hash_token(token: str) -> str:
	"""Deterministic digest so opaque tokens can be looked up by value."""
	return hashlib.sha256(token.encode('utf-8')).hexdigest()


def new_opaque_token() -> str:
	return secrets.token_urlsafe(32)


def _resolve_expiry(expires_delta: timedelta) -> datetime:
	now = datetime.now(timezone.utc)
	try:
		return now + expires_delta
	except OverflowError:
		# Cap at far future but within datetime bounds
		return datetime.max.replace(tzinfo=timezone.utc)


def create_token(claims: Dict[str, Any], expires_delta: timedelta, *, audience: Optional[str] = None) -> str:
	to_encode = dict(claims)
	to_encode.update({
		"exp": _resolve_expiry(expires_delta),
		"iat": datetime.now(timezone.utc),
		"iss": settings.jwt_issuer,
		"aud": audience or settings.jwt_audience,
		"nonce": secrets.token_hex(8),
	})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, *, audience: Optional[str] = None) -> Dict[str, Any]:
	"""Decode and verify a token; raises JWTError on any failure."""
	return jwt.decode(
		token,
		settings.jwt_secret_key,
		algorithms=[settings.jwt_algorithm],
		audience=audience or settings.jwt_audience,
		issuer=settings.jwt_issuer,
	)


def refresh_audience() -> str:
	return f"{settings.jwt_audience}-refresh"


def access_token_lifetime() -> timedelta:
	minutes = settings.access_token_expire_minutes
	return timedelta(minutes=minutes if minutes > 0 else 60)


def create_parent_token_pair(user_id: str, email: str, family_id: Optional[str]) -> Dict[str, Any]:
	claims: Dict[str, Any] = {"sub": user_id, "userId": user_id, "email": email, "role": "PARENT", "type": "access"}
	refresh_claims: Dict[str, Any] = {"sub": user_id, "userId": user_id, "type": "refresh"}
	if family_id:
		claims["familyId"] = family_id
		refresh_claims["familyId"] = family_id
	lifetime = access_token_lifetime()
	return {
		"accessToken": create_token(claims, lifetime),
		"refreshToken": create_token(
			refresh_claims,
			timedelta(days=settings.refresh_token_expire_days),
			audience=refresh_audience(),
		),
		"expiresIn": int(lifetime.total_seconds()),
		"tokenType": "bearer",
	}


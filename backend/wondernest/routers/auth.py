from typing import Optional, Dict, Any
import logging

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import ParentAccount
from ..schemas import CamelModel
from ..security import create_parent_token_pair, decode_token, hash_password, refresh_audience, verify_password
from ..validation import is_valid_email, validate_password, validate_pin

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])
logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


class TokenPair(CamelModel):
	access_token: str
	refresh_token: str
	expires_in: int
	token_type: str = "bearer"


class User(BaseModel):
	id: str
	email: Optional[str] = None
	role: str = "PARENT"
	family_id: Optional[str] = None


class FamilyContext(BaseModel):
	user_id: str
	family_id: str


class SignupRequest(CamelModel):
	email: str
	password: str
	first_name: Optional[str] = None
	last_name: Optional[str] = None


class LoginRequest(BaseModel):
	email: str
	password: str


class RefreshRequest(CamelModel):
	refresh_token: str


class PinRequest(BaseModel):
	pin: str


class ProfileResponse(CamelModel):
	id: str
	email: str
	first_name: Optional[str] = None
	last_name: Optional[str] = None
	family_id: str
	has_pin: bool


def _token_response(account: ParentAccount) -> Dict[str, Any]:
	return create_parent_token_pair(account.id, account.email, account.family_id)


def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = decode_token(token)
	except JWTError:
		raise credentials_exception
	user_id: Optional[str] = payload.get("userId") or payload.get("sub")
	if user_id is None or payload.get("type") != "access":
		raise credentials_exception
	return User(
		id=user_id,
		email=payload.get("email"),
		role=payload.get("role") or "PARENT",
		family_id=payload.get("familyId"),
	)


def get_family_context(user: User = Depends(get_current_user)) -> FamilyContext:
	if not user.family_id:
		raise HTTPException(status_code=400, detail="No family context in token")
	return FamilyContext(user_id=user.id, family_id=user.family_id)


def _load_account(db: Session, user: User) -> ParentAccount:
	account = db.get(ParentAccount, user.id)
	if account is None:
		raise HTTPException(status_code=401, detail="Could not validate credentials")
	return account


@router.post("/signup", status_code=201, response_model=TokenPair)
async def signup(req: SignupRequest, db: Session = Depends(get_db)):
	email = (req.email or "").strip().lower()
	if not is_valid_email(email):
		raise HTTPException(status_code=400, detail="Please enter a valid email address")
	result = validate_password(req.password)
	if not result.is_valid:
		raise HTTPException(status_code=400, detail=result.error_message)
	existing = db.query(ParentAccount).filter(ParentAccount.email == email).first()
	if existing:
		raise HTTPException(status_code=409, detail="An account with this email already exists")
	account = ParentAccount(
		email=email,
		password_hash=hash_password(req.password),
		first_name=(req.first_name or "").strip() or None,
		last_name=(req.last_name or "").strip() or None,
	)
	db.add(account)
	db.commit()
	db.refresh(account)
	logger.info(f"Created parent account {account.id} with family {account.family_id}")
	return _token_response(account)


@router.post("/login", response_model=TokenPair)
async def login(req: LoginRequest, db: Session = Depends(get_db)):
	email = (req.email or "").strip().lower()
	account = db.query(ParentAccount).filter(ParentAccount.email == email).first()
	if not account or not verify_password(req.password, account.password_hash):
		logger.warning(f"Failed parent login for {email}")
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	logger.info(f"Parent login for {account.id}")
	return _token_response(account)


@router.post("/refresh", response_model=TokenPair)
async def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
	invalid = HTTPException(status_code=401, detail="Invalid or expired refresh token")
	try:
		payload = decode_token(req.refresh_token, audience=refresh_audience())
	except JWTError:
		raise invalid
	if payload.get("type") != "refresh":
		raise invalid
	account = db.get(ParentAccount, payload.get("userId") or payload.get("sub"))
	if account is None:
		raise invalid
	return _token_response(account)


@router.get("/me", response_model=ProfileResponse)
async def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	account = _load_account(db, user)
	return ProfileResponse(
		id=account.id,
		email=account.email,
		first_name=account.first_name,
		last_name=account.last_name,
		family_id=account.family_id,
		has_pin=account.pin_hash is not None,
	)


@router.post("/pin")
async def set_pin(req: PinRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	result = validate_pin(req.pin)
	if not result.is_valid:
		raise HTTPException(status_code=400, detail=result.error_message)
	account = _load_account(db, user)
	account.pin_hash = hash_password(req.pin)
	db.add(account)
	db.commit()
	return {"message": "PIN saved"}


@router.post("/pin/verify")
async def verify_pin(req: PinRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	account = _load_account(db, user)
	verified = bool(account.pin_hash) and verify_password(req.pin or "", account.pin_hash)
	return {"verified": verified}

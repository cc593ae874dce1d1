"""Input validation shared by the parent, content and admin routers."""
from __future__ import annotations
import re
import uuid
from dataclasses import dataclass
from typing import Optional


EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$")

COMMON_PASSWORDS = {
	"password", "123456", "123456789", "12345678", "12345", "1234567",
	"password123", "admin", "qwerty", "abc123",
}

ENGAGEMENT_TYPES = ("viewed", "completed", "liked", "shared", "skipped", "paused", "resumed")

PIN_LENGTH = 6


@dataclass(frozen=True)
class ValidationResult:
	is_valid: bool
	error_message: Optional[str] = None

	@classmethod
	def success(cls) -> "ValidationResult":
		return cls(True)

	@classmethod
	def failure(cls, message: str) -> "ValidationResult":
		return cls(False, message)


def is_valid_email(email: Optional[str]) -> bool:
	if not email or not email.strip():
		return False
	return EMAIL_PATTERN.match(email.strip()) is not None


def validate_password(password: Optional[str]) -> ValidationResult:
	if not password or not password.strip():
		return ValidationResult.failure("Password is required")
	errors = []
	if len(password) < 8:
		errors.append("Password must be at least 8 characters long")
	if len(password) > 128:
		errors.append("Password must not exceed 128 characters")
	if not re.search(r"[a-z]", password):
		errors.append("Password must contain at least one lowercase letter")
	if not re.search(r"[A-Z]", password):
		errors.append("Password must contain at least one uppercase letter")
	if not re.search(r"\d", password):
		errors.append("Password must contain at least one digit")
	if password.lower() in COMMON_PASSWORDS:
		errors.append("Password is too common")
	if errors:
		return ValidationResult.failure(", ".join(errors))
	return ValidationResult.success()


def _is_run(digits: list[int], step: int) -> bool:
	return all(digits[i] == digits[i - 1] + step for i in range(1, len(digits)))


def validate_pin(pin: Optional[str]) -> ValidationResult:
	"""Parent PIN rules: six digits, not one repeated digit, not a straight run either way."""
	if not pin:
		return ValidationResult.failure("Please enter a PIN")
	if len(pin) != PIN_LENGTH or not pin.isdigit() or not pin.isascii():
		return ValidationResult.failure(f"PIN must be exactly {PIN_LENGTH} digits")
	digits = [int(c) for c in pin]
	if len(set(digits)) == 1:
		return ValidationResult.failure("PIN cannot be all the same digit")
	if _is_run(digits, 1):
		return ValidationResult.failure("PIN cannot be sequential (e.g., 123456)")
	if _is_run(digits, -1):
		return ValidationResult.failure("PIN cannot be reverse sequential (e.g., 654321)")
	return ValidationResult.success()


def is_valid_uuid(value: Optional[str]) -> bool:
	if not value or not value.strip():
		return False
	try:
		uuid.UUID(value.strip())
	except ValueError:
		return False
	return True


def validate_engagement_type(engagement_type: Optional[str]) -> ValidationResult:
	if not engagement_type or not engagement_type.strip():
		return ValidationResult.failure("Engagement type is required")
	if engagement_type.strip().lower() in ENGAGEMENT_TYPES:
		return ValidationResult.success()
	return ValidationResult.failure(f"Engagement type must be one of: {', '.join(ENGAGEMENT_TYPES)}")


def sanitize_string(value: Optional[str]) -> Optional[str]:
	if value is None:
		return None
	return re.sub(r"[<>\"']", "", value.strip())

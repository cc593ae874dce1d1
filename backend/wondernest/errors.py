from __future__ import annotations
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
	from .llm import SafetyScores


class AuthenticationError(Exception):
	"""Credentials or session rejected."""


class AccountLockedError(AuthenticationError):
	def __init__(self, message: str = "Account is temporarily locked") -> None:
		super().__init__(message)


class AccountDisabledError(AuthenticationError):
	def __init__(self, message: str = "Account is disabled") -> None:
		super().__init__(message)


class LLMError(Exception):
	"""Base class for story-generation provider failures."""

	retryable = False


class ProviderUnavailableError(LLMError):
	retryable = True


class QuotaExceededError(LLMError):
	pass


class SafetyViolationError(LLMError):
	def __init__(self, message: str, safety_scores: "SafetyScores") -> None:
		super().__init__(message)
		self.safety_scores = safety_scores


class InvalidRequestError(LLMError):
	pass


class GenerationFailedError(LLMError):
	pass


class RateLimitExceededError(LLMError):
	retryable = True

	def __init__(self, message: str, retry_after_seconds: Optional[int] = None) -> None:
		super().__init__(message)
		self.retry_after_seconds = retry_after_seconds

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	environment: str = Field(default="development", validation_alias="ENVIRONMENT")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
	version: str = Field(default="0.0.1", validation_alias="APP_VERSION")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Redis cache (optional; health reports it as DISABLED when unset)
	redis_url: str | None = Field(default=None, validation_alias="REDIS_URL")
	cache_ttl_seconds: int = Field(default=86400, validation_alias="CACHE_TTL_SECONDS")

	# Parent JWT configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	jwt_issuer: str = Field(default="wondernest-api", validation_alias="JWT_ISSUER")
	jwt_audience: str = Field(default="wondernest-users", validation_alias="JWT_AUDIENCE")
	access_token_expire_minutes: int = Field(default=60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	refresh_token_expire_days: int = Field(default=30, validation_alias="REFRESH_TOKEN_EXPIRE_DAYS")

	# Admin portal
	admin_session_hours: int = Field(default=4, validation_alias="ADMIN_SESSION_HOURS")
	admin_max_login_attempts: int = Field(default=5, validation_alias="ADMIN_MAX_LOGIN_ATTEMPTS")
	admin_lockout_minutes: int = Field(default=30, validation_alias="ADMIN_LOCKOUT_MINUTES")
	seed_admin_email: str | None = Field(default=None, validation_alias="SEED_ADMIN_EMAIL")
	seed_admin_password: str | None = Field(default=None, validation_alias="SEED_ADMIN_PASSWORD")

	# Gemini (Generative Language API)
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	gemini_model: str = Field(default="gemini-1.5-flash", validation_alias="GEMINI_MODEL")
	gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta", validation_alias="GEMINI_BASE_URL")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="google/gemini-flash-1.5", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="WonderNest", validation_alias="OPENROUTER_TITLE")

	# AI generation quotas (free tier)
	ai_daily_limit: int = Field(default=5, validation_alias="AI_DAILY_LIMIT")
	ai_monthly_limit: int = Field(default=50, validation_alias="AI_MONTHLY_LIMIT")
	ai_generation_timeout_seconds: float = Field(default=60.0, validation_alias="AI_GENERATION_TIMEOUT_SECONDS")

	# Local file storage
	upload_dir: str = Field(default="./uploads", validation_alias="UPLOAD_DIR")
	max_upload_bytes: int = Field(default=10 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()

from __future__ import annotations
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
	"""Accepts snake_case or camelCase input; FastAPI serializes responses by alias."""
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
	error: str
	message: str | None = None

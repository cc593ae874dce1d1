from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional

from .settings import settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
	"image/jpeg": (".jpg", ".jpeg"),
	"image/png": (".png",),
	"image/gif": (".gif",),
	"image/webp": (".webp",),
}

_MAGIC = {
	"image/jpeg": (b"\xff\xd8\xff",),
	"image/png": (b"\x89PNG",),
	"image/gif": (b"GIF87a", b"GIF89a"),
}


def size_limit_message() -> str:
	return f"File size exceeds maximum allowed size of {settings.max_upload_bytes // (1024 * 1024)}MB"


def validate_upload(filename: str, content_type: str, data: bytes) -> Optional[str]:
	"""Return an error message for an unacceptable upload, or None."""
	if not data:
		return "File is empty"
	if len(data) > settings.max_upload_bytes:
		return size_limit_message()
	extensions = ALLOWED_IMAGE_TYPES.get(content_type)
	if extensions is None:
		return f"File type '{content_type}' is not allowed"
	suffix = Path(filename or "").suffix.lower()
	if suffix and suffix not in extensions:
		return "File extension does not match content type"
	if content_type == "image/webp":
		if not (data[:4] == b"RIFF" and data[8:12] == b"WEBP"):
			return "File content does not match content type"
	elif not data.startswith(_MAGIC[content_type]):
		return "File content does not match content type"
	return None


def _root() -> Path:
	return Path(settings.upload_dir).resolve()


def save(family_id: str, file_id: str, content_type: str, data: bytes) -> str:
	"""Write the bytes under UPLOAD_DIR/<family>/ and return the storage key."""
	key = f"{family_id}/{file_id}{ALLOWED_IMAGE_TYPES[content_type][0]}"
	path = _root() / key
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_bytes(data)
	logger.info(f"File uploaded locally: {key} ({len(data)} bytes)")
	return key


def read_bytes(key: str) -> bytes:
	return (_root() / key).read_bytes()

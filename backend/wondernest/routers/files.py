from datetime import datetime
from typing import List
import logging
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from .. import storage
from ..db import get_db
from ..models import UploadedFile
from ..schemas import CamelModel
from ..settings import settings
from .auth import FamilyContext, get_family_context

router = APIRouter(prefix="/api/v1/files", tags=["files"])
logger = logging.getLogger(__name__)

UPLOAD_CHUNK_BYTES = 64 * 1024


class FileResponse(CamelModel):
	id: str
	original_name: str
	mime_type: str
	size: int
	created_at: datetime


async def _read_upload(file: UploadFile) -> bytes:
	"""Read the upload in chunks, failing as soon as it passes MAX_UPLOAD_BYTES."""
	data = bytearray()
	while True:
		chunk = await file.read(UPLOAD_CHUNK_BYTES)
		if not chunk:
			return bytes(data)
		data.extend(chunk)
		if len(data) > settings.max_upload_bytes:
			logger.warning(f"Rejected upload {file.filename}: over {settings.max_upload_bytes} bytes")
			raise HTTPException(status_code=400, detail=storage.size_limit_message())


def _to_response(row: UploadedFile) -> FileResponse:
	return FileResponse(
		id=row.id,
		original_name=row.original_name,
		mime_type=row.mime_type,
		size=row.size,
		created_at=row.created_at,
	)


@router.post("/upload", status_code=201, response_model=FileResponse)
async def upload_file(
	file: UploadFile = File(...),
	ctx: FamilyContext = Depends(get_family_context),
	db: Session = Depends(get_db),
):
	data = await _read_upload(file)
	content_type = (file.content_type or "").split(";")[0].strip().lower()
	error = storage.validate_upload(file.filename or "", content_type, data)
	if error:
		raise HTTPException(status_code=400, detail=error)
	file_id = str(uuid.uuid4())
	key = storage.save(ctx.family_id, file_id, content_type, data)
	row = UploadedFile(
		id=file_id,
		family_id=ctx.family_id,
		uploaded_by=ctx.user_id,
		original_name=file.filename or file_id,
		mime_type=content_type,
		size=len(data),
		storage_path=key,
	)
	db.add(row)
	db.commit()
	db.refresh(row)
	return _to_response(row)


@router.get("", response_model=List[FileResponse])
async def list_files(ctx: FamilyContext = Depends(get_family_context), db: Session = Depends(get_db)):
	rows = db.query(UploadedFile).filter(
		UploadedFile.family_id == ctx.family_id,
		UploadedFile.is_deleted.is_(False),
	).order_by(UploadedFile.created_at.desc()).all()
	return [_to_response(r) for r in rows]


@router.delete("/{file_id}")
async def delete_file(file_id: str, ctx: FamilyContext = Depends(get_family_context), db: Session = Depends(get_db)):
	row = db.query(UploadedFile).filter(
		UploadedFile.id == file_id,
		UploadedFile.family_id == ctx.family_id,
		UploadedFile.is_deleted.is_(False),
	).first()
	if row is None:
		raise HTTPException(status_code=404, detail="File not found")
	row.is_deleted = True
	db.add(row)
	db.commit()
	logger.info(f"File {file_id} soft-deleted by {ctx.user_id}")
	return {"message": "File deleted"}

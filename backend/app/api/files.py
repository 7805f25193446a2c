"""File processing API endpoints"""

from fastapi import APIRouter, Depends, HTTPException
from typing import Any, Dict

from app.models.file import FileProcessRequest
from app.services.database import StoreUnavailable
from app.services.file_processor import FileProcessor, FileTooLarge, get_file_processor
from app.services.file_store import FileRepo, get_file_repo
from app.utils.auth import get_current_user_id
from app.utils.logger import get_logger

logger = get_logger()
router = APIRouter()


@router.post("/files/process")
async def process_file(
    request: FileProcessRequest,
    user_id: str = Depends(get_current_user_id),
    repo: FileRepo = Depends(get_file_repo),
    processor: FileProcessor = Depends(get_file_processor),
) -> Dict[str, Any]:
    """Fetch an uploaded file and extract its content"""
    try:
        response = await processor.process(user_id, request, repo)
    except FileTooLarge as e:
        logger.warning(f"Rejected upload {request.file_name}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    return response.to_api(exclude_none=True)


@router.get("/files/{file_id}")
async def get_file(
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: FileRepo = Depends(get_file_repo),
) -> Dict[str, Any]:
    """Look up a File record, e.g. to poll its processing status"""
    try:
        record = await repo.get(user_id, file_id)
    except StoreUnavailable:
        return {"success": False, "offline": True, "file": None}

    if record is None:
        raise HTTPException(status_code=404, detail="File not found")
    return {"success": True, "file": record.to_api()}

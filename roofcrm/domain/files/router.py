"""File router - Dual-storage upload, URL lookup, delete and repair"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from ...shared.results import failure_response
from .schemas import DualStorageOptions, FileResponse, FileUrlResponse, RecentFilesResponse
from .service import DualFileStorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["Files"])


def get_dual_storage_service(request: Request, db: Session = Depends(get_db)) -> DualFileStorageService:
    """Dependency injection for DualFileStorageService, using the adapters built at startup"""
    return DualFileStorageService(
        db,
        blob=getattr(request.app.state, "blob_storage", None),
        drive=getattr(request.app.state, "drive", None),
    )


def _result_content(result: dict) -> dict:
    content = {"success": result["success"], "message": result["message"]}
    if result.get("data") is not None:
        content["data"] = FileResponse.from_record(result["data"]).model_dump(mode="json")
    return content


@router.post("/upload-dual")
async def upload_dual(
    file: Optional[UploadFile] = File(None),
    leadId: Optional[str] = Form(None),
    fileType: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    customFileName: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    service: DualFileStorageService = Depends(get_dual_storage_service),
):
    """Upload a file to blob storage and the lead's Google Drive folder"""
    logger.info(f"📤 Dual storage upload request from {current_user.email}: lead={leadId}, type={fileType}")

    options = DualStorageOptions(
        leadId=leadId,
        fileType=fileType,
        category=category,
        customFileName=customFileName,
        description=description,
    )
    content = await file.read() if file is not None else None
    result = await service.upload_file(
        content,
        file.filename if file is not None else None,
        file.content_type if file is not None else None,
        options,
        current_user,
    )

    if not result["success"]:
        return failure_response(result)
    return _result_content(result)


@router.get("/url/{file_id}", response_model=FileUrlResponse)
async def get_file_url(
    file_id: str,
    url_type: str = Query("view", alias="type", pattern="^(view|download)$"),
    current_user: User = Depends(get_current_user),
    service: DualFileStorageService = Depends(get_dual_storage_service),
):
    """Preferred URL for a file (blob first, Drive as fallback)"""
    url = service.get_file_url(file_id, url_type)
    if not url:
        raise HTTPException(status_code=404, detail="File not found")
    return FileUrlResponse(success=True, url=url, type=url_type)


@router.get("/recent", response_model=RecentFilesResponse)
async def get_recent_files(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: DualFileStorageService = Depends(get_dual_storage_service),
):
    """Most recently uploaded files across all leads"""
    result = service.get_recent_files(page=page, limit=limit)
    return RecentFilesResponse(
        files=[FileResponse.from_record(f) for f in result["files"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
    )


@router.delete("/{file_id}")
async def delete_file(
    file_id: str,
    current_user: User = Depends(get_current_user),
    service: DualFileStorageService = Depends(get_dual_storage_service),
):
    """Delete a file from both backends"""
    logger.info(f"🗑️ File delete requested by {current_user.email}: {file_id}")
    result = await service.delete_file(file_id)
    if not result["success"]:
        return failure_response(result)
    return result


@router.post("/{file_id}/repair")
async def repair_file(
    file_id: str,
    current_user: User = Depends(require_admin),
    service: DualFileStorageService = Depends(get_dual_storage_service),
):
    """Copy a file that lives on one backend to the other (admins only)"""
    result = await service.repair_file(file_id)
    if not result["success"]:
        return failure_response(result)
    return _result_content(result)

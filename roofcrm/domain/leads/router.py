"""Lead router - FastAPI endpoints for lead operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.notification_service import (
    NotificationContext,
    send_deletion_request_notification,
    send_lead_deletion_notification,
)
from ...shared.results import failure_response
from ..deletion_requests.service import DeletionApprovalService, deletion_request_payload
from ..files.router import get_dual_storage_service
from ..files.schemas import FileResponse
from ..files.service import DualFileStorageService
from ..notifications.service import get_notification_context
from .schemas import LeadCreate, LeadDeleteRequest, LeadResponse
from .service import LeadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leads", tags=["Leads"])


def get_lead_service(db: Session = Depends(get_db)) -> LeadService:
    """Dependency injection for LeadService"""
    return LeadService(db)


@router.get("", response_model=list[LeadResponse])
async def get_leads(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: LeadService = Depends(get_lead_service),
):
    """List leads, newest first"""
    return [LeadResponse.from_lead(lead) for lead in service.get_leads(status=status, limit=limit, offset=offset)]


@router.post("", response_model=LeadResponse)
async def create_lead(
    data: LeadCreate,
    current_user: User = Depends(get_current_user),
    service: LeadService = Depends(get_lead_service),
):
    """Create a new lead"""
    return LeadResponse.from_lead(service.create_lead(data, current_user))


@router.get("/{lead_id}", response_model=LeadResponse)
async def get_lead(
    lead_id: str,
    current_user: User = Depends(get_current_user),
    service: LeadService = Depends(get_lead_service),
):
    return LeadResponse.from_lead(service.get_lead(lead_id))


@router.get("/{lead_id}/files", response_model=list[FileResponse])
async def get_lead_files(
    lead_id: str,
    current_user: User = Depends(get_current_user),
    storage: DualFileStorageService = Depends(get_dual_storage_service),
):
    """All files recorded for a lead, newest first"""
    return [FileResponse.from_record(f) for f in storage.list_lead_files(lead_id)]


@router.delete("/{lead_id}")
async def delete_lead(
    lead_id: str,
    data: Optional[LeadDeleteRequest] = None,
    current_user: User = Depends(get_current_user),
    service: LeadService = Depends(get_lead_service),
    context: NotificationContext = Depends(get_notification_context),
    db: Session = Depends(get_db),
):
    """
    Delete a lead.

    Admins delete immediately and the other admins are notified. Everyone
    else gets a deletion request that waits for admin approval.
    """
    reason = data.reason if data else None

    if not current_user.is_admin:
        approvals = DeletionApprovalService(db)
        result = approvals.create_deletion_request(lead_id, current_user, reason)
        if not result["success"]:
            return failure_response(result)
        await send_deletion_request_notification(db, deletion_request_payload(result["data"]), context)
        return JSONResponse(
            status_code=202,
            content={
                "success": True,
                "requiresApproval": True,
                "requestId": result["data"].id,
                "message": "Deletion request created successfully. Waiting for admin approval.",
            },
        )

    result = service.delete_lead(lead_id, current_user, reason=reason)
    if not result["success"]:
        return failure_response(result)

    payload = dict(result["lead"])
    payload["deletedBy"] = {"id": current_user.id, "name": current_user.display_name, "email": current_user.email}
    payload["deletionReason"] = reason
    await send_lead_deletion_notification(db, payload, context)

    return {"success": True, "requiresApproval": False, "message": result["message"]}

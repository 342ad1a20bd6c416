"""Deletion request router - Request, approve and reject lead deletions"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
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
from ..leads.service import LeadService
from ..notifications.service import get_notification_context
from .schemas import DeletionRequestCreate, DeletionRequestResponse, RejectDeletionRequest
from .service import DeletionApprovalService, deletion_request_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/deletion-requests", tags=["Deletion Requests"])


def get_deletion_approval_service(db: Session = Depends(get_db)) -> DeletionApprovalService:
    """Dependency injection for DeletionApprovalService"""
    return DeletionApprovalService(db)


@router.get("", response_model=list[DeletionRequestResponse])
async def get_pending_deletion_requests(
    current_user: User = Depends(get_current_user),
    service: DeletionApprovalService = Depends(get_deletion_approval_service),
):
    """Pending deletion requests, newest first (admins only)"""
    if not service.can_approve_deletions(current_user.id):
        raise HTTPException(status_code=403, detail="Forbidden")
    return [DeletionRequestResponse.from_request(r) for r in service.get_pending_deletion_requests()]


@router.post("")
async def create_deletion_request(
    data: DeletionRequestCreate,
    current_user: User = Depends(get_current_user),
    service: DeletionApprovalService = Depends(get_deletion_approval_service),
    context: NotificationContext = Depends(get_notification_context),
    db: Session = Depends(get_db),
):
    """Ask an administrator to delete a lead"""
    result = service.create_deletion_request(data.leadId, current_user, data.reason)
    if not result["success"]:
        return failure_response(result)

    request = result["data"]
    await send_deletion_request_notification(db, deletion_request_payload(request), context)

    return {
        "success": True,
        "message": "Deletion request created successfully. Waiting for admin approval.",
        "data": DeletionRequestResponse.from_request(request).model_dump(mode="json"),
    }


@router.post("/{request_id}/approve")
async def approve_deletion_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    service: DeletionApprovalService = Depends(get_deletion_approval_service),
    context: NotificationContext = Depends(get_notification_context),
    db: Session = Depends(get_db),
):
    """Approve a deletion request, delete the lead and notify the admins"""
    result = service.approve_deletion_request(request_id, current_user)
    if not result["success"]:
        return failure_response(result)

    # The lead is about to disappear; the request row keeps its details
    request = service.get_deletion_request(request_id)
    payload = deletion_request_payload(request)

    delete_result = LeadService(db).delete_lead(request.lead_id, current_user, reason=request.reason)
    if not delete_result["success"]:
        logger.error(f"❌ Deletion request {request_id} approved but lead delete failed: {delete_result['message']}")
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": f"Request approved but lead deletion failed: {delete_result['message']}",
            },
        )

    payload["deletedBy"] = {"id": current_user.id, "name": current_user.display_name, "email": current_user.email}
    payload["deletionReason"] = request.reason
    deliveries = await send_lead_deletion_notification(db, payload, context)

    failed = sum(1 for d in deliveries if not d.success)
    message = "Deletion request approved and lead deleted successfully"
    if failed:
        message += f" ({failed} notification(s) could not be delivered)"
    return {"success": True, "message": message}


@router.post("/{request_id}/reject")
async def reject_deletion_request(
    request_id: str,
    data: Optional[RejectDeletionRequest] = None,
    current_user: User = Depends(get_current_user),
    service: DeletionApprovalService = Depends(get_deletion_approval_service),
):
    """Reject a deletion request with a reason; the lead is kept"""
    reason = data.rejectionReason if data else None
    result = service.reject_deletion_request(request_id, current_user, reason)
    if not result["success"]:
        return failure_response(result)
    return {"success": True, "message": "Deletion request rejected successfully"}

"""
Deletion approval workflow - Business logic for lead deletion requests

PENDING -> APPROVED or PENDING -> REJECTED, exactly once, by an admin.
Approval does not delete the lead; the route orchestrates that step.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import ActivityType, DeletionRequest, DeletionRequestStatus, User, utcnow
from ...shared.results import ErrorCode, failure
from ..activities.repository import ActivityRepository
from ..leads.repository import LeadRepository
from .repository import DeletionRequestRepository

logger = logging.getLogger(__name__)


class DeletionApprovalService:
    """Service layer for the lead deletion approval workflow"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = DeletionRequestRepository()
        self.leads = LeadRepository()

    def can_approve_deletions(self, user_id: str) -> bool:
        """Only administrators may approve or reject deletion requests"""
        user = self.db.query(User).filter(User.id == user_id).first()
        return bool(user and user.is_admin)

    def get_pending_deletion_requests(self) -> list[DeletionRequest]:
        return self.repo.get_pending_requests(self.db)

    def get_deletion_request(self, request_id: str) -> Optional[DeletionRequest]:
        return self.repo.get_request_by_id(self.db, request_id)

    def create_deletion_request(self, lead_id: str, requester: User, reason: Optional[str] = None) -> dict:
        """Record the intent to delete a lead, with a snapshot of the lead for the audit trail"""
        if not lead_id:
            return failure("Lead ID is required", ErrorCode.VALIDATION, key="error")

        lead = self.leads.get_lead_by_id(self.db, lead_id)
        if not lead:
            return failure("Lead not found", ErrorCode.NOT_FOUND, key="error")

        if self.repo.get_pending_request_for_lead(self.db, lead_id):
            return failure("A deletion request for this lead is already pending", ErrorCode.VALIDATION, key="error")

        reason = reason.strip() if reason else None
        try:
            request = self.repo.add_request(
                self.db,
                lead_id=lead.id,
                lead_name=lead.full_name or "Unknown Lead",
                lead_email=lead.email,
                lead_address=lead.address,
                lead_status=lead.status,
                lead_created_at=lead.created_at,
                requested_by_id=requester.id,
                requested_by_name=requester.display_name,
                requested_by_email=requester.email,
                reason=reason,
                status=DeletionRequestStatus.PENDING.value,
            )
            ActivityRepository.create_activity(
                self.db,
                ActivityType.DELETION_REQUESTED,
                title=f"Deletion requested: {lead.full_name or 'Unknown Lead'}",
                description=reason,
                user_id=requester.id,
                lead_id=lead.id,
                commit=False,
            )
            self.db.commit()
            self.db.refresh(request)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create deletion request for lead {lead_id}: {e}")
            return failure("Failed to create deletion request", ErrorCode.BACKEND_FAILURE, key="error")

        logger.info(f"🗂️ Deletion request {request.id} created for lead {lead_id} by {requester.email}")
        return {"success": True, "data": request}

    def approve_deletion_request(self, request_id: str, approver: User) -> dict:
        """Mark a pending request APPROVED. The lead itself is deleted by the caller."""
        if not self.can_approve_deletions(approver.id):
            logger.warning(f"⚠️ User {approver.email} is not allowed to approve deletion requests")
            return failure("Only administrators can approve deletion requests", ErrorCode.UNAUTHORIZED, key="error")

        result = self._resolve(request_id, approver, DeletionRequestStatus.APPROVED)
        if result["success"]:
            logger.info(f"✅ Deletion request {request_id} approved by {approver.email}")
        return result

    def reject_deletion_request(self, request_id: str, approver: User, reason: Optional[str]) -> dict:
        """Mark a pending request REJECTED. A rejection reason is required."""
        if not self.can_approve_deletions(approver.id):
            logger.warning(f"⚠️ User {approver.email} is not allowed to reject deletion requests")
            return failure("Only administrators can reject deletion requests", ErrorCode.UNAUTHORIZED, key="error")

        if not reason or not reason.strip():
            return failure("Rejection reason is required", ErrorCode.VALIDATION, key="error")

        result = self._resolve(request_id, approver, DeletionRequestStatus.REJECTED, rejection_reason=reason.strip())
        if result["success"]:
            logger.info(f"🚫 Deletion request {request_id} rejected by {approver.email}")
        return result

    def _resolve(
        self,
        request_id: str,
        approver: User,
        status: DeletionRequestStatus,
        rejection_reason: Optional[str] = None,
    ) -> dict:
        updates = {
            "status": status.value,
            "resolved_by_id": approver.id,
            "resolved_by_name": approver.display_name,
            "resolved_by_email": approver.email,
            "resolved_at": utcnow(),
        }
        if rejection_reason:
            updates["rejection_reason"] = rejection_reason

        try:
            updated = self.repo.resolve_pending(self.db, request_id, **updates)
            if updated and status == DeletionRequestStatus.REJECTED:
                request = self.repo.get_request_by_id(self.db, request_id)
                ActivityRepository.create_activity(
                    self.db,
                    ActivityType.DELETION_REJECTED,
                    title=f"Deletion rejected: {request.lead_name}",
                    description=rejection_reason,
                    user_id=approver.id,
                    lead_id=request.lead_id,
                    commit=False,
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to resolve deletion request {request_id}: {e}")
            return failure("Failed to update deletion request", ErrorCode.BACKEND_FAILURE, key="error")

        if not updated:
            if self.repo.get_request_by_id(self.db, request_id) is None:
                return failure("Deletion request not found", ErrorCode.NOT_FOUND, key="error")
            logger.warning(f"⚠️ Deletion request {request_id} was already resolved")
            return failure("Request is not pending", ErrorCode.ALREADY_RESOLVED, key="error")

        return {"success": True}


def deletion_request_payload(request: DeletionRequest) -> dict:
    """Notification payload built from the request's lead snapshot"""
    return {
        "requestId": request.id,
        "leadId": request.lead_id,
        "leadName": request.lead_name,
        "leadEmail": request.lead_email,
        "leadAddress": request.lead_address,
        "leadStatus": request.lead_status,
        "createdAt": request.lead_created_at.isoformat() if request.lead_created_at else None,
        "requestedBy": {
            "id": request.requested_by_id,
            "name": request.requested_by_name,
            "email": request.requested_by_email,
        },
        "reason": request.reason,
    }

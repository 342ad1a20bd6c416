"""Lead service - Business logic for lead operations"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import ActivityType, Lead, User
from ...shared.results import ErrorCode, failure
from ..activities.repository import ActivityRepository
from .repository import LeadRepository
from .schemas import LeadCreate

logger = logging.getLogger(__name__)


def lead_snapshot(lead: Lead) -> dict:
    """Lead fields kept for audit and notifications once the lead itself is gone"""
    return {
        "leadId": lead.id,
        "leadName": lead.full_name,
        "leadEmail": lead.email,
        "leadAddress": lead.address,
        "leadStatus": lead.status,
        "createdAt": lead.created_at.isoformat() if lead.created_at else None,
    }


class LeadService:
    """Service layer for lead business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = LeadRepository()

    def get_leads(self, status: Optional[str] = None, limit: int = 100, offset: int = 0) -> list[Lead]:
        return self.repo.get_leads(self.db, status=status, limit=limit, offset=offset)

    def get_lead(self, lead_id: str) -> Lead:
        """Get a specific lead"""
        lead = self.repo.get_lead_by_id(self.db, lead_id)
        if not lead:
            raise HTTPException(status_code=404, detail="Lead not found")
        return lead

    def create_lead(self, data: LeadCreate, user: User) -> Lead:
        """Create a new lead and record it in the activity feed"""
        logger.info(f"📥 Creating lead for user_id: {user.id}")

        lead = self.repo.create_lead(
            self.db,
            first_name=data.firstName,
            last_name=data.lastName,
            email=data.email,
            phone=data.phone,
            address=data.address,
            status=data.status or "follow_ups",
            claim_number=data.claimNumber,
            assigned_to_id=data.assignedToId,
            notes=data.notes,
        )

        ActivityRepository.create_activity(
            self.db,
            ActivityType.LEAD_CREATED,
            title=f"Lead created: {lead.full_name}",
            user_id=user.id,
            lead_id=lead.id,
        )
        return lead

    def delete_lead(self, lead_id: str, actor: User, reason: Optional[str] = None) -> dict:
        """
        Permanently delete a lead and its file records.

        Remote blob and Drive objects are left in place; Drive doubles as the archive.
        Returns {success, message, lead?} where lead is the pre-deletion snapshot.
        """
        lead = self.repo.get_lead_by_id(self.db, lead_id)
        if not lead:
            logger.warning(f"⚠️ Delete requested for missing lead {lead_id}")
            return failure("Lead not found", ErrorCode.NOT_FOUND)

        snapshot = lead_snapshot(lead)
        try:
            self.db.delete(lead)
            ActivityRepository.create_activity(
                self.db,
                ActivityType.LEAD_DELETED,
                title=f"Lead deleted: {snapshot['leadName'] or 'Unknown Lead'}",
                description=reason,
                user_id=actor.id,
                lead_id=lead_id,
                extra=snapshot,
                commit=False,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to delete lead {lead_id}: {e}")
            return failure("Failed to delete lead", ErrorCode.BACKEND_FAILURE)

        logger.info(f"🗑️ Lead {lead_id} deleted by {actor.email}")
        return {"success": True, "message": "Lead deleted successfully", "lead": snapshot}

"""Lead repository - Database operations for leads"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Lead


class LeadRepository:
    """Repository for lead database operations"""

    @staticmethod
    def get_lead_by_id(db: Session, lead_id: str) -> Optional[Lead]:
        return db.query(Lead).filter(Lead.id == lead_id).first()

    @staticmethod
    def get_lead_by_claim_number(db: Session, claim_number: str) -> Optional[Lead]:
        return db.query(Lead).filter(Lead.claim_number == claim_number).first()

    @staticmethod
    def get_leads(db: Session, status: Optional[str] = None, limit: int = 100, offset: int = 0) -> list[Lead]:
        """Leads, newest first, optionally filtered by pipeline stage"""
        query = db.query(Lead)
        if status:
            query = query.filter(Lead.status == status)
        return query.order_by(Lead.created_at.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def create_lead(db: Session, **lead_data) -> Lead:
        lead = Lead(**lead_data)
        db.add(lead)
        db.commit()
        db.refresh(lead)
        return lead

    @staticmethod
    def set_drive_folder(db: Session, lead: Lead, folder_id: str) -> Lead:
        lead.google_drive_folder_id = folder_id
        db.commit()
        return lead

"""Lead domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email


class LeadCreate(BaseModel):
    """Schema for creating a new lead"""

    firstName: str
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: Optional[str] = None
    claimNumber: Optional[str] = None
    assignedToId: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("firstName")
    @classmethod
    def validate_first_name(cls, v):
        if not v or not v.strip():
            raise ValueError("First name is required")
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_lead_email(cls, v):
        if v:
            return validate_email(v)
        return v


class LeadResponse(BaseModel):
    """Schema for lead response"""

    id: str
    firstName: str
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: str
    claimNumber: Optional[str] = None
    assignedToId: Optional[str] = None
    googleDriveFolderId: Optional[str] = None
    notes: Optional[str] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_lead(cls, lead) -> "LeadResponse":
        return cls(
            id=lead.id,
            firstName=lead.first_name,
            lastName=lead.last_name,
            email=lead.email,
            phone=lead.phone,
            address=lead.address,
            status=lead.status,
            claimNumber=lead.claim_number,
            assignedToId=lead.assigned_to_id,
            googleDriveFolderId=lead.google_drive_folder_id,
            notes=lead.notes,
            createdAt=lead.created_at,
        )


class LeadDeleteRequest(BaseModel):
    """Optional body for DELETE /leads/{id}"""

    reason: Optional[str] = None

"""Deletion request domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class DeletionRequestCreate(BaseModel):
    leadId: str
    reason: Optional[str] = None


class RejectDeletionRequest(BaseModel):
    rejectionReason: Optional[str] = None


class Actor(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class DeletionRequestResponse(BaseModel):
    id: str
    leadId: str
    leadName: str
    leadEmail: Optional[str] = None
    leadAddress: Optional[str] = None
    leadStatus: Optional[str] = None
    requestedBy: Actor
    reason: Optional[str] = None
    status: str
    resolvedBy: Optional[Actor] = None
    rejectionReason: Optional[str] = None
    createdAt: Optional[datetime] = None
    resolvedAt: Optional[datetime] = None

    @classmethod
    def from_request(cls, request) -> "DeletionRequestResponse":
        resolved_by = None
        if request.resolved_by_id:
            resolved_by = Actor(
                id=request.resolved_by_id, name=request.resolved_by_name, email=request.resolved_by_email
            )
        return cls(
            id=request.id,
            leadId=request.lead_id,
            leadName=request.lead_name,
            leadEmail=request.lead_email,
            leadAddress=request.lead_address,
            leadStatus=request.lead_status,
            requestedBy=Actor(
                id=request.requested_by_id, name=request.requested_by_name, email=request.requested_by_email
            ),
            reason=request.reason,
            status=request.status,
            resolvedBy=resolved_by,
            rejectionReason=request.rejection_reason,
            createdAt=request.created_at,
            resolvedAt=request.resolved_at,
        )

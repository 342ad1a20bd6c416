"""Deletion request repository - Database operations for deletion requests"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import DeletionRequest, DeletionRequestStatus


class DeletionRequestRepository:
    """Repository for deletion request database operations"""

    @staticmethod
    def get_request_by_id(db: Session, request_id: str) -> Optional[DeletionRequest]:
        return db.query(DeletionRequest).filter(DeletionRequest.id == request_id).first()

    @staticmethod
    def get_pending_requests(db: Session) -> list[DeletionRequest]:
        """Pending requests, newest first"""
        return (
            db.query(DeletionRequest)
            .filter(DeletionRequest.status == DeletionRequestStatus.PENDING.value)
            .order_by(DeletionRequest.created_at.desc())
            .all()
        )

    @staticmethod
    def get_pending_request_for_lead(db: Session, lead_id: str) -> Optional[DeletionRequest]:
        return (
            db.query(DeletionRequest)
            .filter(
                DeletionRequest.lead_id == lead_id,
                DeletionRequest.status == DeletionRequestStatus.PENDING.value,
            )
            .first()
        )

    @staticmethod
    def add_request(db: Session, **request_data) -> DeletionRequest:
        """Stage a new request; the caller commits"""
        request = DeletionRequest(**request_data)
        db.add(request)
        return request

    @staticmethod
    def resolve_pending(db: Session, request_id: str, **updates) -> int:
        """
        Resolve a request only if it is still PENDING, in a single UPDATE.

        Returns the number of rows changed: 0 means the request is missing or
        someone else already resolved it.
        """
        updated = (
            db.query(DeletionRequest)
            .filter(
                DeletionRequest.id == request_id,
                DeletionRequest.status == DeletionRequestStatus.PENDING.value,
            )
            .update(updates, synchronize_session=False)
        )
        return updated

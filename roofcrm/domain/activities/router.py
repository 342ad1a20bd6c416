"""Activity router - Recent activity feed"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .repository import ActivityRepository
from .schemas import ActivityResponse

router = APIRouter(prefix="/activities", tags=["Activities"])


@router.get("/recent", response_model=list[ActivityResponse])
async def get_recent_activities(
    limit: int = Query(20, ge=1, le=100),
    lead_id: Optional[str] = Query(None, alias="leadId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Recent activity across all leads, or for one lead"""
    activities = ActivityRepository.get_recent_activities(db, limit=limit, lead_id=lead_id)
    return [
        ActivityResponse(
            id=a.id,
            type=a.type,
            title=a.title,
            description=a.description,
            userId=a.user_id,
            leadId=a.lead_id,
            createdAt=a.created_at,
        )
        for a in activities
    ]

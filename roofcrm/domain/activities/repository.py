"""Activity repository - Audit trail writes and reads"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Activity, ActivityType

logger = logging.getLogger(__name__)


class ActivityRepository:
    """Repository for activity database operations"""

    @staticmethod
    def create_activity(
        db: Session,
        activity_type: ActivityType,
        title: str,
        description: Optional[str] = None,
        user_id: Optional[str] = None,
        lead_id: Optional[str] = None,
        extra: Optional[dict] = None,
        commit: bool = True,
    ) -> Activity:
        """Create an activity. Pass commit=False to join the caller's transaction."""
        activity = Activity(
            type=activity_type.value,
            title=title,
            description=description,
            user_id=user_id,
            lead_id=lead_id,
            extra=extra,
        )
        db.add(activity)
        if commit:
            db.commit()
            db.refresh(activity)
        logger.debug(f"📝 Activity recorded: {activity_type.value} - {title}")
        return activity

    @staticmethod
    def get_recent_activities(db: Session, limit: int = 20, lead_id: Optional[str] = None) -> list[Activity]:
        """Most recent activities, newest first"""
        query = db.query(Activity)
        if lead_id:
            query = query.filter(Activity.lead_id == lead_id)
        return query.order_by(Activity.created_at.desc()).limit(limit).all()

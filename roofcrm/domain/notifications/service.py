"""Notification domain - request-scoped notification context and chat file sync"""

import logging
import re
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import ActivityType, GoogleCredential, Lead, User
from ...services.gmail_service import GmailService
from ...services.google_auth import get_user_access_token, refresh_access_token
from ...services.notification_service import NotificationContext, NotificationEvent
from ...shared.results import ErrorCode, failure
from ..activities.repository import ActivityRepository
from ..files.repository import FileRepository
from ..leads.repository import LeadRepository
from .schemas import ChatFileUpload

logger = logging.getLogger(__name__)

# Chat space display names: "Lead: Jane Doe - Claim#ABC123 - <lead uuid>"
SPACE_WITH_CLAIM = re.compile(r"Lead: .* - Claim#([A-Z0-9]+) - ([a-f0-9-]+)")
# Spaces created before claim numbers were added: "Lead: Jane Doe - <lead uuid>"
SPACE_LEGACY = re.compile(r"Lead: .* - ([a-f0-9-]+)")


async def build_notification_context(
    db: Session, actor: User, oauth_config=None, chat=None, slack=None
) -> NotificationContext:
    """Notification context for an acting user. Gmail is only available if they connected Google."""
    gmail = None
    access_token = await get_user_access_token(db, actor, oauth_config)
    if access_token:

        async def refresh() -> Optional[str]:
            credential = db.query(GoogleCredential).filter(GoogleCredential.user_id == actor.id).first()
            if not credential:
                return None
            return await refresh_access_token(credential, db, oauth_config)

        gmail = GmailService(access_token, refresh_token=refresh)

    return NotificationContext(actor=actor, gmail=gmail, chat=chat, slack=slack)


async def get_notification_context(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationContext:
    """Dependency injection for the acting user's NotificationContext"""
    state = request.app.state
    return await build_notification_context(
        db,
        current_user,
        oauth_config=getattr(state, "google_oauth", None),
        chat=getattr(state, "google_chat", None),
        slack=getattr(state, "slack", None),
    )


def lead_id_from_space(space_id: str) -> tuple[Optional[str], Optional[str]]:
    """(claim_number, lead_id) parsed from a chat space name"""
    space_name = (space_id or "").split("/")[-1]
    match = SPACE_WITH_CLAIM.search(space_name)
    if match:
        return match.group(1), match.group(2)
    match = SPACE_LEGACY.search(space_name)
    if match:
        return None, match.group(1)
    return None, None


class ChatFileUploadService:
    """Records files shared in a lead's chat space. Notifies nobody; the activity feed is the record."""

    def __init__(self, db: Session):
        self.db = db
        self.leads = LeadRepository()
        self.files = FileRepository()

    def _resolve_lead(self, claim_number: Optional[str], lead_id: Optional[str]) -> Optional[Lead]:
        lead = None
        if claim_number:
            lead = self.leads.get_lead_by_claim_number(self.db, claim_number)
        if not lead and lead_id:
            lead = self.leads.get_lead_by_id(self.db, lead_id)
        return lead

    def record_chat_file_upload(self, data: ChatFileUpload) -> dict:
        claim_number, lead_id = lead_id_from_space(data.spaceId)
        if not lead_id:
            return failure("Could not identify lead from chat space", ErrorCode.VALIDATION)

        lead = self._resolve_lead(claim_number, lead_id)
        if not lead:
            return failure("Lead not found", ErrorCode.NOT_FOUND)

        try:
            record = self.files.add_file(
                self.db,
                lead_id=lead.id,
                name=data.fileName,
                drive_url=data.fileUrl,
                mime_type=data.fileType,
                size=data.fileSize or 0,
                category="chat",
                source="google_chat",
            )
            ActivityRepository.create_activity(
                self.db,
                ActivityType.FILE_UPLOADED,
                title=f"File shared in chat: {data.fileName}",
                description=f"Uploaded by {data.uploadedBy or 'Someone'} in Google Chat",
                lead_id=lead.id,
                extra={"source": "google_chat", "spaceId": data.spaceId},
                commit=False,
            )
            self.db.commit()
            self.db.refresh(record)
        except ValueError as e:
            # Raised by the storage location check when no URL survives
            self.db.rollback()
            logger.warning(f"⚠️ Rejected chat file upload for lead {lead.id}: {e}")
            return failure(str(e), ErrorCode.VALIDATION)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to record chat file upload for lead {lead.id}: {e}")
            return failure("Failed to process file upload", ErrorCode.BACKEND_FAILURE)

        logger.info(f"📎 {NotificationEvent.FILE_UPLOADED.value}: {data.fileName} synced from chat to lead {lead.id}")
        return {"success": True, "data": record, "message": "File uploaded and synced to CRM"}

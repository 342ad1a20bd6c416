"""Notification router - Bulletin board mentions and chat file sync"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.notification_service import NotificationContext, send_mention_notifications
from ...shared.results import failure_response
from ..files.schemas import FileResponse
from .schemas import ChatFileUpload, DeliveryResultResponse, MentionNotificationRequest
from .service import ChatFileUploadService, get_notification_context

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


def get_chat_file_upload_service(db: Session = Depends(get_db)) -> ChatFileUploadService:
    """Dependency injection for ChatFileUploadService"""
    return ChatFileUploadService(db)


@router.post("/bulletin-board/mention-notifications")
async def send_bulletin_board_mentions(
    data: MentionNotificationRequest,
    context: NotificationContext = Depends(get_notification_context),
):
    """Email every user tagged in a bulletin board message"""
    if not data.mentionedUsers:
        raise HTTPException(status_code=400, detail="No mentioned users")

    results = await send_mention_notifications(data.model_dump(), context)
    return {
        "success": True,
        "message": "Notifications sent",
        "results": [DeliveryResultResponse(**asdict(r)) for r in results],
    }


@router.post("/chat/file-upload")
async def chat_file_upload(
    data: ChatFileUpload,
    current_user: User = Depends(get_current_user),
    service: ChatFileUploadService = Depends(get_chat_file_upload_service),
):
    """Record a file shared in a lead's chat space against that lead"""
    logger.info(f"📎 Chat file upload reported by {current_user.email}: {data.fileName}")
    result = service.record_chat_file_upload(data)
    if not result["success"]:
        return failure_response(result)
    return {
        "success": True,
        "message": result["message"],
        "data": FileResponse.from_record(result["data"]).model_dump(mode="json"),
    }

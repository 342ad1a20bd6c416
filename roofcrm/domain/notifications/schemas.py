"""Notification domain schemas"""

from typing import Optional

from pydantic import BaseModel, field_validator


class MentionedUser(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    email: str


class MentionNotificationRequest(BaseModel):
    mentionedUsers: list[MentionedUser] = []
    senderName: Optional[str] = None
    messageContent: str = ""
    category: str = "general"
    messageId: Optional[str] = None


class ChatFileUpload(BaseModel):
    """File shared in a lead's Google Chat space"""

    spaceId: str
    fileName: str
    fileUrl: str
    fileType: Optional[str] = None
    fileSize: Optional[int] = None
    uploadedBy: Optional[str] = None

    @field_validator("spaceId", "fileName", "fileUrl")
    @classmethod
    def validate_required(cls, v):
        if not v or not v.strip():
            raise ValueError("Value is required")
        return v.strip()


class DeliveryResultResponse(BaseModel):
    recipient: str
    channel: str
    success: bool
    error: Optional[str] = None

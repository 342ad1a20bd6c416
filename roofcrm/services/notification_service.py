"""
Notification Fan-out Service
Delivers CRM event notices by Gmail (per recipient), Google Chat and Slack.

Best-effort by contract: every attempt is independent, failures are logged
with the recipient and returned as DeliveryResult entries, and nothing here
raises into the action that triggered the notification.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import FRONTEND_URL
from ..exceptions import NotificationDeliveryError
from ..models import User, UserRole
from .gmail_service import GmailService
from .google_chat_service import GoogleChatService
from .slack_service import SlackService

logger = logging.getLogger(__name__)

GMAIL = "gmail"
GOOGLE_CHAT = GoogleChatService.channel
SLACK = SlackService.channel

ALL_CHANNELS = (GMAIL, GOOGLE_CHAT, SLACK)

NO_GOOGLE_CREDENTIALS = "Acting user has no Google credentials"


class NotificationEvent(str, enum.Enum):
    DELETION_REQUESTED = "deletion_requested"
    DELETION_APPROVED = "deletion_approved"
    MENTION = "mention"
    FILE_UPLOADED = "file_uploaded"


@dataclass
class Recipient:
    email: Optional[str]
    name: Optional[str] = None
    slack_user_id: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "Recipient":
        return cls(email=user.email, name=user.name, slack_user_id=user.slack_user_id)

    @property
    def label(self) -> str:
        return self.email or self.name or "<unknown>"


@dataclass
class NotificationMessage:
    subject: str
    body: str
    chat_text: str
    # Fixed salutation; personalized per recipient when None
    greeting: Optional[str] = None

    def body_for(self, recipient: Recipient) -> str:
        salutation = self.greeting or f"Hi {recipient.name or recipient.email},"
        return f"{salutation}\n\n{self.body}"


@dataclass
class DeliveryResult:
    recipient: str
    channel: str
    success: bool
    error: Optional[str] = None


@dataclass
class NotificationContext:
    """Who triggered the event, and the channels available to reach people"""

    actor: User
    gmail: Optional[GmailService] = None
    chat: Optional[GoogleChatService] = None
    slack: Optional[SlackService] = None


async def dispatch(
    event: NotificationEvent,
    recipients: list[Recipient],
    message: NotificationMessage,
    context: NotificationContext,
    channels: Iterable[str] = (GMAIL,),
) -> list[DeliveryResult]:
    """
    Fan a message out to recipients over the requested channels

    Args:
        event: Event kind (for logging)
        recipients: People to email, one Gmail attempt each
        message: Rendered subject, body and chat text
        context: Acting user and channel adapters
        channels: Any of "gmail", "google_chat", "slack". Chat and Slack are
            team broadcasts: one post each, whatever the recipient count.

    Returns:
        One DeliveryResult per attempt. Never raises.
    """
    channels = set(channels)
    results: list[DeliveryResult] = []

    if GMAIL in channels:
        for recipient in recipients:
            results.append(await _send_gmail(event, recipient, message, context))

    if GOOGLE_CHAT in channels:
        if context.chat is not None:
            results.append(await _post_broadcast(event, context.chat, message.chat_text))
        else:
            logger.debug(f"ℹ️ Google Chat not configured, skipping {event.value} broadcast")

    if SLACK in channels:
        if context.slack is not None:
            mentions = " ".join(f"<@{r.slack_user_id}>" for r in recipients if r.slack_user_id)
            text = f"{message.chat_text}\n{mentions}" if mentions else message.chat_text
            results.append(await _post_broadcast(event, context.slack, text))
        else:
            logger.debug(f"ℹ️ Slack not configured, skipping {event.value} broadcast")

    sent = sum(1 for r in results if r.success)
    logger.info(f"📣 {event.value}: {sent}/{len(results)} notification(s) delivered")
    return results


async def _send_gmail(
    event: NotificationEvent, recipient: Recipient, message: NotificationMessage, context: NotificationContext
) -> DeliveryResult:
    if context.gmail is None:
        logger.warning(f"⚠️ Cannot email {recipient.label} about {event.value}: {NO_GOOGLE_CREDENTIALS}")
        return DeliveryResult(recipient.label, GMAIL, False, NO_GOOGLE_CREDENTIALS)

    try:
        await context.gmail.send_email(
            to=recipient.email, subject=message.subject, body=message.body_for(recipient)
        )
        logger.info(f"📧 {event.value} notification sent to {recipient.label}")
        return DeliveryResult(recipient.label, GMAIL, True)
    except NotificationDeliveryError as e:
        logger.error(f"❌ Failed to send {event.value} notification to {recipient.label}: {e}")
        return DeliveryResult(recipient.label, GMAIL, False, str(e))
    except Exception as e:
        logger.error(f"❌ Unexpected error emailing {recipient.label} about {event.value}: {e}")
        return DeliveryResult(recipient.label, GMAIL, False, str(e))


async def _post_broadcast(event: NotificationEvent, adapter, text: str) -> DeliveryResult:
    try:
        await adapter.post_message(text)
        return DeliveryResult(adapter.target, adapter.channel, True)
    except NotificationDeliveryError as e:
        logger.error(f"❌ Failed to post {event.value} notice to {adapter.channel} ({adapter.target}): {e}")
        return DeliveryResult(adapter.target, adapter.channel, False, str(e))
    except Exception as e:
        logger.error(f"❌ Unexpected error posting {event.value} notice to {adapter.channel}: {e}")
        return DeliveryResult(adapter.target, adapter.channel, False, str(e))


def get_admin_users(db: Session) -> list[User]:
    """All users with the ADMIN role"""
    return db.query(User).filter(User.role == UserRole.ADMIN.value).all()


# ============================================================================
# MESSAGE TEMPLATES
# ============================================================================


def _person(person: Optional[dict]) -> tuple[str, str]:
    person = person or {}
    return person.get("name") or "Someone", person.get("email") or "No email"


def deletion_request_message(payload: dict) -> NotificationMessage:
    lead_name = payload.get("leadName") or "Unknown Lead"
    requester_name, requester_email = _person(payload.get("requestedBy"))
    reason = payload.get("reason")

    body = f"""{requester_name} has requested the deletion of a lead. The lead will stay in the CRM until an administrator approves the request.

**Lead Details:**
- Name: {lead_name}
- Email: {payload.get("leadEmail") or "No email"}
- Address: {payload.get("leadAddress") or "No address"}
- Status: {payload.get("leadStatus") or "Unknown"}

**Request Details:**
- Requested by: {requester_name} ({requester_email})
- Reason: {reason or "No reason given"}

Review pending requests at: {FRONTEND_URL}/admin/deletion-requests

This is an automated notification from the CRM system.

Best regards,
CRM Notification System"""

    return NotificationMessage(
        subject=f"🗂️ Lead Deletion Request: {lead_name}",
        body=body,
        chat_text=f"🗂️ {requester_name} requested deletion of lead *{lead_name}*"
        + (f": {reason}" if reason else ""),
        greeting="Hi Admin,",
    )


def lead_deletion_message(payload: dict) -> NotificationMessage:
    lead_name = payload.get("leadName") or "Unknown Lead"
    deleted_by = payload.get("deletedBy") or {}
    deleter_name, deleter_email = _person(deleted_by)
    reason = payload.get("deletionReason")
    deletion_time = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    reason_line = f"\n- Reason: {reason}" if reason else ""

    body = f"""A lead has been deleted from the CRM system.

**Lead Details:**
- Name: {lead_name}
- Email: {payload.get("leadEmail") or "No email"}
- Address: {payload.get("leadAddress") or "No address"}
- Status: {payload.get("leadStatus") or "Unknown"}
- Created: {payload.get("createdAt") or "Unknown"}

**Deletion Details:**
- Deleted by: {deleter_name} ({deleter_email})
- Deletion time: {deletion_time}{reason_line}

**Action Required:**
Please review this deletion to ensure it was appropriate. If this was an error, you may need to restore the lead from backups or contact the user who performed the deletion.

**System Information:**
- Lead ID: {payload.get("leadId") or "Unknown"}
- Deleted by User ID: {deleted_by.get("id") or "Unknown"}

This is an automated notification from the CRM system.

Best regards,
CRM Notification System"""

    return NotificationMessage(
        subject=f"🚨 Lead Deletion Alert: {lead_name}",
        body=body,
        chat_text=f"🚨 Lead *{lead_name}* was deleted by {deleter_name}",
        greeting="Hi Admin,",
    )


def mention_message(payload: dict) -> NotificationMessage:
    sender_name = payload.get("senderName") or "Someone"
    category = (payload.get("category") or "general").capitalize()
    content = payload.get("messageContent") or ""

    body = f"""{sender_name} mentioned you in a {category} bulletin board message:

"{content}"

You can view the bulletin board at: {FRONTEND_URL}/dashboard?tab=bulletin

Best regards,
CRM Notification System"""

    return NotificationMessage(
        subject=f"You were mentioned in a {category} bulletin board message",
        body=body,
        chat_text=f"{sender_name} mentioned you: {content}",
    )


# ============================================================================
# EVENT NOTIFICATIONS
# ============================================================================


async def _notify_admins(
    db: Session, event: NotificationEvent, message: NotificationMessage, context: NotificationContext
) -> list[DeliveryResult]:
    try:
        admins = get_admin_users(db)
    except SQLAlchemyError as e:
        logger.error(f"❌ Could not load admin users for {event.value} notification: {e}")
        return []

    if not admins:
        logger.info(f"ℹ️ No admin users found to notify about {event.value}")
        return []

    return await dispatch(event, [Recipient.from_user(a) for a in admins], message, context, ALL_CHANNELS)


async def send_deletion_request_notification(
    db: Session, payload: dict, context: NotificationContext
) -> list[DeliveryResult]:
    """Tell every admin that a lead deletion is waiting for approval"""
    return await _notify_admins(db, NotificationEvent.DELETION_REQUESTED, deletion_request_message(payload), context)


async def send_lead_deletion_notification(
    db: Session, payload: dict, context: NotificationContext
) -> list[DeliveryResult]:
    """Tell every admin that a lead was deleted"""
    return await _notify_admins(db, NotificationEvent.DELETION_APPROVED, lead_deletion_message(payload), context)


async def send_mention_notifications(payload: dict, context: NotificationContext) -> list[DeliveryResult]:
    """Email each user tagged in a bulletin board message"""
    recipients = [
        Recipient(email=user.get("email"), name=user.get("name"))
        for user in payload.get("mentionedUsers") or []
    ]
    if not recipients:
        return []
    return await dispatch(NotificationEvent.MENTION, recipients, mention_message(payload), context, (GMAIL,))

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import relationship

from .database import Base


def generate_id():
    """Generate a unique string primary key"""
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    SALES_REP = "SALES_REP"
    USER = "USER"


class StorageLocation(str, enum.Enum):
    BLOB_ONLY = "BLOB_ONLY"
    DRIVE_ONLY = "DRIVE_ONLY"
    DUAL = "DUAL"


class DeletionRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ActivityType(str, enum.Enum):
    LEAD_CREATED = "LEAD_CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    NOTE_ADDED = "NOTE_ADDED"
    FILE_UPLOADED = "FILE_UPLOADED"
    DELETION_REQUESTED = "DELETION_REQUESTED"
    DELETION_REJECTED = "DELETION_REJECTED"
    LEAD_DELETED = "LEAD_DELETED"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    role = Column(String(20), default=UserRole.USER.value, nullable=False)
    slack_user_id = Column(String(50), nullable=True)  # Used for Slack @mentions
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    google_credential = relationship(
        "GoogleCredential", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def display_name(self) -> str:
        return self.name or self.email


class GoogleCredential(Base):
    """User-delegated Google OAuth tokens (encrypted), used to send Gmail on the user's behalf"""

    __tablename__ = "google_credentials"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=False)

    google_user_email = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="google_credential")


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=generate_id)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    # Pipeline stage: follow_ups, signed_contract, scheduled, colors, acv, job,
    # completed_jobs, zero_balance, denied
    status = Column(String(50), default="follow_ups", nullable=False)
    claim_number = Column(String(100), nullable=True, index=True)
    assigned_to_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    google_drive_folder_id = Column(String(255), nullable=True)  # Per-lead folder on the shared Drive
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    assigned_to = relationship("User")
    files = relationship(
        "FileRecord",
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="FileRecord.created_at.desc()",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class FileRecord(Base):
    __tablename__ = "files"
    __table_args__ = (
        # At least one backend must hold the file
        CheckConstraint(
            "blob_url IS NOT NULL OR drive_url IS NOT NULL", name="ck_files_has_storage_url"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(500), nullable=False)
    blob_url = Column(String(1000), nullable=True)
    blob_key = Column(String(500), nullable=True)  # R2 object key
    drive_url = Column(String(1000), nullable=True)  # webViewLink
    drive_file_id = Column(String(255), nullable=True)
    mime_type = Column(String(255), nullable=True)
    size = Column(Integer, default=0, nullable=False)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    uploaded_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    source = Column(String(50), default="upload", nullable=False)  # upload, google_chat
    storage_location = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    lead = relationship("Lead", back_populates="files")
    uploaded_by = relationship("User")


def derive_storage_location(blob_url, drive_url) -> StorageLocation:
    """Storage location is always a function of which URLs are present"""
    if blob_url and drive_url:
        return StorageLocation.DUAL
    if blob_url:
        return StorageLocation.BLOB_ONLY
    if drive_url:
        return StorageLocation.DRIVE_ONLY
    raise ValueError("A file record needs a blob URL or a Drive URL")


@event.listens_for(FileRecord, "before_insert")
@event.listens_for(FileRecord, "before_update")
def _sync_storage_location(_mapper, _connection, target: FileRecord):
    target.storage_location = derive_storage_location(target.blob_url, target.drive_url).value


class DeletionRequest(Base):
    __tablename__ = "deletion_requests"

    id = Column(String(36), primary_key=True, default=generate_id)
    # Plain reference, not a foreign key: the request outlives the lead
    lead_id = Column(String(36), nullable=False, index=True)
    lead_name = Column(String(255), nullable=False)
    lead_email = Column(String(255), nullable=True)
    lead_address = Column(String(500), nullable=True)
    lead_status = Column(String(50), nullable=True)
    lead_created_at = Column(DateTime(timezone=True), nullable=True)

    requested_by_id = Column(String(36), nullable=False)
    requested_by_name = Column(String(255), nullable=False)
    requested_by_email = Column(String(255), nullable=True)
    reason = Column(Text, nullable=True)

    status = Column(String(20), default=DeletionRequestStatus.PENDING.value, nullable=False, index=True)

    # Approver or rejecter
    resolved_by_id = Column(String(36), nullable=True)
    resolved_by_name = Column(String(255), nullable=True)
    resolved_by_email = Column(String(255), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)


class Activity(Base):
    """Durable audit trail, independent of notification delivery"""

    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=generate_id)
    type = Column(String(50), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    user_id = Column(String(36), nullable=True)  # None for system / external sources
    # Plain reference so the trail survives lead deletion
    lead_id = Column(String(36), nullable=True, index=True)
    extra = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

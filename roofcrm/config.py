import os
from pathlib import Path
from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./roofcrm.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Frontend base URL for links in notifications
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Cloudflare R2 Configuration (primary blob storage)
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "roofcrm-files")
# Public (CDN) base URL the bucket is served from, e.g. https://files.example.com
R2_PUBLIC_BASE_URL = os.getenv("R2_PUBLIC_BASE_URL")

# Google Service Account (secondary storage - shared Drive)
GOOGLE_SA_EMAIL = os.getenv("GOOGLE_SA_EMAIL")
GOOGLE_SA_PRIVATE_KEY = os.getenv("GOOGLE_SA_PRIVATE_KEY")
SHARED_DRIVE_ID = os.getenv("SHARED_DRIVE_ID")

# Google OAuth (user-delegated Gmail access)
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")

# Team messaging
SLACK_BOT_TOKEN = os.getenv("SLACK_BOT_TOKEN")
SLACK_NOTIFICATIONS_CHANNEL = os.getenv("SLACK_NOTIFICATIONS_CHANNEL")
GOOGLE_CHAT_WEBHOOK_URL = os.getenv("GOOGLE_CHAT_WEBHOOK_URL")

# HTTP timeout for outbound SaaS calls (seconds)
EXTERNAL_API_TIMEOUT = float(os.getenv("EXTERNAL_API_TIMEOUT", "30"))


# ============================================================================
# PER-ADAPTER CONFIGURATION
# ============================================================================
# Each adapter gets one validated config object, built once at startup.
# from_env() returns None when the adapter is not configured.


class BlobStorageConfig(BaseModel):
    """Cloudflare R2 bucket used as the primary file store"""

    account_id: str
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    public_base_url: str

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    @property
    def endpoint_url(self) -> str:
        return f"https://{self.account_id}.r2.cloudflarestorage.com"

    @classmethod
    def from_env(cls) -> Optional["BlobStorageConfig"]:
        if not (R2_ACCOUNT_ID and R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY):
            return None
        return cls(
            account_id=R2_ACCOUNT_ID,
            access_key_id=R2_ACCESS_KEY_ID,
            secret_access_key=R2_SECRET_ACCESS_KEY,
            bucket_name=R2_BUCKET_NAME,
            public_base_url=R2_PUBLIC_BASE_URL or f"https://{R2_BUCKET_NAME}.r2.dev",
        )


class DriveServiceAccountConfig(BaseModel):
    """Service account with write access to the shared Drive folder"""

    client_email: str
    private_key: str
    shared_drive_id: str
    scopes: list[str] = ["https://www.googleapis.com/auth/drive"]

    @field_validator("private_key")
    @classmethod
    def validate_private_key(cls, v):
        # Keys pasted into env files usually carry literal "\n"
        v = v.replace("\\n", "\n")
        try:
            serialization.load_pem_private_key(v.encode(), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise ValueError("Service account private key is not a valid unencrypted PEM key") from e
        return v

    @field_validator("client_email")
    @classmethod
    def validate_client_email(cls, v):
        if "@" not in v:
            raise ValueError("Service account email is invalid")
        return v

    @classmethod
    def from_env(cls) -> Optional["DriveServiceAccountConfig"]:
        if not (GOOGLE_SA_EMAIL and GOOGLE_SA_PRIVATE_KEY and SHARED_DRIVE_ID):
            return None
        return cls(
            client_email=GOOGLE_SA_EMAIL,
            private_key=GOOGLE_SA_PRIVATE_KEY,
            shared_drive_id=SHARED_DRIVE_ID,
        )


class GoogleOAuthConfig(BaseModel):
    """OAuth client used to refresh user-delegated Google tokens"""

    client_id: str
    client_secret: str

    @classmethod
    def from_env(cls) -> Optional["GoogleOAuthConfig"]:
        if not (GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET):
            return None
        return cls(client_id=GOOGLE_CLIENT_ID, client_secret=GOOGLE_CLIENT_SECRET)


class SlackConfig(BaseModel):
    bot_token: str
    notifications_channel: str

    @field_validator("bot_token")
    @classmethod
    def validate_bot_token(cls, v):
        if not v.startswith("xoxb-"):
            raise ValueError("Slack bot token must be a bot token (xoxb-...)")
        return v

    @classmethod
    def from_env(cls) -> Optional["SlackConfig"]:
        if not (SLACK_BOT_TOKEN and SLACK_NOTIFICATIONS_CHANNEL):
            return None
        return cls(bot_token=SLACK_BOT_TOKEN, notifications_channel=SLACK_NOTIFICATIONS_CHANNEL)


class GoogleChatConfig(BaseModel):
    webhook_url: str

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v):
        if not v.startswith("https://chat.googleapis.com/"):
            raise ValueError("Google Chat webhook must be a chat.googleapis.com URL")
        return v

    @classmethod
    def from_env(cls) -> Optional["GoogleChatConfig"]:
        if not GOOGLE_CHAT_WEBHOOK_URL:
            return None
        return cls(webhook_url=GOOGLE_CHAT_WEBHOOK_URL)

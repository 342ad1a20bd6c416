"""
Google Auth Service
User-delegated OAuth tokens (stored encrypted, refreshed on demand) and
service-account access tokens for the shared Drive
"""
import base64
import hashlib
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from cryptography.fernet import Fernet, InvalidToken
from jose import jwt as jose_jwt
from sqlalchemy.orm import Session

from ..config import EXTERNAL_API_TIMEOUT, SECRET_KEY, DriveServiceAccountConfig, GoogleOAuthConfig
from ..models import GoogleCredential, User

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

# Refresh tokens this long before they actually expire
EXPIRY_MARGIN = timedelta(minutes=5)


def _cipher() -> Fernet:
    key = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(key)


def encrypt_token(token: str) -> str:
    return _cipher().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    return _cipher().decrypt(encrypted.encode()).decode()


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def store_google_tokens(
    db: Session,
    user: User,
    access_token: str,
    refresh_token: Optional[str],
    expires_in: int = 3600,
    google_user_email: Optional[str] = None,
) -> GoogleCredential:
    """Create or update the encrypted Google credential for a user"""
    credential = db.query(GoogleCredential).filter(GoogleCredential.user_id == user.id).first()
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

    if credential is None:
        credential = GoogleCredential(user_id=user.id)
        db.add(credential)

    credential.access_token = encrypt_token(access_token)
    # Google only returns a refresh token on first consent; keep the old one otherwise
    if refresh_token:
        credential.refresh_token = encrypt_token(refresh_token)
    credential.token_expires_at = expires_at
    if google_user_email:
        credential.google_user_email = google_user_email

    db.commit()
    db.refresh(credential)
    logger.info(f"✅ Stored Google credentials for user {user.id}")
    return credential


async def refresh_access_token(
    credential: GoogleCredential,
    db: Session,
    oauth_config: Optional[GoogleOAuthConfig],
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """Exchange the stored refresh token for a new access token. None on failure."""
    if not oauth_config or not credential.refresh_token:
        logger.warning(f"⚠️ Cannot refresh Google token for user {credential.user_id}: no refresh path")
        return None

    try:
        refresh_token = decrypt_token(credential.refresh_token)
        data = {
            "client_id": oauth_config.client_id,
            "client_secret": oauth_config.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        if client is not None:
            response = await client.post(GOOGLE_TOKEN_URL, data=data)
        else:
            async with httpx.AsyncClient(timeout=EXTERNAL_API_TIMEOUT) as http:
                response = await http.post(GOOGLE_TOKEN_URL, data=data)

        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            return None

        tokens = response.json()
        new_access_token = tokens.get("access_token")
        expires_in = tokens.get("expires_in", 3600)

        if not new_access_token:
            logger.error("❌ No access token in refresh response")
            return None

        credential.access_token = encrypt_token(new_access_token)
        credential.token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        db.commit()

        logger.info(f"✅ Google token refreshed for user {credential.user_id}")
        return new_access_token

    except (InvalidToken, httpx.HTTPError, ValueError) as e:
        # ValueError: token endpoint answered with something other than JSON
        logger.error(f"❌ Error refreshing Google token: {str(e)}")
        return None


async def get_valid_access_token(
    credential: GoogleCredential, db: Session, oauth_config: Optional[GoogleOAuthConfig]
) -> Optional[str]:
    """
    Get a valid access token, refreshing if necessary
    Returns None if refresh fails
    """
    if _as_aware(credential.token_expires_at) <= datetime.now(timezone.utc) + EXPIRY_MARGIN:
        logger.info("🔄 Google token expired, refreshing...")
        return await refresh_access_token(credential, db, oauth_config)

    try:
        return decrypt_token(credential.access_token)
    except InvalidToken:
        logger.error(f"❌ Stored Google token for user {credential.user_id} cannot be decrypted")
        return None


async def get_user_access_token(
    db: Session, user: User, oauth_config: Optional[GoogleOAuthConfig]
) -> Optional[str]:
    """Valid Google access token for a user, or None if they never connected Google"""
    credential = db.query(GoogleCredential).filter(GoogleCredential.user_id == user.id).first()
    if not credential:
        logger.info(f"ℹ️ User {user.id} has no Google credentials")
        return None
    return await get_valid_access_token(credential, db, oauth_config)


def build_service_account_assertion(config: DriveServiceAccountConfig, now: Optional[int] = None) -> str:
    """Signed JWT assertion for the service-account token exchange"""
    issued_at = now if now is not None else int(time.time())
    claims = {
        "iss": config.client_email,
        "scope": " ".join(config.scopes),
        "aud": GOOGLE_TOKEN_URL,
        "iat": issued_at,
        "exp": issued_at + 3600,
    }
    return jose_jwt.encode(claims, config.private_key, algorithm="RS256")


async def get_service_account_token(
    config: DriveServiceAccountConfig, client: httpx.AsyncClient
) -> tuple[str, float]:
    """
    Exchange a service-account assertion for an access token.
    Returns (access_token, expires_at_epoch). Raises httpx.HTTPStatusError on rejection.
    """
    response = await client.post(
        GOOGLE_TOKEN_URL,
        data={"grant_type": JWT_BEARER_GRANT, "assertion": build_service_account_assertion(config)},
    )
    response.raise_for_status()
    tokens = response.json()
    return tokens["access_token"], time.time() + int(tokens.get("expires_in", 3600))

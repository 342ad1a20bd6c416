"""
Google Drive Service
Secondary file store: one folder per lead on the company shared Drive,
accessed with the service account
"""
import json
import logging
import re
import time
import uuid
from typing import Optional

import httpx
from jose.exceptions import JOSEError

from ..config import EXTERNAL_API_TIMEOUT, DriveServiceAccountConfig
from ..exceptions import StorageBackendError, StorageObjectNotFound
from .google_auth import get_service_account_token

logger = logging.getLogger(__name__)

BACKEND = "drive"

GOOGLE_DRIVE_API = "https://www.googleapis.com/drive/v3"
GOOGLE_DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Required on every call that touches a shared drive
SHARED_DRIVE_PARAMS = {"supportsAllDrives": "true"}

# Replaced with "_" in generated Drive names
_UNSAFE_NAME_CHARS = re.compile(r'[\\/:"*?<>|]')


def lead_folder_name(first_name: Optional[str], last_name: Optional[str], lead_id: str) -> str:
    name = f"Lead - {first_name or 'Unknown'} {last_name or 'Lead'} - ID {lead_id}"
    return _UNSAFE_NAME_CHARS.sub("_", name)


def drive_download_url(drive_file_id: str) -> str:
    return f"https://drive.google.com/uc?id={drive_file_id}&export=download"


def build_multipart_body(metadata: dict, content: bytes, mime_type: str) -> tuple[bytes, str]:
    """multipart/related body for Drive's uploadType=multipart. Returns (body, content_type)."""
    boundary = f"roofcrm-{uuid.uuid4().hex}"
    body = b"".join(
        [
            f"--{boundary}\r\n".encode(),
            b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
            json.dumps(metadata).encode(),
            f"\r\n--{boundary}\r\n".encode(),
            f"Content-Type: {mime_type}\r\n\r\n".encode(),
            content,
            f"\r\n--{boundary}--".encode(),
        ]
    )
    return body, f"multipart/related; boundary={boundary}"


class GoogleDriveService:
    def __init__(self, config: DriveServiceAccountConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=EXTERNAL_API_TIMEOUT)
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()

    async def _token(self) -> str:
        # Reuse the token until a minute before expiry
        if self._access_token and time.time() < self._token_expires_at - 60:
            return self._access_token
        try:
            self._access_token, self._token_expires_at = await get_service_account_token(
                self.config, self._http()
            )
        except (httpx.HTTPError, JOSEError, KeyError, ValueError) as e:
            logger.error(f"❌ Service account token exchange failed: {e}")
            raise StorageBackendError(BACKEND, f"Service account authentication failed: {e}") from e
        return self._access_token

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {await self._token()}"
        params = {**SHARED_DRIVE_PARAMS, **kwargs.pop("params", {})}

        try:
            response = await self._http().request(method, url, headers=headers, params=params, **kwargs)
        except httpx.HTTPError as e:
            raise StorageBackendError(BACKEND, f"Drive request failed: {e}") from e

        if response.status_code == 404:
            raise StorageObjectNotFound(BACKEND, "File not found in Google Drive")
        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(f"❌ Google Drive API error ({response.status_code}): {message}")
            raise StorageBackendError(BACKEND, message)
        return response

    async def create_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        """Create a folder (under the shared Drive root by default) and return its id"""
        response = await self._request(
            "POST",
            f"{GOOGLE_DRIVE_API}/files",
            params={"fields": "id"},
            json={
                "name": name,
                "mimeType": FOLDER_MIME_TYPE,
                "parents": [parent_id or self.config.shared_drive_id],
            },
        )
        folder_id = _json(response).get("id")
        if not folder_id:
            raise StorageBackendError(BACKEND, "Drive did not return a folder id")
        logger.info(f"📁 Created Drive folder '{name}': {folder_id}")
        return folder_id

    async def ensure_lead_folder(self, lead) -> tuple[str, bool]:
        """Folder id for a lead, creating it on first use. Returns (folder_id, created)."""
        if lead.google_drive_folder_id:
            return lead.google_drive_folder_id, False
        folder_id = await self.create_folder(lead_folder_name(lead.first_name, lead.last_name, lead.id))
        return folder_id, True

    async def upload_file(self, content: bytes, name: str, mime_type: Optional[str], folder_id: str) -> dict:
        """Upload into a folder. Returns the Drive file resource (id, webViewLink, webContentLink)."""
        mime_type = mime_type or "application/octet-stream"
        body, content_type = build_multipart_body(
            {"name": name, "mimeType": mime_type, "parents": [folder_id]}, content, mime_type
        )
        response = await self._request(
            "POST",
            f"{GOOGLE_DRIVE_UPLOAD_API}/files",
            params={"uploadType": "multipart", "fields": "id,webViewLink,webContentLink"},
            headers={"Content-Type": content_type},
            content=body,
        )
        data = _json(response)
        if not data.get("id") or not data.get("webViewLink"):
            raise StorageBackendError(BACKEND, "Drive did not return a file id and link")

        logger.info(f"✅ Uploaded to Google Drive: {data['id']}")
        return data

    async def download_file(self, drive_file_id: str) -> bytes:
        response = await self._request(
            "GET", f"{GOOGLE_DRIVE_API}/files/{drive_file_id}", params={"alt": "media"}
        )
        return response.content

    async def delete_file(self, drive_file_id: str) -> None:
        """Delete a Drive file. Raises StorageObjectNotFound if it is already gone."""
        await self._request("DELETE", f"{GOOGLE_DRIVE_API}/files/{drive_file_id}")
        logger.info(f"🗑️ Deleted from Google Drive: {drive_file_id}")


def _json(response: httpx.Response) -> dict:
    """Parsed JSON object body of a successful Drive response"""
    try:
        data = response.json()
    except ValueError as e:
        raise StorageBackendError(BACKEND, f"Drive returned a non-JSON response ({response.status_code})") from e
    if not isinstance(data, dict):
        raise StorageBackendError(BACKEND, "Drive returned an unexpected response body")
    return data


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or response.text
    except (ValueError, AttributeError):
        return response.text or f"Google Drive API request failed with status {response.status_code}"

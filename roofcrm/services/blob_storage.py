"""
Blob Storage Service
Primary file store on Cloudflare R2 (S3 API), served through a public CDN URL
"""

import logging
import uuid
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import BlobStorageConfig
from ..exceptions import StorageBackendError, StorageObjectNotFound

logger = logging.getLogger(__name__)

BACKEND = "blob"

# Uploaded objects are immutable (unique keys), so cache for a year
CACHE_CONTROL = "public, max-age=31536000, immutable"

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def generate_blob_key(lead_id: str, file_type: Optional[str], filename: str) -> str:
    """
    Generate a unique object key for a lead file.

    Format: leads/{lead_id}/{file_type}/{uuid}.{ext}
    """
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    safe_ext = "".join(c for c in ext if c.isalnum())[:10] or "bin"
    return f"leads/{lead_id}/{file_type or 'file'}/{uuid.uuid4().hex}.{safe_ext}"


class BlobStorage:
    """Thin adapter over the R2 bucket"""

    def __init__(self, config: BlobStorageConfig, client=None):
        self.config = config
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.config.endpoint_url,
                aws_access_key_id=self.config.access_key_id,
                aws_secret_access_key=self.config.secret_access_key,
                config=Config(signature_version="s3v4"),
                region_name="auto",
            )
        return self._client

    def public_url(self, key: str) -> str:
        return f"{self.config.public_base_url}/{key}"

    def key_from_url(self, url: str) -> Optional[str]:
        prefix = f"{self.config.public_base_url}/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

    def upload(self, content: bytes, key: str, content_type: Optional[str]) -> str:
        """Upload an object and return its public URL"""
        try:
            self.client.put_object(
                Bucket=self.config.bucket_name,
                Key=key,
                Body=content,
                ContentType=content_type or "application/octet-stream",
                CacheControl=CACHE_CONTROL,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ R2 upload failed for key {key}: {e}")
            raise StorageBackendError(BACKEND, str(e)) from e

        logger.info(f"✅ Uploaded to R2: {key}")
        return self.public_url(key)

    def download(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.config.bucket_name, Key=key)
            return response["Body"].read()
        except ClientError as e:
            if _is_not_found(e):
                raise StorageObjectNotFound(BACKEND, f"Object {key} not found") from e
            raise StorageBackendError(BACKEND, str(e)) from e
        except BotoCoreError as e:
            raise StorageBackendError(BACKEND, str(e)) from e

    def delete(self, key: str) -> None:
        """Delete an object. Raises StorageObjectNotFound if it is already gone."""
        try:
            # delete_object succeeds silently on missing keys, so check first
            self.client.head_object(Bucket=self.config.bucket_name, Key=key)
            self.client.delete_object(Bucket=self.config.bucket_name, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise StorageObjectNotFound(BACKEND, f"Object {key} not found") from e
            logger.error(f"❌ R2 delete failed for key {key}: {e}")
            raise StorageBackendError(BACKEND, str(e)) from e
        except BotoCoreError as e:
            raise StorageBackendError(BACKEND, str(e)) from e

        logger.info(f"🗑️ Deleted from R2: {key}")


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in NOT_FOUND_CODES

"""
Dual file storage - Business logic for lead files

Every upload goes to blob storage (primary, CDN-backed) and to the lead's
folder on the shared Google Drive (secondary). A file is kept as long as
either backend accepted it.
"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...exceptions import StorageBackendError, StorageObjectNotFound
from ...models import ActivityType, FileRecord, Lead, StorageLocation, User, utcnow
from ...services.blob_storage import BlobStorage, generate_blob_key
from ...services.google_drive import GoogleDriveService, drive_download_url
from ...shared.results import ErrorCode, failure
from ...shared.validators import sanitize_filename
from ..activities.repository import ActivityRepository
from ..leads.repository import LeadRepository
from .repository import FileRepository
from .schemas import DualStorageOptions

logger = logging.getLogger(__name__)

BLOB_NOT_CONFIGURED = "Blob storage is not configured"
DRIVE_NOT_CONFIGURED = "Google Drive is not configured"


def drive_file_name(lead: Lead, original_name: str, file_type: Optional[str]) -> str:
    """Descriptive Drive name, e.g. "Photo - Jane Doe (ID ...) - roof - 2024-05-01.jpg" """
    lead_name = f"{lead.first_name or 'Unknown'} {lead.last_name or 'Lead'}".strip()
    if "." in original_name:
        base, extension = original_name.rsplit(".", 1)
    else:
        base, extension = original_name, ""
    prefix = "Photo" if file_type == "photo" else "File"
    name = f"{prefix} - {lead_name} (ID {lead.id}) - {base} - {utcnow().strftime('%Y-%m-%d')}"
    return f"{name}.{extension}" if extension else name


class DualFileStorageService:
    """Service layer for dual-backend file storage"""

    def __init__(
        self,
        db: Session,
        blob: Optional[BlobStorage] = None,
        drive: Optional[GoogleDriveService] = None,
    ):
        self.db = db
        self.blob = blob
        self.drive = drive
        self.repo = FileRepository()
        self.leads = LeadRepository()

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        content: Optional[bytes],
        filename: Optional[str],
        mime_type: Optional[str],
        options: DualStorageOptions,
        user: Optional[User] = None,
    ) -> dict:
        """
        Upload a file for a lead to both backends.

        Returns:
            {success, data?: FileRecord, message}. Succeeds when at least one
            backend accepted the file; nothing is persisted otherwise.
        """
        if content is None or not filename or not options.leadId:
            logger.error(f"❌ Missing required fields: has_file={content is not None}, lead_id={options.leadId}")
            return failure("File and lead ID are required", ErrorCode.VALIDATION)

        lead = self.leads.get_lead_by_id(self.db, options.leadId)
        if not lead:
            return failure("Lead not found", ErrorCode.NOT_FOUND)

        safe_name = sanitize_filename(filename)
        display_name = options.customFileName or safe_name
        logger.info(f"📤 Uploading {safe_name} ({len(content)} bytes) for lead {lead.id}")

        blob_url, blob_key, blob_error = self._upload_to_blob(content, safe_name, mime_type, lead, options)
        drive_file, drive_error = await self._upload_to_drive(content, safe_name, mime_type, lead, options)

        if blob_url is None and drive_file is None:
            message = f"Upload failed on all storage backends: blob: {blob_error}; drive: {drive_error}"
            logger.error(f"❌ {message}")
            return failure(message, ErrorCode.BACKEND_FAILURE)

        if blob_error:
            logger.warning(f"⚠️ Blob upload failed, file kept on Google Drive only: {blob_error}")
        if drive_error:
            logger.warning(f"⚠️ Google Drive upload failed, file kept in blob storage only: {drive_error}")

        try:
            record = self.repo.add_file(
                self.db,
                lead_id=lead.id,
                name=display_name,
                blob_url=blob_url,
                blob_key=blob_key,
                drive_url=drive_file["webViewLink"] if drive_file else None,
                drive_file_id=drive_file["id"] if drive_file else None,
                mime_type=mime_type,
                size=len(content),
                category=options.category or options.fileType,
                description=options.description,
                uploaded_by_id=user.id if user else None,
                source="upload",
            )
            ActivityRepository.create_activity(
                self.db,
                ActivityType.FILE_UPLOADED,
                title=f"File uploaded: {display_name}",
                description=options.description,
                user_id=user.id if user else None,
                lead_id=lead.id,
                commit=False,
            )
            self.db.commit()
            self.db.refresh(record)
        except ValueError as e:
            self.db.rollback()
            logger.error(f"❌ Rejected file metadata: {e}")
            await self._discard_uploads(blob_key, drive_file["id"] if drive_file else None)
            return failure(str(e), ErrorCode.VALIDATION)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to save file metadata: {e}")
            await self._discard_uploads(blob_key, drive_file["id"] if drive_file else None)
            return failure("Failed to save file metadata", ErrorCode.BACKEND_FAILURE)

        logger.info(f"✅ File {record.id} saved ({record.storage_location})")
        return {"success": True, "data": record, "message": _upload_message(record.storage_location)}

    def _upload_to_blob(
        self, content: bytes, filename: str, mime_type: Optional[str], lead: Lead, options: DualStorageOptions
    ) -> tuple[Optional[str], Optional[str], Optional[str]]:
        """Returns (url, key, error)"""
        if self.blob is None:
            return None, None, BLOB_NOT_CONFIGURED
        key = generate_blob_key(lead.id, options.fileType, filename)
        try:
            return self.blob.upload(content, key, mime_type), key, None
        except StorageBackendError as e:
            return None, None, e.message

    async def _upload_to_drive(
        self, content: bytes, filename: str, mime_type: Optional[str], lead: Lead, options: DualStorageOptions
    ) -> tuple[Optional[dict], Optional[str]]:
        """Returns (drive_file, error)"""
        if self.drive is None:
            return None, DRIVE_NOT_CONFIGURED
        try:
            folder_id = await self._lead_folder(lead)
            drive_file = await self.drive.upload_file(
                content, drive_file_name(lead, filename, options.fileType), mime_type, folder_id
            )
            return drive_file, None
        except StorageBackendError as e:
            return None, e.message

    async def _lead_folder(self, lead: Lead) -> str:
        folder_id, created = await self.drive.ensure_lead_folder(lead)
        if created:
            # Later uploads reuse the folder
            self.leads.set_drive_folder(self.db, lead, folder_id)
        return folder_id

    async def _discard_uploads(self, blob_key: Optional[str], drive_file_id: Optional[str]) -> None:
        """Best-effort removal of objects whose metadata could not be saved"""
        if blob_key and self.blob is not None:
            try:
                self.blob.delete(blob_key)
                logger.info("🧹 Cleaned up blob object after error")
            except StorageBackendError as e:
                logger.warning(f"⚠️ Failed to clean up blob object {blob_key}: {e}")
        if drive_file_id and self.drive is not None:
            try:
                await self.drive.delete_file(drive_file_id)
                logger.info("🧹 Cleaned up Drive file after error")
            except StorageBackendError as e:
                logger.warning(f"⚠️ Failed to clean up Drive file {drive_file_id}: {e}")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_file_url(self, file_id: str, url_type: str = "view") -> Optional[str]:
        """Blob URL when present, otherwise the Drive link. None if the file is unknown."""
        record = self.repo.get_file_by_id(self.db, file_id)
        if not record:
            return None
        if record.blob_url:
            return record.blob_url
        if url_type == "download" and record.drive_file_id:
            return drive_download_url(record.drive_file_id)
        return record.drive_url

    def list_lead_files(self, lead_id: str) -> list[FileRecord]:
        if not self.leads.get_lead_by_id(self.db, lead_id):
            raise HTTPException(status_code=404, detail="Lead not found")
        return self.repo.get_files_for_lead(self.db, lead_id)

    def get_recent_files(self, page: int = 1, limit: int = 20) -> dict:
        files, total = self.repo.get_recent_files(self.db, offset=(page - 1) * limit, limit=limit)
        return {"files": files, "total": total, "page": page, "limit": limit}

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_file(self, file_id: str) -> dict:
        """
        Delete a file from every backend that holds it.

        A backend that no longer has the object counts as deleted. The record is
        only removed when no backend reported a real error, so a retry can finish
        the cleanup.
        """
        record = self.repo.get_file_by_id(self.db, file_id)
        if not record:
            return failure("File not found", ErrorCode.NOT_FOUND)

        outcomes = []
        errors = []

        if record.blob_url:
            outcome, error = self._delete_from_blob(record)
            outcomes.append(f"blob: {outcome}")
            if error:
                errors.append(f"blob: {error}")

        if record.drive_url:
            outcome, error = await self._delete_from_drive(record)
            outcomes.append(f"drive: {outcome}")
            if error:
                errors.append(f"drive: {error}")

        summary = "; ".join(outcomes)
        if errors:
            logger.error(f"❌ Partial deletion of file {file_id}, record kept: {'; '.join(errors)}")
            return failure(f"Partial deletion, record kept for retry ({summary})", ErrorCode.BACKEND_FAILURE)

        self.repo.delete_file(self.db, record)
        logger.info(f"🗑️ Deleted file {file_id} ({summary})")
        return {"success": True, "message": f"File deleted successfully ({summary})"}

    def _delete_from_blob(self, record: FileRecord) -> tuple[str, Optional[str]]:
        """Returns (outcome, error)"""
        if self.blob is None:
            return "failed", BLOB_NOT_CONFIGURED
        key = record.blob_key or self.blob.key_from_url(record.blob_url)
        if not key:
            return "failed", "Blob URL does not belong to the configured bucket"
        try:
            self.blob.delete(key)
            return "deleted", None
        except StorageObjectNotFound:
            logger.info(f"ℹ️ Blob object {key} not found, already deleted")
            return "not found, already deleted", None
        except StorageBackendError as e:
            return "failed", e.message

    async def _delete_from_drive(self, record: FileRecord) -> tuple[str, Optional[str]]:
        if not record.drive_file_id:
            # Chat attachments link to Drive files the CRM does not own
            return "external link, left in place", None
        if self.drive is None:
            return "failed", DRIVE_NOT_CONFIGURED
        try:
            await self.drive.delete_file(record.drive_file_id)
            return "deleted", None
        except StorageObjectNotFound:
            logger.info(f"ℹ️ Drive file {record.drive_file_id} not found, already deleted")
            return "not found, already deleted", None
        except StorageBackendError as e:
            return "failed", e.message

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    async def repair_file(self, file_id: str) -> dict:
        """Copy a single-backend file to the backend that is missing it"""
        record = self.repo.get_file_by_id(self.db, file_id)
        if not record:
            return failure("File not found", ErrorCode.NOT_FOUND)

        if record.storage_location == StorageLocation.DUAL.value:
            return {"success": True, "data": record, "message": "File is already stored on both backends"}

        try:
            if record.blob_url:
                await self._copy_blob_to_drive(record)
            else:
                self._copy_drive_to_blob(record, await self._download_from_drive(record))
        except StorageBackendError as e:
            logger.error(f"❌ Repair of file {file_id} failed: {e}")
            return failure(f"Repair failed: {e}", ErrorCode.BACKEND_FAILURE)

        self.db.commit()
        self.db.refresh(record)
        logger.info(f"✅ File {file_id} repaired, now {record.storage_location}")
        return {"success": True, "data": record, "message": "File copied to the missing backend"}

    async def _copy_blob_to_drive(self, record: FileRecord) -> None:
        if self.blob is None:
            raise StorageBackendError("blob", BLOB_NOT_CONFIGURED)
        if self.drive is None:
            raise StorageBackendError("drive", DRIVE_NOT_CONFIGURED)
        key = record.blob_key or self.blob.key_from_url(record.blob_url)
        if not key:
            raise StorageBackendError("blob", "Blob URL does not belong to the configured bucket")

        content = self.blob.download(key)
        folder_id = await self._lead_folder(record.lead)
        drive_file = await self.drive.upload_file(
            content, drive_file_name(record.lead, record.name, record.category), record.mime_type, folder_id
        )
        record.drive_url = drive_file["webViewLink"]
        record.drive_file_id = drive_file["id"]

    async def _download_from_drive(self, record: FileRecord) -> bytes:
        if self.drive is None:
            raise StorageBackendError("drive", DRIVE_NOT_CONFIGURED)
        if not record.drive_file_id:
            raise StorageBackendError("drive", "File has no Drive file id to copy from")
        return await self.drive.download_file(record.drive_file_id)

    def _copy_drive_to_blob(self, record: FileRecord, content: bytes) -> None:
        if self.blob is None:
            raise StorageBackendError("blob", BLOB_NOT_CONFIGURED)
        key = generate_blob_key(record.lead_id, record.category, record.name)
        record.blob_url = self.blob.upload(content, key, record.mime_type)
        record.blob_key = key


def _upload_message(storage_location: str) -> str:
    if storage_location == StorageLocation.DUAL.value:
        return "File uploaded to blob storage and Google Drive"
    if storage_location == StorageLocation.BLOB_ONLY.value:
        return "File uploaded to blob storage (Google Drive backup failed)"
    return "File uploaded to Google Drive (blob storage failed)"

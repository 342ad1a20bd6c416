"""File domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class DualStorageOptions(BaseModel):
    """Upload parameters sent alongside the file"""

    leadId: Optional[str] = None
    fileType: Optional[str] = None
    category: Optional[str] = None
    customFileName: Optional[str] = None
    description: Optional[str] = None


class FileResponse(BaseModel):
    id: str
    leadId: str
    name: str
    url: str  # Preferred URL (blob first)
    blobUrl: Optional[str] = None
    driveUrl: Optional[str] = None
    driveFileId: Optional[str] = None
    storageLocation: str
    mimeType: Optional[str] = None
    size: int = 0
    category: Optional[str] = None
    description: Optional[str] = None
    source: str = "upload"
    uploadedById: Optional[str] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "FileResponse":
        return cls(
            id=record.id,
            leadId=record.lead_id,
            name=record.name,
            url=record.blob_url or record.drive_url,
            blobUrl=record.blob_url,
            driveUrl=record.drive_url,
            driveFileId=record.drive_file_id,
            storageLocation=record.storage_location,
            mimeType=record.mime_type,
            size=record.size or 0,
            category=record.category,
            description=record.description,
            source=record.source,
            uploadedById=record.uploaded_by_id,
            createdAt=record.created_at,
        )


class FileUrlResponse(BaseModel):
    success: bool
    url: str
    type: str


class RecentFilesResponse(BaseModel):
    files: list[FileResponse]
    total: int
    page: int
    limit: int

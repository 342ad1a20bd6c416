"""File repository - Database operations for file records"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import FileRecord


class FileRepository:
    """Repository for file record database operations"""

    @staticmethod
    def get_file_by_id(db: Session, file_id: str) -> Optional[FileRecord]:
        return db.query(FileRecord).filter(FileRecord.id == file_id).first()

    @staticmethod
    def get_files_for_lead(db: Session, lead_id: str) -> list[FileRecord]:
        return (
            db.query(FileRecord)
            .filter(FileRecord.lead_id == lead_id)
            .order_by(FileRecord.created_at.desc())
            .all()
        )

    @staticmethod
    def get_recent_files(db: Session, offset: int = 0, limit: int = 20) -> tuple[list[FileRecord], int]:
        """Newest files across all leads. Returns (files, total_count)"""
        query = db.query(FileRecord)
        total = query.count()
        files = query.order_by(FileRecord.created_at.desc()).offset(offset).limit(limit).all()
        return files, total

    @staticmethod
    def add_file(db: Session, **file_data) -> FileRecord:
        """Stage a new file record; the caller commits"""
        record = FileRecord(**file_data)
        db.add(record)
        return record

    @staticmethod
    def delete_file(db: Session, record: FileRecord) -> None:
        db.delete(record)
        db.commit()

import httpx
import pytest
from pydantic import ValidationError

from roofcrm.config import DriveServiceAccountConfig
from roofcrm.domain.files.schemas import DualStorageOptions
from roofcrm.domain.files.service import DualFileStorageService
from roofcrm.models import Activity, ActivityType, FileRecord, StorageLocation
from roofcrm.services.google_drive import GoogleDriveService
from roofcrm.shared.results import ErrorCode

from .conftest import PUBLIC_BASE_URL, make_lead

pytestmark = pytest.mark.anyio

TEN_BYTES = b"roof notes"


def _options(lead_id, **kwargs):
    return DualStorageOptions(leadId=lead_id, fileType=kwargs.pop("fileType", "document"), **kwargs)


async def test_upload_to_both_backends_records_dual(db_session, blob, drive, s3_client, drive_server, lead, admin):
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    result = await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin)

    assert result["success"] is True
    record = result["data"]
    assert record.storage_location == StorageLocation.DUAL.value
    assert record.blob_url.startswith(f"{PUBLIC_BASE_URL}/leads/{lead.id}/document/")
    assert record.blob_url.endswith(".txt")
    assert record.drive_url == f"https://drive.google.com/file/d/{record.drive_file_id}/view"
    assert record.size == 10
    assert s3_client.objects[record.blob_key] == TEN_BYTES
    assert record.drive_file_id in drive_server.files


async def test_upload_creates_and_reuses_lead_drive_folder(db_session, blob, drive, drive_server, lead, admin):
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    await service.upload_file(b"first", "a.txt", "text/plain", _options(lead.id), admin)
    await service.upload_file(b"second", "b.txt", "text/plain", _options(lead.id), admin)

    assert len(drive_server.folders) == 1
    folder_id, folder_name = next(iter(drive_server.folders.items()))
    assert folder_name == f"Lead - Jane Doe - ID {lead.id}"
    db_session.refresh(lead)
    assert lead.google_drive_folder_id == folder_id


async def test_upload_names_drive_photos_after_the_lead(db_session, blob, drive, drive_server, lead, admin):
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    await service.upload_file(b"jpegdata", "ridge.jpg", "image/jpeg", _options(lead.id, fileType="photo"), admin)

    body = drive_server.uploads[0]["body"]
    assert f"Photo - Jane Doe (ID {lead.id}) - ridge - ".encode() in body


async def test_upload_with_blob_failing_keeps_drive_copy(db_session, blob, drive, s3_client, lead, admin):
    s3_client.fail_puts = True
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    result = await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin)

    assert result["success"] is True
    record = result["data"]
    assert record.storage_location == StorageLocation.DRIVE_ONLY.value
    assert record.blob_url is None
    assert record.drive_url is not None


async def test_upload_with_drive_failing_keeps_blob_copy(db_session, blob, drive, drive_server, lead, admin):
    drive_server.fail_uploads = True
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    result = await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin)

    assert result["success"] is True
    assert result["data"].storage_location == StorageLocation.BLOB_ONLY.value
    assert result["data"].drive_url is None


async def test_upload_with_both_backends_failing_persists_nothing(
    db_session, blob, drive, s3_client, drive_server, lead, admin
):
    s3_client.fail_puts = True
    drive_server.fail_uploads = True
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    result = await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin)

    assert result["success"] is False
    assert result["error_code"] == ErrorCode.BACKEND_FAILURE
    assert "ServiceUnavailable" in result["message"]
    assert "Drive backend error" in result["message"]
    assert db_session.query(FileRecord).count() == 0
    assert db_session.query(Activity).filter(Activity.type == ActivityType.FILE_UPLOADED.value).count() == 0


async def test_upload_without_configured_backends_fails(db_session, lead, admin):
    service = DualFileStorageService(db_session)

    result = await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin)

    assert result["success"] is False
    assert "not configured" in result["message"]


async def test_upload_requires_file_and_lead(db_session, blob, drive, lead, admin):
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    missing_file = await service.upload_file(None, None, None, _options(lead.id), admin)
    missing_lead = await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", DualStorageOptions(), admin)

    assert missing_file["error_code"] == ErrorCode.VALIDATION
    assert missing_lead["error_code"] == ErrorCode.VALIDATION
    assert db_session.query(FileRecord).count() == 0


async def test_upload_for_unknown_lead_is_not_found(db_session, blob, drive, s3_client, admin):
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    result = await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options("no-such-lead"), admin)

    assert result["error_code"] == ErrorCode.NOT_FOUND
    assert s3_client.objects == {}


async def test_upload_records_activity_and_custom_name(db_session, blob, drive, lead, admin):
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    result = await service.upload_file(
        TEN_BYTES,
        "IMG_0001.txt",
        "text/plain",
        _options(lead.id, customFileName="Inspection notes", category="inspection"),
        admin,
    )

    record = result["data"]
    assert record.name == "Inspection notes"
    assert record.category == "inspection"
    activity = db_session.query(Activity).filter(Activity.lead_id == lead.id).one()
    assert activity.type == ActivityType.FILE_UPLOADED.value
    assert activity.user_id == admin.id


def _file(db, lead, **fields) -> FileRecord:
    record = FileRecord(lead_id=lead.id, name="estimate.pdf", mime_type="application/pdf", size=5, **fields)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def test_storage_location_follows_urls(db_session, lead):
    record = _file(db_session, lead, blob_url=f"{PUBLIC_BASE_URL}/a.pdf")
    assert record.storage_location == StorageLocation.BLOB_ONLY.value

    record.drive_url = "https://drive.google.com/file/d/x/view"
    db_session.commit()
    db_session.refresh(record)
    assert record.storage_location == StorageLocation.DUAL.value


def test_file_record_needs_at_least_one_url(db_session, lead):
    db_session.add(FileRecord(lead_id=lead.id, name="orphan.pdf", size=1))
    with pytest.raises(ValueError):
        db_session.flush()
    db_session.rollback()


def test_get_file_url_prefers_blob(db_session, lead):
    record = _file(
        db_session,
        lead,
        blob_url=f"{PUBLIC_BASE_URL}/leads/x/file/a.pdf",
        drive_url="https://drive.google.com/file/d/d1/view",
        drive_file_id="d1",
    )
    service = DualFileStorageService(db_session)

    assert service.get_file_url(record.id, "view") == record.blob_url
    assert service.get_file_url(record.id, "download") == record.blob_url


def test_get_file_url_falls_back_to_drive(db_session, lead):
    record = _file(db_session, lead, drive_url="https://drive.google.com/file/d/d1/view", drive_file_id="d1")
    service = DualFileStorageService(db_session)

    assert service.get_file_url(record.id, "view") == "https://drive.google.com/file/d/d1/view"
    assert service.get_file_url(record.id, "download") == "https://drive.google.com/uc?id=d1&export=download"


def test_get_file_url_missing_file(db_session):
    assert DualFileStorageService(db_session).get_file_url("missing") is None


async def test_delete_removes_objects_and_record(db_session, blob, drive, s3_client, drive_server, lead, admin):
    service = DualFileStorageService(db_session, blob=blob, drive=drive)
    record = (await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin))["data"]
    file_id, blob_key, drive_file_id = record.id, record.blob_key, record.drive_file_id

    result = await service.delete_file(file_id)

    assert result["success"] is True
    assert blob_key not in s3_client.objects
    assert drive_file_id not in drive_server.files
    assert db_session.query(FileRecord).filter(FileRecord.id == file_id).first() is None


async def test_delete_treats_missing_remote_objects_as_deleted(db_session, blob, drive, lead):
    record = _file(
        db_session,
        lead,
        blob_url=f"{PUBLIC_BASE_URL}/leads/x/file/gone.pdf",
        drive_url="https://drive.google.com/file/d/gone/view",
        drive_file_id="gone",
    )
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    result = await service.delete_file(record.id)

    assert result["success"] is True
    assert "blob: not found, already deleted" in result["message"]
    assert "drive: not found, already deleted" in result["message"]
    assert db_session.query(FileRecord).count() == 0


async def test_delete_with_backend_error_keeps_record(db_session, blob, drive, s3_client, lead, admin):
    service = DualFileStorageService(db_session, blob=blob, drive=drive)
    record = (await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin))["data"]
    file_id = record.id
    s3_client.fail_deletes = True

    result = await service.delete_file(file_id)

    assert result["success"] is False
    assert result["error_code"] == ErrorCode.BACKEND_FAILURE
    assert "blob: failed" in result["message"]
    assert "drive: deleted" in result["message"]
    assert db_session.query(FileRecord).filter(FileRecord.id == file_id).first() is not None

    # Retry once the backend recovers
    s3_client.fail_deletes = False
    retry = await service.delete_file(file_id)
    assert retry["success"] is True
    assert "drive: not found, already deleted" in retry["message"]


async def test_delete_unknown_file(db_session, blob, drive):
    result = await DualFileStorageService(db_session, blob=blob, drive=drive).delete_file("missing")
    assert result["error_code"] == ErrorCode.NOT_FOUND


async def test_repair_copies_blob_only_file_to_drive(db_session, blob, drive, drive_server, s3_client, lead, admin):
    drive_server.fail_uploads = True
    service = DualFileStorageService(db_session, blob=blob, drive=drive)
    record = (await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin))["data"]
    assert record.storage_location == StorageLocation.BLOB_ONLY.value

    drive_server.fail_uploads = False
    result = await service.repair_file(record.id)

    assert result["success"] is True
    assert result["data"].storage_location == StorageLocation.DUAL.value
    assert result["data"].drive_file_id in drive_server.files
    assert TEN_BYTES in drive_server.uploads[-1]["body"]


async def test_repair_copies_drive_only_file_to_blob(db_session, blob, drive, drive_server, s3_client, lead):
    drive_server.files["drive-existing"] = b"contract"
    record = _file(
        db_session,
        lead,
        drive_url="https://drive.google.com/file/d/drive-existing/view",
        drive_file_id="drive-existing",
    )
    service = DualFileStorageService(db_session, blob=blob, drive=drive)

    result = await service.repair_file(record.id)

    assert result["success"] is True
    repaired = result["data"]
    assert repaired.storage_location == StorageLocation.DUAL.value
    assert s3_client.objects[repaired.blob_key] == b"contract"


async def test_repair_failure_leaves_record_unchanged(db_session, blob, drive, s3_client, drive_server, lead):
    drive_server.files["drive-existing"] = b"contract"
    record = _file(
        db_session,
        lead,
        drive_url="https://drive.google.com/file/d/drive-existing/view",
        drive_file_id="drive-existing",
    )
    s3_client.fail_puts = True

    result = await DualFileStorageService(db_session, blob=blob, drive=drive).repair_file(record.id)

    assert result["success"] is False
    db_session.refresh(record)
    assert record.storage_location == StorageLocation.DRIVE_ONLY.value
    assert record.blob_url is None


def test_recent_files_are_paginated_newest_first(db_session, lead):
    other = make_lead(db_session, first_name="John", last_name="Smith")
    for i in range(3):
        _file(db_session, lead, blob_url=f"{PUBLIC_BASE_URL}/a{i}.pdf")
    _file(db_session, other, blob_url=f"{PUBLIC_BASE_URL}/b.pdf")
    service = DualFileStorageService(db_session)

    page = service.get_recent_files(page=1, limit=2)

    assert page["total"] == 4
    assert len(page["files"]) == 2
    assert page["files"][0].created_at >= page["files"][1].created_at
    assert len(service.list_lead_files(lead.id)) == 3


# ============================================================================
# MISBEHAVING DRIVE
# ============================================================================


def _proxy_page(request: httpx.Request) -> httpx.Response:
    # Token exchange works, every Drive call lands on an HTML error page
    if request.url.host == "oauth2.googleapis.com":
        return httpx.Response(200, json={"access_token": "sa-token", "expires_in": 3600})
    return httpx.Response(200, text="<html>proxy</html>")


def _drive_behind_proxy(service_account_key) -> GoogleDriveService:
    config = DriveServiceAccountConfig(
        client_email="crm-uploader@roofco.iam.gserviceaccount.com",
        private_key=service_account_key,
        shared_drive_id="shared-drive-root",
    )
    return GoogleDriveService(config, client=httpx.AsyncClient(transport=httpx.MockTransport(_proxy_page)))


def _drive_with_broken_key(drive_server) -> GoogleDriveService:
    # Skips validation to stand in for a key that only breaks at signing time
    config = DriveServiceAccountConfig.model_construct(
        client_email="crm-uploader@roofco.iam.gserviceaccount.com",
        private_key="not-a-pem-key",
        shared_drive_id="shared-drive-root",
    )
    return GoogleDriveService(config, client=httpx.AsyncClient(transport=httpx.MockTransport(drive_server.handler)))


def test_service_account_config_rejects_unparsable_key():
    with pytest.raises(ValidationError):
        DriveServiceAccountConfig(
            client_email="crm-uploader@roofco.iam.gserviceaccount.com",
            private_key="not-a-pem-key",
            shared_drive_id="shared-drive-root",
        )


def test_service_account_config_accepts_escaped_newlines(service_account_key):
    config = DriveServiceAccountConfig(
        client_email="crm-uploader@roofco.iam.gserviceaccount.com",
        private_key=service_account_key.replace("\n", "\\n"),
        shared_drive_id="shared-drive-root",
    )
    assert config.private_key == service_account_key


async def test_upload_with_unsignable_drive_key_keeps_blob_copy(db_session, blob, drive_server, s3_client, lead, admin):
    service = DualFileStorageService(db_session, blob=blob, drive=_drive_with_broken_key(drive_server))

    result = await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin)

    assert result["success"] is True
    assert result["data"].storage_location == StorageLocation.BLOB_ONLY.value
    assert s3_client.objects[result["data"].blob_key] == TEN_BYTES
    assert drive_server.uploads == []


async def test_upload_with_html_drive_folder_response_keeps_blob_copy(
    db_session, blob, service_account_key, s3_client, lead, admin
):
    service = DualFileStorageService(db_session, blob=blob, drive=_drive_behind_proxy(service_account_key))

    result = await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin)

    assert result["success"] is True
    assert result["data"].storage_location == StorageLocation.BLOB_ONLY.value
    assert result["data"].drive_file_id is None


async def test_upload_with_html_drive_upload_response_keeps_blob_copy(
    db_session, blob, service_account_key, s3_client, lead, admin
):
    lead.google_drive_folder_id = "folder-existing"
    db_session.commit()
    service = DualFileStorageService(db_session, blob=blob, drive=_drive_behind_proxy(service_account_key))

    result = await service.upload_file(TEN_BYTES, "notes.txt", "text/plain", _options(lead.id), admin)

    assert result["success"] is True
    assert result["data"].storage_location == StorageLocation.BLOB_ONLY.value


async def test_delete_with_unsignable_drive_key_keeps_record(db_session, blob, drive_server, s3_client, lead):
    drive_server.files["drive-existing"] = b"contract"
    record = _file(
        db_session,
        lead,
        blob_url=f"{PUBLIC_BASE_URL}/leads/{lead.id}/document/contract.pdf",
        blob_key=f"leads/{lead.id}/document/contract.pdf",
        drive_url="https://drive.google.com/file/d/drive-existing/view",
        drive_file_id="drive-existing",
    )
    file_id = record.id
    service = DualFileStorageService(db_session, blob=blob, drive=_drive_with_broken_key(drive_server))

    result = await service.delete_file(file_id)

    assert result["success"] is False
    assert result["error_code"] == ErrorCode.BACKEND_FAILURE
    assert "drive: failed" in result["message"]
    assert db_session.query(FileRecord).filter(FileRecord.id == file_id).first() is not None
    assert "drive-existing" in drive_server.files


async def test_repair_with_html_drive_response_leaves_record_unchanged(
    db_session, blob, service_account_key, s3_client, lead
):
    s3_client.objects[f"leads/{lead.id}/document/notes.txt"] = TEN_BYTES
    record = _file(
        db_session,
        lead,
        blob_url=f"{PUBLIC_BASE_URL}/leads/{lead.id}/document/notes.txt",
        blob_key=f"leads/{lead.id}/document/notes.txt",
    )
    service = DualFileStorageService(db_session, blob=blob, drive=_drive_behind_proxy(service_account_key))

    result = await service.repair_file(record.id)

    assert result["success"] is False
    assert result["error_code"] == ErrorCode.BACKEND_FAILURE
    db_session.refresh(record)
    assert record.storage_location == StorageLocation.BLOB_ONLY.value
    assert record.drive_file_id is None

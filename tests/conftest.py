import os

# Isolated in-memory database and no real SaaS credentials during tests
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
for _var in (
    "R2_ACCOUNT_ID",
    "GOOGLE_SA_EMAIL",
    "GOOGLE_CHAT_WEBHOOK_URL",
    "SLACK_BOT_TOKEN",
    "GOOGLE_CLIENT_ID",
):
    os.environ.pop(_var, None)

import base64
import io
import itertools
import json
from email import message_from_bytes
from email import policy

import httpx
import pytest
from botocore.exceptions import ClientError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient

from roofcrm.auth import create_session_token
from roofcrm.config import BlobStorageConfig, DriveServiceAccountConfig, GoogleChatConfig, SlackConfig
from roofcrm.database import Base, SessionLocal, engine
from roofcrm.domain.notifications.service import get_notification_context
from roofcrm.main import app
from roofcrm.models import Lead, User, UserRole
from roofcrm.services.blob_storage import BlobStorage
from roofcrm.services.gmail_service import GmailService
from roofcrm.services.google_chat_service import GoogleChatService
from roofcrm.services.google_drive import GoogleDriveService
from roofcrm.services.notification_service import NotificationContext
from roofcrm.services.slack_service import SlackService

PUBLIC_BASE_URL = "https://files.roofco.test"


@pytest.fixture
def anyio_backend():
    # Only asyncio, no Trio needed
    return "asyncio"


# ============================================================================
# DATABASE
# ============================================================================


@pytest.fixture(autouse=True)
def db_session():
    """Fresh schema per test"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


def make_user(db, email, role=UserRole.USER, name=None, slack_user_id=None) -> User:
    user = User(email=email, name=name, role=role.value, slack_user_id=slack_user_id)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_lead(db, first_name="Jane", last_name="Doe", **fields) -> Lead:
    lead = Lead(first_name=first_name, last_name=last_name, **fields)
    db.add(lead)
    db.commit()
    db.refresh(lead)
    return lead


@pytest.fixture
def admin(db_session):
    return make_user(db_session, "alice@roofco.com", UserRole.ADMIN, "Alice Admin", slack_user_id="UADMIN1")


@pytest.fixture
def second_admin(db_session):
    return make_user(db_session, "bob@roofco.com", UserRole.ADMIN, "Bob Boss")


@pytest.fixture
def sales_rep(db_session):
    return make_user(db_session, "sam@roofco.com", UserRole.SALES_REP, "Sam Rep")


@pytest.fixture
def lead(db_session):
    return make_lead(
        db_session,
        email="jane.doe@example.com",
        address="12 Shingle Way, Dallas, TX",
        claim_number="CLM123",
    )


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_session_token(user.id)}"}


# ============================================================================
# BLOB STORAGE (boto3 client stand-in)
# ============================================================================


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeS3Client:
    def __init__(self):
        self.objects = {}
        self.fail_puts = False
        self.fail_deletes = False

    def put_object(self, Bucket, Key, Body, ContentType, CacheControl):
        if self.fail_puts:
            raise _client_error("ServiceUnavailable", "PutObject")
        self.objects[Key] = Body

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise _client_error("404", "HeadObject")
        return {}

    def delete_object(self, Bucket, Key):
        if self.fail_deletes:
            raise _client_error("AccessDenied", "DeleteObject")
        self.objects.pop(Key, None)


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def blob(s3_client):
    config = BlobStorageConfig(
        account_id="acct",
        access_key_id="key",
        secret_access_key="secret",
        bucket_name="roofcrm-test",
        public_base_url=PUBLIC_BASE_URL + "/",
    )
    return BlobStorage(config, client=s3_client)


# ============================================================================
# GOOGLE DRIVE (mock transport)
# ============================================================================


class FakeDrive:
    """In-memory stand-in for the OAuth token endpoint and the Drive v3 API"""

    def __init__(self):
        self.files = {}
        self.folders = {}
        self.fail_uploads = False
        self.fail_deletes = False
        self.uploads = []
        self._ids = itertools.count(1)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json={"access_token": "sa-token", "expires_in": 3600})

        if request.headers.get("Authorization") != "Bearer sa-token":
            return httpx.Response(401, json={"error": {"message": "Invalid credentials"}})
        if request.url.params.get("supportsAllDrives") != "true":
            return httpx.Response(404, json={"error": {"message": "Shared drive not found"}})

        path = request.url.path
        if request.method == "POST" and path == "/upload/drive/v3/files":
            if self.fail_uploads:
                return httpx.Response(500, json={"error": {"message": "Drive backend error"}})
            file_id = f"drive-{next(self._ids)}"
            self.files[file_id] = request.content
            self.uploads.append({"id": file_id, "body": request.content})
            return httpx.Response(
                200,
                json={
                    "id": file_id,
                    "webViewLink": f"https://drive.google.com/file/d/{file_id}/view",
                    "webContentLink": f"https://drive.google.com/uc?id={file_id}",
                },
            )

        if request.method == "POST" and path == "/drive/v3/files":
            folder_id = f"folder-{next(self._ids)}"
            self.folders[folder_id] = json.loads(request.content)["name"]
            return httpx.Response(200, json={"id": folder_id})

        file_id = path.rsplit("/", 1)[-1]
        if request.method == "DELETE":
            if self.fail_deletes:
                return httpx.Response(500, json={"error": {"message": "Drive backend error"}})
            if file_id not in self.files:
                return httpx.Response(404, json={"error": {"message": "File not found"}})
            del self.files[file_id]
            return httpx.Response(204)

        if request.method == "GET":
            if file_id not in self.files:
                return httpx.Response(404, json={"error": {"message": "File not found"}})
            return httpx.Response(200, content=self.files[file_id])

        return httpx.Response(400, json={"error": {"message": "Unsupported request"}})


@pytest.fixture(scope="session")
def service_account_key():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def drive_server():
    return FakeDrive()


@pytest.fixture
def drive(drive_server, service_account_key):
    config = DriveServiceAccountConfig(
        client_email="crm-uploader@roofco.iam.gserviceaccount.com",
        private_key=service_account_key,
        shared_drive_id="shared-drive-root",
    )
    return GoogleDriveService(config, client=httpx.AsyncClient(transport=httpx.MockTransport(drive_server.handler)))


# ============================================================================
# GMAIL / GOOGLE CHAT / SLACK (mock transport)
# ============================================================================


class FakeMessaging:
    def __init__(self):
        self.emails = []
        self.chat_posts = []
        self.slack_posts = []
        self.reject_recipients = set()
        self.fail_chat = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        payload = json.loads(request.content)

        if host == "gmail.googleapis.com":
            raw = payload["raw"]
            message = message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)), policy=policy.default)
            if message["To"] in self.reject_recipients:
                return httpx.Response(400, json={"error": {"message": "Invalid To header"}})
            self.emails.append({"to": message["To"], "subject": message["Subject"], "body": message.get_content()})
            return httpx.Response(200, json={"id": f"msg-{len(self.emails)}"})

        if host == "chat.googleapis.com":
            if self.fail_chat:
                return httpx.Response(500)
            self.chat_posts.append(payload["text"])
            return httpx.Response(200, json={})

        if host == "slack.com":
            self.slack_posts.append(payload)
            return httpx.Response(200, json={"ok": True, "ts": "1700000000.000100"})

        return httpx.Response(404)


@pytest.fixture
def messaging():
    return FakeMessaging()


@pytest.fixture
def messaging_client(messaging):
    return httpx.AsyncClient(transport=httpx.MockTransport(messaging.handler))


@pytest.fixture
def chat(messaging_client):
    config = GoogleChatConfig(webhook_url="https://chat.googleapis.com/v1/spaces/AAA/messages?key=k&token=t")
    return GoogleChatService(config, client=messaging_client)


@pytest.fixture
def slack(messaging_client):
    return SlackService(SlackConfig(bot_token="xoxb-test", notifications_channel="#crm-alerts"), client=messaging_client)


@pytest.fixture
def gmail(messaging_client):
    return GmailService("user-access-token", client=messaging_client)


@pytest.fixture
def notification_context(admin, gmail, chat, slack):
    return NotificationContext(actor=admin, gmail=gmail, chat=chat, slack=slack)


# ============================================================================
# HTTP CLIENT
# ============================================================================


@pytest.fixture
def client(blob, drive, chat, slack):
    with TestClient(app) as test_client:
        app.state.blob_storage = blob
        app.state.drive = drive
        app.state.google_chat = chat
        app.state.slack = slack
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def notify_as(notification_context):
    """Route notifications through the fake Gmail/Chat/Slack transport"""
    app.dependency_overrides[get_notification_context] = lambda: notification_context
    yield notification_context
    app.dependency_overrides.pop(get_notification_context, None)

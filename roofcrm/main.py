import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import (
    BlobStorageConfig,
    DriveServiceAccountConfig,
    GoogleChatConfig,
    GoogleOAuthConfig,
    SlackConfig,
)
from .database import Base, engine
from .domain.activities.router import router as activities_router
from .domain.deletion_requests.router import router as deletion_requests_router
from .domain.files.router import router as files_router
from .domain.leads.router import router as leads_router
from .domain.notifications.router import router as notifications_router
from .services.blob_storage import BlobStorage
from .services.google_chat_service import GoogleChatService
from .services.google_drive import GoogleDriveService
from .services.slack_service import SlackService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("botocore").setLevel(logging.WARNING)


def _load_config(config_cls, name: str):
    """Validated adapter config, or None (adapter disabled) if missing or invalid"""
    try:
        config = config_cls.from_env()
    except ValidationError as e:
        logger.error(f"❌ {name} configuration is invalid, adapter disabled: {e}")
        return None
    if config is None:
        logger.warning(f"⚠️ {name} not configured, adapter disabled")
    else:
        logger.info(f"✅ {name} configured")
    return config


def configure_adapters(app: FastAPI) -> None:
    """Build every external adapter once and keep it on app.state"""
    blob_config = _load_config(BlobStorageConfig, "Blob storage (R2)")
    drive_config = _load_config(DriveServiceAccountConfig, "Google Drive service account")
    chat_config = _load_config(GoogleChatConfig, "Google Chat webhook")
    slack_config = _load_config(SlackConfig, "Slack")

    app.state.google_oauth = _load_config(GoogleOAuthConfig, "Google OAuth client")
    app.state.blob_storage = BlobStorage(blob_config) if blob_config else None
    app.state.drive = GoogleDriveService(drive_config) if drive_config else None
    app.state.google_chat = GoogleChatService(chat_config) if chat_config else None
    app.state.slack = SlackService(slack_config) if slack_config else None


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    configure_adapters(app)

    yield

    if app.state.drive is not None:
        await app.state.drive.aclose()
    logger.info("Application shutting down...")


app = FastAPI(title="RoofCRM API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"❌ {request.method} {request.url.path} - Unhandled error: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


# CORS Configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(leads_router)
app.include_router(files_router)
app.include_router(deletion_requests_router)
app.include_router(notifications_router)
app.include_router(activities_router)


@app.get("/")
def root():
    return {"message": "RoofCRM API is running"}


@app.get("/health")
def health(request: Request):
    state = request.app.state
    return {
        "status": "healthy",
        "adapters": {
            "blob_storage": getattr(state, "blob_storage", None) is not None,
            "drive": getattr(state, "drive", None) is not None,
            "google_chat": getattr(state, "google_chat", None) is not None,
            "slack": getattr(state, "slack", None) is not None,
            "google_oauth": getattr(state, "google_oauth", None) is not None,
        },
    }

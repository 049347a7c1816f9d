# projectcam/config.py
# Environment-aware configuration for the ProjectCam backend

import os
from typing import Dict, Literal, Set

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT configuration
SECRET_KEY = os.environ.get("SECRET_KEY", "projectcam-dev-secret")
ALGORITHM = "HS256"

# Password hashing (PBKDF2-SHA256); the count is stored with each hash
PASSWORD_HASH_ITERATIONS = int(os.environ.get("PASSWORD_HASH_ITERATIONS", "260000"))

# Token lifetime
ACCESS_TOKEN_DAYS = int(os.environ.get("ACCESS_TOKEN_DAYS", "7"))

# Database configuration
# DATABASE_URL takes precedence (managed Postgres)
# Falls back to SQLite for local development
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DATABASE_PATH = os.environ.get("DATABASE_PATH", "projectcam.db")

# Uploaded files live on local disk and are served under /uploads
UPLOAD_DIR = os.environ.get("UPLOAD_DIR", "uploads")
MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", "50"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024
MAX_FILES_PER_UPLOAD = int(os.environ.get("MAX_FILES_PER_UPLOAD", "10"))

# Extension -> accepted MIME types
ALLOWED_UPLOAD_TYPES: Dict[str, Set[str]] = {
    ".jpg": {"image/jpeg"},
    ".jpeg": {"image/jpeg"},
    ".png": {"image/png"},
    ".gif": {"image/gif"},
    ".mp4": {"video/mp4"},
    ".mov": {"video/quicktime"},
    ".avi": {"video/x-msvideo", "video/avi"},
    ".pdf": {"application/pdf"},
    ".doc": {"application/msword"},
    ".docx": {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"},
}
AVATAR_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif"}

# Per-subscriber buffer for realtime events; overflow drops events
EVENT_QUEUE_SIZE = int(os.environ.get("EVENT_QUEUE_SIZE", "100"))

# Database type detection
IS_POSTGRES = DATABASE_URL.startswith(("postgres://", "postgresql://"))
IS_SQLITE = not IS_POSTGRES

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: {'PostgreSQL' if IS_POSTGRES else 'SQLite (local dev)'}")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_DAYS} days")
print(f"[CONFIG] Uploads: {UPLOAD_DIR} (max {MAX_UPLOAD_MB} MB, {MAX_FILES_PER_UPLOAD} files)")

"""
projectcam/storage.py

Local-disk storage for uploaded photos, documents and avatars.

Files are written under UPLOAD_DIR with a unique name and served by the
app at /uploads/<filename>. Uploads are checked against an allow-list of
extension/MIME pairs and a size ceiling while streaming to disk.
"""

from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Set

from fastapi import UploadFile

from projectcam.config import ALLOWED_UPLOAD_TYPES, IS_DEV, MAX_UPLOAD_BYTES, UPLOAD_DIR

CHUNK_SIZE = 1024 * 1024


class UploadRejected(Exception):
    """File failed type or size validation."""


@dataclass
class StoredFile:
    filename: str
    original_name: str
    url: str
    size: int
    mime_type: str


def upload_root() -> Path:
    root = Path(UPLOAD_DIR)
    if not root.is_absolute():
        root = Path(__file__).resolve().parent / root
    root.mkdir(parents=True, exist_ok=True)
    return root


def check_file_type(filename: str, mime_type: str, extensions: Optional[Set[str]] = None) -> str:
    """
    Validate an extension/MIME pair against the allow-list.

    Returns:
        The lowercased extension (with dot)

    Raises:
        UploadRejected: extension or MIME type not allowed, or they disagree
    """
    ext = os.path.splitext(filename or "")[1].lower()
    allowed = ALLOWED_UPLOAD_TYPES.get(ext)
    if allowed is None or (extensions is not None and ext not in extensions):
        raise UploadRejected("Invalid file type")
    if (mime_type or "").lower() not in allowed:
        raise UploadRejected("Invalid file type")
    return ext


def save_upload(upload: UploadFile, extensions: Optional[Set[str]] = None) -> StoredFile:
    """
    Validate and persist one uploaded file.

    Raises:
        UploadRejected: bad type, empty filename, or larger than MAX_UPLOAD_BYTES
        OSError: the file could not be written (nothing is left on disk)
    """
    if not upload.filename:
        raise UploadRejected("No file uploaded")

    mime_type = (upload.content_type or "").lower()
    ext = check_file_type(upload.filename, mime_type, extensions)
    filename = f"{uuid.uuid4()}-{int(time.time() * 1000)}{ext}"
    target = upload_root() / filename

    size = 0
    try:
        with open(target, "wb") as buffer:
            while True:
                chunk = upload.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > MAX_UPLOAD_BYTES:
                    raise UploadRejected("File too large")
                buffer.write(chunk)
    except (UploadRejected, OSError):
        # Never leave a partial file behind
        target.unlink(missing_ok=True)
        raise

    if IS_DEV:
        print(f"[STORAGE] Stored {upload.filename!r} as {filename} ({size} bytes)")

    return StoredFile(
        filename=filename,
        original_name=upload.filename,
        url=f"/uploads/{filename}",
        size=size,
        mime_type=mime_type,
    )


def resolve_path(filename: str) -> Path:
    # Stored names never contain separators; anything else is not ours
    return upload_root() / Path(filename).name


def delete_file(filename: Optional[str]) -> bool:
    """Remove a stored file; returns False if it was already gone."""
    if not filename:
        return False
    path = resolve_path(filename)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        print(f"[STORAGE] Could not delete {filename}: {e}")
        return False
    return True

"""
projectcam/test_storage.py

Upload validation and cleanup on the local-disk store.

Run:
    pytest projectcam/test_storage.py -v
"""

import io
import os

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from projectcam import storage
from projectcam.storage import UploadRejected, save_upload, upload_root


class _FailingReader:
    """Yields one chunk, then fails like a dropped client connection."""

    def __init__(self):
        self.reads = 0

    def read(self, size=-1):
        self.reads += 1
        if self.reads == 1:
            return b"\xff\xd8" * 32
        raise OSError("Connection reset")


def _upload(file, filename="site.jpg", content_type="image/jpeg"):
    return UploadFile(file=file, filename=filename, headers=Headers({"content-type": content_type}))


class TestSaveUpload:
    def test_stores_file(self):
        stored = save_upload(_upload(io.BytesIO(b"\xff\xd8 jpeg")))
        path = upload_root() / stored.filename
        assert path.read_bytes() == b"\xff\xd8 jpeg"
        assert stored.size == 7
        assert stored.url == f"/uploads/{stored.filename}"
        assert storage.delete_file(stored.filename)
        assert not storage.delete_file(stored.filename)

    def test_read_error_leaves_nothing_behind(self):
        before = set(os.listdir(upload_root()))
        with pytest.raises(OSError):
            save_upload(_upload(_FailingReader()))
        assert set(os.listdir(upload_root())) == before

    def test_oversize_leaves_nothing_behind(self, monkeypatch):
        monkeypatch.setattr(storage, "MAX_UPLOAD_BYTES", 8)
        before = set(os.listdir(upload_root()))
        with pytest.raises(UploadRejected, match="File too large"):
            save_upload(_upload(io.BytesIO(b"x" * 64)))
        assert set(os.listdir(upload_root())) == before

    def test_type_checked_before_writing(self):
        before = set(os.listdir(upload_root()))
        with pytest.raises(UploadRejected, match="Invalid file type"):
            save_upload(_upload(io.BytesIO(b"MZ"), filename="setup.exe", content_type="application/octet-stream"))
        assert set(os.listdir(upload_root())) == before

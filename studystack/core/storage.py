import hashlib
import logging
import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO
from urllib.parse import urlencode

import oss2

from studystack.core.config import Settings
from studystack.core.security import sign_path

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class StorageError(Exception):
    pass


class FileTooLargeError(StorageError):
    pass


@dataclass(frozen=True)
class StoredBlob:
    path: str
    size: int
    sha256: str


def make_object_key(user_id: str, filename: str) -> str:
    """Bucket-relative key under the uploader's prefix, e.g. ``<uid>/file-1700000000000-1a2b3c4d.pdf``."""
    ext = PurePosixPath(filename or "").suffix.lower()
    return f"{user_id}/file-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"


def safe_key(key: str) -> str:
    parts = [p for p in PurePosixPath(key.replace("\\", "/")).parts if p not in ("", ".", "/")]
    if not parts or ".." in parts:
        raise StorageError(f"invalid object key: {key!r}")
    return "/".join(parts)


class BlobStore:
    """Stores uploaded bytes and hands back bucket-relative paths."""

    max_bytes: int

    def save(self, file_obj: BinaryIO, key: str, content_type: str | None = None) -> StoredBlob:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def download_url(self, key: str, base_url: str, expires: int) -> str:
        raise NotImplementedError

    def close(self) -> None:
        pass


class LocalBlobStore(BlobStore):
    def __init__(self, root: str | Path, bucket: str, max_bytes: int, signing_secret: str):
        self.root = Path(root) / bucket
        self.max_bytes = max_bytes
        self._signing_secret = signing_secret

    def resolve(self, key: str) -> Path:
        return self.root / safe_key(key)

    def save(self, file_obj, key, content_type=None):
        key = safe_key(key)
        target = self.resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        sha = hashlib.sha256()
        size = 0
        with open(target, "wb") as f:
            while True:
                chunk = file_obj.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_bytes:
                    f.close()
                    target.unlink(missing_ok=True)
                    raise FileTooLargeError(key)
                sha.update(chunk)
                f.write(chunk)
        logger.info("Stored blob path=%s size=%s", key, size)
        return StoredBlob(path=key, size=size, sha256=sha.hexdigest())

    def delete(self, key):
        os.remove(self.resolve(key))
        logger.info("Deleted blob path=%s", key)

    def download_url(self, key, base_url, expires):
        exp_ts = int(time.time()) + int(expires)
        query = urlencode({"path": key, "exp": exp_ts, "sig": sign_path(self._signing_secret, key, exp_ts)})
        return f"{base_url.rstrip('/')}/api/files/signed?{query}"


class OssBlobStore(BlobStore):
    def __init__(self, endpoint: str, bucket: str, access_key: str, secret: str, max_bytes: int):
        self.max_bytes = max_bytes
        self._bucket = oss2.Bucket(oss2.Auth(access_key, secret), endpoint, bucket)

    def save(self, file_obj, key, content_type=None):
        key = safe_key(key)
        data = file_obj.read(self.max_bytes + 1)
        if len(data) > self.max_bytes:
            raise FileTooLargeError(key)
        headers = {"Content-Type": content_type} if content_type else None
        try:
            self._bucket.put_object(key, data, headers=headers)
        except oss2.exceptions.OssError as e:
            raise StorageError(f"upload failed for {key}: {e}") from e
        logger.info("Stored blob in OSS path=%s size=%s", key, len(data))
        return StoredBlob(path=key, size=len(data), sha256=hashlib.sha256(data).hexdigest())

    def delete(self, key):
        try:
            self._bucket.delete_object(safe_key(key))
        except oss2.exceptions.OssError as e:
            raise StorageError(f"delete failed for {key}: {e}") from e
        logger.info("Deleted OSS blob path=%s", key)

    def download_url(self, key, base_url, expires):
        return self._bucket.sign_url("GET", safe_key(key), int(expires))


def build_blob_store(settings: Settings) -> BlobStore:
    max_bytes = settings.MAX_UPLOAD_MB * 1024 * 1024
    if settings.STORAGE_BACKEND.lower() == "oss":
        if not (settings.OSS_ENDPOINT and settings.OSS_BUCKET and settings.OSS_ACCESS_KEY and settings.OSS_SECRET):
            raise StorageError("STORAGE_BACKEND=oss requires OSS_ENDPOINT, OSS_BUCKET, OSS_ACCESS_KEY and OSS_SECRET")
        return OssBlobStore(
            settings.OSS_ENDPOINT, settings.OSS_BUCKET, settings.OSS_ACCESS_KEY, settings.OSS_SECRET, max_bytes
        )
    return LocalBlobStore(settings.UPLOAD_DIR, settings.STORAGE_BUCKET, max_bytes, settings.SIGNED_URL_SECRET)

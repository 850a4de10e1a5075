"""Storage helpers for receipt image derivatives (Google Cloud Storage or local disk)."""

from __future__ import annotations

import hashlib
import os
import sys
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple, cast

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.cloud import storage
import google.auth
from google.auth.credentials import Credentials

from receipt_scanner.exception import StorageError
from receipt_scanner.logger import get_logger
from receipt_scanner.models import StoredAsset
from receipt_scanner.utils.load_config import StorageSettings

logger = get_logger(__name__)


def build_storage_key(owner: str, role: str, filename: str, data: bytes,
                      when: Optional[datetime] = None) -> str:
    """
    Deterministic, collision-resistant key:
    {owner}/{YYYY-MM-DD}/{role}/{sha256[:16]}{ext}
    """
    when = when or datetime.now(timezone.utc)
    ext = os.path.splitext(filename or "")[1].lower()
    digest = hashlib.sha256(data).hexdigest()[:16]
    owner = (owner or "anonymous").strip("/")
    return f"{owner}/{when.strftime('%Y-%m-%d')}/{role}/{digest}{ext}"


class ArtifactStore(ABC):
    """put/get/presign capability used by the pipeline."""

    @abstractmethod
    def put(self, data: bytes, key: str, *, content_type: Optional[str] = None) -> StoredAsset:
        ...

    @abstractmethod
    def get(self, key_or_url: str, *, timeout: Optional[float] = None) -> bytes:
        ...

    @abstractmethod
    def presign(self, key: str, ttl_seconds: int = 3600) -> str:
        ...

    @abstractmethod
    def delete(self, key_or_url: str) -> bool:
        ...


# ---------------------------------------------------------------------
# Google Cloud Storage
# ---------------------------------------------------------------------

def is_gcs_uri(path: Optional[str]) -> bool:
    return bool(path and path.startswith("gs://"))


def parse_gcs_uri(uri: str) -> Tuple[str, str]:
    if not is_gcs_uri(uri):
        raise ValueError(f"Invalid GCS URI: {uri}")

    trimmed = uri[5:]
    bucket, _, blob = trimmed.partition("/")
    if not bucket or not blob:
        raise ValueError(f"Malformed GCS URI: {uri}")
    return bucket, blob


def _get_credentials() -> tuple[Optional[Credentials], Optional[str]]:
    scopes = ["https://www.googleapis.com/auth/devstorage.read_write"]
    try:
        creds, project = google.auth.default(scopes=scopes)
        creds = cast(Credentials, creds)
        project = cast(Optional[str], project)
        return creds, project
    except Exception as exc:
        logger.warning("Falling back to implicit storage credentials: %s", exc)
        return None, None


@lru_cache(maxsize=1)
def _get_storage_client() -> storage.Client:
    credentials, _ = _get_credentials()
    project = os.getenv("GCP_PROJECT_ID")
    if credentials:
        if project:
            return storage.Client(credentials=credentials, project=project)
        return storage.Client(credentials=credentials)
    if project:
        return storage.Client(project=project)
    return storage.Client()


class GCSArtifactStore(ArtifactStore):
    def __init__(self, bucket_name: str, prefix: str = "", client: Optional[storage.Client] = None,
                 download_timeout: float = 30.0):
        if not bucket_name:
            raise StorageError("GCS bucket is not configured", sys)
        self.bucket_name = bucket_name
        self.prefix = (prefix or "").strip("/")
        self._client = client
        self.download_timeout = download_timeout

    @property
    def client(self) -> storage.Client:
        if self._client is None:
            self._client = _get_storage_client()
        return self._client

    def _blob_name(self, key: str) -> str:
        key = key.lstrip("/")
        if self.prefix and not key.startswith(self.prefix + "/"):
            return f"{self.prefix}/{key}" if key else self.prefix
        return key

    def _resolve(self, key_or_url: str) -> Tuple[str, str]:
        if is_gcs_uri(key_or_url):
            try:
                return parse_gcs_uri(key_or_url)
            except ValueError as exc:
                logger.error("Rejected storage locator %s: %s", key_or_url, exc)
                raise StorageError(exc, sys)
        return self.bucket_name, self._blob_name(key_or_url)

    def put(self, data: bytes, key: str, *, content_type: Optional[str] = None) -> StoredAsset:
        blob_name = self._blob_name(key)
        try:
            blob = self.client.bucket(self.bucket_name).blob(blob_name)
            upload_kwargs = {}
            if content_type:
                upload_kwargs["content_type"] = content_type
            blob.upload_from_string(data, **upload_kwargs)
            gcs_uri = f"gs://{self.bucket_name}/{blob_name}"
            logger.info("Uploaded %d bytes to %s", len(data), gcs_uri)
            return StoredAsset(key=blob_name, url=gcs_uri, size_bytes=len(data))
        except (GoogleAPIError, OSError) as exc:
            logger.error("Failed to upload artifact %s: %s", key, exc)
            raise StorageError(exc, sys)

    def get(self, key_or_url: str, *, timeout: Optional[float] = None) -> bytes:
        bucket_name, blob_name = self._resolve(key_or_url)
        try:
            blob = self.client.bucket(bucket_name).blob(blob_name)
            data = blob.download_as_bytes(timeout=timeout or self.download_timeout)
            logger.debug("Downloaded %s/%s (%d bytes)", bucket_name, blob_name, len(data))
            return data
        except NotFound:
            logger.error("Blob not found for %s", key_or_url)
            raise StorageError(f"Blob not found: {key_or_url}", sys)
        except (GoogleAPIError, OSError) as exc:
            logger.error("Failed to download %s: %s", key_or_url, exc)
            raise StorageError(exc, sys)

    def presign(self, key: str, ttl_seconds: int = 3600) -> str:
        bucket_name, blob_name = self._resolve(key)
        try:
            blob = self.client.bucket(bucket_name).blob(blob_name)
            return blob.generate_signed_url(
                version="v4", expiration=timedelta(seconds=ttl_seconds), method="GET"
            )
        except (GoogleAPIError, ValueError, AttributeError) as exc:
            logger.error("Failed to generate signed URL for %s: %s", key, exc)
            raise StorageError(exc, sys)

    def delete(self, key_or_url: str) -> bool:
        bucket_name, blob_name = self._resolve(key_or_url)
        try:
            self.client.bucket(bucket_name).blob(blob_name).delete()
            logger.info("Deleted GCS artifact gs://%s/%s", bucket_name, blob_name)
            return True
        except NotFound:
            logger.warning("Attempted to delete missing GCS blob gs://%s/%s", bucket_name, blob_name)
            return False
        except GoogleAPIError as exc:
            logger.error("Failed to delete %s: %s", key_or_url, exc)
            raise StorageError(exc, sys)


# ---------------------------------------------------------------------
# Local filesystem (development and tests)
# ---------------------------------------------------------------------

class LocalArtifactStore(ArtifactStore):
    def __init__(self, root: str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key_or_url: str) -> Path:
        if key_or_url.startswith("file://"):
            path = Path(key_or_url[len("file://"):]).resolve()
        else:
            path = (self.root / key_or_url.lstrip("/")).resolve()
        if self.root not in path.parents and path != self.root:
            raise StorageError(f"Key escapes storage root: {key_or_url}", sys)
        return path

    def put(self, data: bytes, key: str, *, content_type: Optional[str] = None) -> StoredAsset:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            logger.error("Failed to write artifact %s: %s", key, exc)
            raise StorageError(exc, sys)
        logger.info("Stored %d bytes at %s", len(data), path)
        return StoredAsset(key=key.lstrip("/"), url=path.as_uri(), size_bytes=len(data))

    def get(self, key_or_url: str, *, timeout: Optional[float] = None) -> bytes:
        path = self._path(key_or_url)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            logger.error("Artifact not found at %s", path)
            raise StorageError(f"Artifact not found: {key_or_url}", sys)
        except OSError as exc:
            raise StorageError(exc, sys)

    def presign(self, key: str, ttl_seconds: int = 3600) -> str:
        # Local files need no signature; the file URL is returned as-is.
        return self._path(key).as_uri()

    def delete(self, key_or_url: str) -> bool:
        path = self._path(key_or_url)
        if path.exists():
            path.unlink()
            logger.info("Deleted local artifact %s", path)
            return True
        return False


def create_artifact_store(settings: StorageSettings) -> ArtifactStore:
    if settings.backend == "local":
        return LocalArtifactStore(settings.local_root)
    if settings.backend == "gcs":
        return GCSArtifactStore(
            settings.bucket_name,
            prefix=settings.artifacts_prefix,
            download_timeout=settings.download_timeout_s,
        )
    raise StorageError(f"Unsupported storage backend '{settings.backend}'. Available: ['gcs', 'local']", sys)

"""
Durable object storage for generated and cropped images.

Two backends share one interface: a local directory (dev / tests) and a
Google Cloud Storage bucket.  Both return a public URL per upload.
"""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import Optional

from google.api_core import exceptions as gapi_exceptions
from google.cloud import storage

from config.settings import AppConfig, StorageConfig
from imaging.helpers import extension_for
from utils.exceptions import ConfigurationError, StorageError
from utils.log_config import get_logger
from utils.retry import retry

log = get_logger(__name__)


def generated_key(product_id: str, index: int, mime_type: str) -> str:
    """``products/generated/<id>/<ms>-v<index>-<uuid>.<ext>``; *index* is 1-based."""
    ms = int(time.time() * 1000)
    return f"products/generated/{product_id}/{ms}-v{index}-{uuid.uuid4()}.{extension_for(mime_type)}"


def crop_key() -> str:
    return f"products/crops/{int(time.time() * 1000)}-{uuid.uuid4()}.png"


class ObjectStore:
    """Upload bytes, get a public URL back.  Retries transient failures."""

    name = "base"

    def __init__(self, cfg: StorageConfig) -> None:
        self.cfg = cfg

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        put = retry(
            max_attempts=self.cfg.upload_attempts,
            backoff_base=0.5,
            exceptions=(OSError, gapi_exceptions.GoogleAPIError),
        )(self._put)
        try:
            url = put(key, data, content_type)
        except (OSError, gapi_exceptions.GoogleAPIError) as exc:
            raise StorageError(f"Upload of {key} failed: {exc}", details={"key": key}) from exc
        log.debug("Stored %s (%d B) → %s", key, len(data), url)
        return url

    def _put(self, key: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError


class LocalObjectStore(ObjectStore):
    name = "local"

    def __init__(self, cfg: StorageConfig, root: Path) -> None:
        super().__init__(cfg)
        self.root = root

    def _put(self, key: str, data: bytes, content_type: str) -> str:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)
        return f"{self.cfg.public_base_url.rstrip('/')}/{key}"

    def path_for(self, key: str) -> Path:
        return self.root / key


class GCSObjectStore(ObjectStore):
    name = "gcs"

    def __init__(self, cfg: StorageConfig, client: Optional[storage.Client] = None) -> None:
        super().__init__(cfg)
        if not cfg.bucket:
            raise ConfigurationError("Storage bucket is not configured", code="STORAGE_NOT_CONFIGURED")
        self.client = client or storage.Client()
        self.bucket = self.client.bucket(cfg.bucket)

    def _put(self, key: str, data: bytes, content_type: str) -> str:
        blob = self.bucket.blob(key)
        blob.upload_from_string(data, content_type=content_type)
        blob.make_public()
        return f"https://storage.googleapis.com/{self.cfg.bucket}/{key}"


def build_store(app: AppConfig) -> ObjectStore:
    backend = app.storage.backend
    if backend == "local":
        return LocalObjectStore(app.storage, app.paths.storage_dir)
    if backend == "gcs":
        return GCSObjectStore(app.storage)
    raise ConfigurationError(f"Unknown storage backend: {backend}", code="STORAGE_NOT_CONFIGURED")

"""Tests for object storage backends."""

import re
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as gapi_exceptions

from config.settings import AppConfig, StorageConfig
from core.storage import GCSObjectStore, LocalObjectStore, build_store, crop_key, generated_key
from utils.exceptions import ConfigurationError, StorageError


class TestKeys:

    def test_generated_key_layout(self):
        key = generated_key("P1", 2, "image/jpeg")
        assert re.fullmatch(r"products/generated/P1/\d{13}-v2-[0-9a-f-]{36}\.jpg", key)

    def test_generated_keys_unique(self):
        assert generated_key("P1", 1, "image/png") != generated_key("P1", 1, "image/png")

    def test_crop_key(self):
        assert re.fullmatch(r"products/crops/\d{13}-[0-9a-f-]{36}\.png", crop_key())


class TestLocalStore:

    def test_upload_writes_file_and_returns_url(self, tmp_dir):
        store = LocalObjectStore(StorageConfig(public_base_url="http://media.test/"), tmp_dir)
        url = store.upload("products/crops/a.png", b"data", "image/png")
        assert url == "http://media.test/products/crops/a.png"
        assert store.path_for("products/crops/a.png").read_bytes() == b"data"
        assert not list(tmp_dir.rglob("*.tmp"))

    def test_os_error_becomes_storage_error(self, tmp_dir):
        blocker = tmp_dir / "products"
        blocker.write_text("not a directory")
        store = LocalObjectStore(StorageConfig(upload_attempts=1), tmp_dir)
        with pytest.raises(StorageError) as exc:
            store.upload("products/x.png", b"d", "image/png")
        assert exc.value.status == 502
        assert exc.value.details["key"] == "products/x.png"


class TestGCSStore:

    def _store(self, attempts=3):
        client = MagicMock()
        store = GCSObjectStore(StorageConfig(backend="gcs", bucket="shop-media", upload_attempts=attempts),
                               client=client)
        return store, client.bucket.return_value.blob.return_value, client

    def test_upload_public_url(self):
        store, blob, client = self._store()
        url = store.upload("products/crops/a.png", b"png", "image/png")
        assert url == "https://storage.googleapis.com/shop-media/products/crops/a.png"
        client.bucket.assert_called_once_with("shop-media")
        blob.upload_from_string.assert_called_once_with(b"png", content_type="image/png")
        blob.make_public.assert_called_once()

    @patch("utils.retry.time.sleep")
    def test_transient_failure_retried(self, sleep):
        store, blob, _ = self._store()
        blob.upload_from_string.side_effect = [gapi_exceptions.ServiceUnavailable("busy"), None]
        store.upload("k.png", b"png", "image/png")
        assert blob.upload_from_string.call_count == 2

    @patch("utils.retry.time.sleep")
    def test_persistent_failure(self, sleep):
        store, blob, _ = self._store(attempts=2)
        blob.upload_from_string.side_effect = gapi_exceptions.Forbidden("denied")
        with pytest.raises(StorageError):
            store.upload("k.png", b"png", "image/png")
        assert blob.upload_from_string.call_count == 2

    def test_bucket_required(self):
        with pytest.raises(ConfigurationError):
            GCSObjectStore(StorageConfig(backend="gcs", bucket=""), client=MagicMock())


def test_build_store_local(test_config):
    assert isinstance(build_store(test_config), LocalObjectStore)


def test_build_store_unknown_backend():
    with pytest.raises(ConfigurationError):
        build_store(AppConfig(storage=StorageConfig(backend="ftp")))

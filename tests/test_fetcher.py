"""Tests for the source-image fetcher."""

import socket
import threading
from unittest.mock import MagicMock, patch

import pytest
import requests
from urllib3.exceptions import ReadTimeoutError

from imaging.fetcher import ImageFetcher
from utils.exceptions import FetchError, FetchTimeoutError, ValidationError


def _response(status=200, body=b"\x89PNG\r\n\x1a\nabc", content_type="image/png", length=None):
    resp = MagicMock()
    resp.status_code = status
    headers = {"content-type": content_type}
    if length is not None:
        headers["content-length"] = str(length)
    resp.headers = headers
    resp.iter_content.return_value = [body] if body else []
    return resp


def _fetcher(*responses, max_bytes=1024):
    session = MagicMock()
    session.get.side_effect = list(responses)
    return ImageFetcher(timeout=5, max_bytes=max_bytes, session=session), session


class TestFetch:

    def test_success_hashes_body(self):
        fetcher, session = _fetcher(_response(content_type="image/webp"))
        img = fetcher.fetch("https://cdn.test/a.webp")
        assert img.data.startswith(b"\x89PNG")
        assert img.mime_type == "image/webp"
        assert len(img.hash) == 64
        session.get.assert_called_once_with("https://cdn.test/a.webp", timeout=5, stream=True)

    @pytest.mark.parametrize("content_type,body,expected", [
        ("application/octet-stream", b"\xff\xd8\xff\xe0jpeg", "image/jpeg"),
        ("", b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        ("binary/octet-stream", b"unknown", "image/png"),
    ])
    def test_mime_sniffed_without_image_content_type(self, content_type, body, expected):
        fetcher, _ = _fetcher(_response(body=body, content_type=content_type))
        assert fetcher.fetch("https://cdn.test/a").mime_type == expected

    @pytest.mark.parametrize("url", ["", "ftp://x/y.png", "data:image/png;base64,AAA", "/local.png"])
    def test_non_http_rejected(self, url):
        fetcher, session = _fetcher()
        with pytest.raises(ValidationError):
            fetcher.fetch(url)
        session.get.assert_not_called()

    @pytest.mark.parametrize("status,expected", [(404, 400), (403, 400), (500, 422), (410, 422)])
    def test_http_errors(self, status, expected):
        fetcher, _ = _fetcher(_response(status=status))
        with pytest.raises(FetchError) as exc:
            fetcher.fetch("https://cdn.test/a.png")
        assert exc.value.status == expected
        assert exc.value.details["upstreamStatus"] == status

    def test_declared_oversize_is_413(self):
        fetcher, _ = _fetcher(_response(length=10_000), max_bytes=100)
        with pytest.raises(FetchError) as exc:
            fetcher.fetch("https://cdn.test/a.png")
        assert exc.value.status == 413
        assert exc.value.code == "IMAGE_TOO_LARGE"

    def test_streamed_oversize_is_413(self):
        fetcher, _ = _fetcher(_response(body=b"x" * 200), max_bytes=100)
        with pytest.raises(FetchError) as exc:
            fetcher.fetch("https://cdn.test/a.png")
        assert exc.value.status == 413

    def test_empty_body_is_422(self):
        fetcher, _ = _fetcher(_response(body=b""))
        with pytest.raises(FetchError) as exc:
            fetcher.fetch("https://cdn.test/a.png")
        assert exc.value.status == 422
        assert exc.value.code == "IMAGE_EMPTY"

    def test_timeout_is_504(self):
        fetcher, _ = _fetcher(requests.Timeout("slow"))
        with pytest.raises(FetchTimeoutError) as exc:
            fetcher.fetch("https://cdn.test/a.png")
        assert exc.value.status == 504

    def test_body_read_timeout_is_504(self):
        resp = _response()
        resp.iter_content.side_effect = requests.ConnectionError(
            ReadTimeoutError(None, "https://cdn.test/a.png", "Read timed out."),
        )
        fetcher, _ = _fetcher(resp)
        with pytest.raises(FetchTimeoutError) as exc:
            fetcher.fetch("https://cdn.test/a.png")
        assert exc.value.status == 504
        resp.close.assert_called_once()

    def test_body_connection_reset_is_422(self):
        resp = _response()
        resp.iter_content.side_effect = requests.ConnectionError("reset by peer")
        fetcher, _ = _fetcher(resp)
        with pytest.raises(FetchError) as exc:
            fetcher.fetch("https://cdn.test/a.png")
        assert exc.value.status == 422

    def test_stalled_body_from_live_server_is_504(self, stalling_server):
        fetcher = ImageFetcher(timeout=0.5, max_bytes=1024)
        with pytest.raises(FetchTimeoutError) as exc:
            fetcher.fetch(stalling_server)
        assert exc.value.status == 504

    @patch("utils.retry.time.sleep")
    def test_connection_drop_retried_once(self, sleep):
        fetcher, session = _fetcher(requests.ConnectionError("reset"), _response())
        img = fetcher.fetch("https://cdn.test/a.png")
        assert img.size > 0
        assert session.get.call_count == 2
        sleep.assert_called_once()


class TestFetchMany:

    def test_skips_failures_keeps_order(self):
        fetcher, _ = _fetcher(_response(status=404), _response(body=b"one"), _response(body=b"two"))
        batch = fetcher.fetch_many(["https://x/0", "https://x/1", "https://x/2"], max_total_bytes=1000)
        assert [i.url for i in batch.images] == ["https://x/1", "https://x/2"]
        assert batch.failures[0]["url"] == "https://x/0"
        assert batch.hashes == [i.hash for i in batch.images]

    def test_total_cap_drops_later_images(self):
        fetcher, _ = _fetcher(_response(body=b"a" * 10), _response(body=b"b" * 10))
        batch = fetcher.fetch_many(["https://x/0", "https://x/1"], max_total_bytes=15)
        assert [i.url for i in batch.images] == ["https://x/0"]

    def test_first_image_kept_even_over_cap(self):
        fetcher, _ = _fetcher(_response(body=b"a" * 50))
        batch = fetcher.fetch_many(["https://x/0"], max_total_bytes=10)
        assert len(batch.images) == 1

    def test_all_missing_is_400(self):
        fetcher, _ = _fetcher(_response(status=404), _response(status=500))
        with pytest.raises(FetchError) as exc:
            fetcher.fetch_many(["https://x/0", "https://x/1"], max_total_bytes=1000)
        assert exc.value.status == 400
        assert exc.value.code == "SOURCE_IMAGES_UNUSABLE"
        assert len(exc.value.details["failures"]) == 2

    def test_all_unreadable_is_422(self):
        fetcher, _ = _fetcher(_response(status=500))
        with pytest.raises(FetchError) as exc:
            fetcher.fetch_many(["https://x/0"], max_total_bytes=1000)
        assert exc.value.status == 422


@pytest.fixture
def stalling_server():
    """Sends headers plus 10 of 1000 promised bytes, then goes quiet."""
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(1)
    release = threading.Event()

    def serve():
        conn, _ = srv.accept()
        try:
            conn.recv(4096)
            conn.sendall(
                b"HTTP/1.1 200 OK\r\nContent-Type: image/png\r\n"
                b"Content-Length: 1000\r\n\r\n" + b"\x89PNG\r\n\x1a\nab"
            )
            release.wait(5)
        finally:
            conn.close()

    worker = threading.Thread(target=serve, daemon=True)
    worker.start()
    yield f"http://127.0.0.1:{srv.getsockname()[1]}/stall.png"
    release.set()
    worker.join(2)
    srv.close()

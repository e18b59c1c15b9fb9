"""Fetch source images over HTTP with size and time limits."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests
from urllib3.exceptions import ReadTimeoutError

from config.settings import DEFAULT_HEADERS
from imaging.helpers import pick_mime_type, sha256_hex, sniff_mime_type
from utils.exceptions import FetchError, FetchTimeoutError, ValidationError
from utils.log_config import get_logger
from utils.retry import retry

log = get_logger(__name__)

_CHUNK = 256 * 1024


@dataclass
class SourceImage:
    url:       str
    data:      bytes
    mime_type: str
    hash:      str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class FetchBatch:
    images:   List[SourceImage]       = field(default_factory=list)
    failures: List[Dict[str, object]] = field(default_factory=list)

    @property
    def hashes(self) -> List[str]:
        return [img.hash for img in self.images]


def _is_connection_drop(exc: BaseException) -> bool:
    return not isinstance(exc, requests.Timeout)


def _is_read_timeout(exc: BaseException) -> bool:
    """``iter_content`` re-raises urllib3 read timeouts as ``ConnectionError``."""
    if isinstance(exc, requests.Timeout):
        return True
    return isinstance(exc, requests.ConnectionError) and bool(exc.args) and isinstance(
        exc.args[0], ReadTimeoutError,
    )


class ImageFetcher:
    """
    One ``requests.Session`` per fetcher.

    Failures are classified into ``FetchError`` (400 / 413 / 422)
    or ``FetchTimeoutError`` (504).
    """

    def __init__(
        self,
        timeout: float = 20,
        max_bytes: int = 50 * 1024 * 1024,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)

    # ── public ──────────────────────────────────────────────
    def fetch(self, url: str) -> SourceImage:
        if not url or not url.lower().startswith(("http://", "https://")):
            raise ValidationError(f"Not a fetchable image URL: {url!r}", code="INVALID_IMAGE_URL")

        try:
            resp = self._get(url)
        except requests.Timeout as exc:
            raise FetchTimeoutError("Timed out while fetching source image") from exc
        except requests.RequestException as exc:
            raise FetchError(
                f"Failed to fetch source image: {exc}", status=400,
            ) from exc

        try:
            data = self._read_body(resp)
        except requests.RequestException as exc:
            if _is_read_timeout(exc):
                raise FetchTimeoutError("Timed out while reading source image") from exc
            raise FetchError(f"Failed while reading source image: {exc}") from exc
        finally:
            resp.close()

        content_type = resp.headers.get("content-type") or ""
        if content_type.lower().startswith("image/"):
            mime = pick_mime_type(content_type)
        else:
            mime = sniff_mime_type(data)
        log.debug("Fetched %s (%d B, %s)", url[:80], len(data), mime)
        return SourceImage(url=url, data=data, mime_type=mime, hash=sha256_hex(data))

    def fetch_many(
        self,
        urls: List[str],
        max_total_bytes: int,
    ) -> FetchBatch:
        """
        Fetch reference images in order, skipping failures.

        The first usable image is always kept; later ones are dropped
        once *max_total_bytes* would be exceeded.  Raises when nothing
        could be used: 400 if any source was missing/forbidden, else 422.
        """
        batch = FetchBatch()
        total = 0
        for url in urls:
            try:
                img = self.fetch(url)
            except (FetchError, ValidationError) as exc:
                log.warning("Source image skipped: %s — %s", url[:80], exc.message)
                batch.failures.append({"url": url, "message": exc.message, "status": exc.status})
                continue

            if batch.images and total + img.size > max_total_bytes:
                log.info("Reference %s dropped — total payload cap reached", url[:80])
                continue
            batch.images.append(img)
            total += img.size

        if not batch.images:
            detail = " | ".join(f"{f['url']}: {f['message']}" for f in batch.failures)
            status = 400 if any(f["status"] in (400, 403, 404) for f in batch.failures) else 422
            raise FetchError(
                "None of the selected source images could be used. "
                + (detail or "No valid image references available."),
                status=status,
                code="SOURCE_IMAGES_UNUSABLE",
                details={"failures": batch.failures},
            )
        return batch

    # ── internals ───────────────────────────────────────────
    @retry(max_attempts=2, backoff_base=0.5,
           exceptions=(requests.ConnectionError,), when=_is_connection_drop)
    def _get(self, url: str) -> requests.Response:
        resp = self.session.get(url, timeout=self.timeout, stream=True)
        if resp.status_code >= 400:
            resp.close()
            raise FetchError(
                f"Failed to fetch source image ({resp.status_code})",
                status=400 if resp.status_code in (403, 404) else 422,
                details={"upstreamStatus": resp.status_code},
            )
        return resp

    def _read_body(self, resp: requests.Response) -> bytes:
        declared = resp.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            raise FetchError("Source image is too large", status=413, code="IMAGE_TOO_LARGE")

        buf = bytearray()
        for chunk in resp.iter_content(chunk_size=_CHUNK):
            if not chunk:
                continue
            buf.extend(chunk)
            if len(buf) > self.max_bytes:
                raise FetchError("Source image is too large", status=413, code="IMAGE_TOO_LARGE")

        if not buf:
            raise FetchError("Source image is empty", status=422, code="IMAGE_EMPTY")
        return bytes(buf)

"""Small image utilities shared by fetcher, generator & post-processor."""

from __future__ import annotations

import hashlib
from io import BytesIO
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from utils.log_config import get_logger

log = get_logger(__name__)

_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def pick_mime_type(content_type: Optional[str]) -> str:
    """Map a Content-Type header onto one of the mime types we send upstream."""
    if not content_type:
        return "image/png"
    low = content_type.lower()
    if "png" in low:
        return "image/png"
    if "webp" in low:
        return "image/webp"
    if "jpeg" in low or "jpg" in low:
        return "image/jpeg"
    return "image/png"


def sniff_mime_type(data: bytes, fallback: str = "image/png") -> str:
    for signature, mime in _SIGNATURES:
        if data.startswith(signature):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return fallback


def extension_for(mime_type: str) -> str:
    if "jpeg" in mime_type or "jpg" in mime_type:
        return "jpg"
    if "webp" in mime_type:
        return "webp"
    return "png"


def output_format_for(mime_type: str) -> str:
    ext = extension_for(mime_type)
    return "jpeg" if ext == "jpg" else ext


def has_transparency(data: bytes) -> bool:
    """True only for images that carry real alpha with at least one non-opaque pixel."""
    try:
        with Image.open(BytesIO(data)) as img:
            if img.mode in ("P", "L", "RGB") and "transparency" in img.info:
                img = img.convert("RGBA")
            if img.mode not in ("RGBA", "LA", "PA"):
                return False
            alpha = np.asarray(img.getchannel("A"))
    except (UnidentifiedImageError, OSError) as exc:
        log.debug("Alpha check skipped — undecodable image: %s", exc)
        return False
    return bool((alpha < 255).any())

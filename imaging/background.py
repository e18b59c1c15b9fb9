"""Transparency pass for generated images, backed by ``rembg``."""

from __future__ import annotations

import gc
import threading
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, Optional

import numpy as np
from PIL import Image

from config.settings import BackgroundRemovalConfig
from imaging.helpers import has_transparency
from utils.log_config import get_logger

log = get_logger(__name__)


@dataclass
class BGRemovalResult:
    applied:   bool
    data:      bytes
    mime_type: str
    stats:     Dict[str, Any] = field(default_factory=dict)


def _rembg_remove(data: bytes) -> bytes:
    from rembg import remove

    return remove(data)


class BackgroundRemover:
    """
    Applied only when the model returned an image without real alpha.

    ``rembg`` calls are serialised through a lock; the ONNX session is
    not guaranteed thread-safe.  Output is rejected (original kept)
    when it removed almost nothing, almost everything, or left only
    a tiny subject.
    """

    provider = "rembg"

    def __init__(self, cfg: BackgroundRemovalConfig) -> None:
        self.cfg = cfg
        self._lock = threading.Lock()

    @property
    def configured(self) -> bool:
        if not self.cfg.enabled:
            return False
        try:
            import rembg  # noqa: F401
        except ImportError:
            return False
        return True

    def ensure_transparent(self, data: bytes, mime_type: str) -> BGRemovalResult:
        if has_transparency(data):
            return BGRemovalResult(False, data, mime_type, {"reason": "already_transparent"})
        if not self.cfg.enabled:
            return BGRemovalResult(False, data, mime_type, {"reason": "disabled"})

        try:
            with self._lock:
                out_data = _rembg_remove(data)
        except Exception as exc:
            # rembg failures fall back to the model output as-is
            log.error("BG removal error: %s", exc)
            return BGRemovalResult(False, data, mime_type, {"error": str(exc)})

        verdict = self._judge(out_data)
        if verdict is None:
            return BGRemovalResult(False, data, mime_type, {"reason": "rejected"})

        log.info("BG removal kept %.1f%% of pixels", verdict["ratio"] * 100)
        return BGRemovalResult(True, out_data, "image/png", verdict)

    def _judge(self, out_data: bytes) -> Optional[Dict[str, Any]]:
        c = self.cfg
        with Image.open(BytesIO(out_data)) as result:
            rgba = result.convert("RGBA")
        alpha = np.asarray(rgba)[:, :, 3]
        total_px = alpha.size
        mask = alpha > c.alpha_floor
        ratio = float(mask.sum()) / max(total_px, 1)

        if ratio < c.min_retention or ratio > c.max_retention:
            log.debug("BG removal rejected — retention %.3f", ratio)
            return None

        coords = np.argwhere(mask)
        mn, mx = coords.min(0), coords.max(0)
        obj = (mx[1] - mn[1] + 1) * (mx[0] - mn[0] + 1)
        if obj / total_px < c.min_object_ratio:
            log.debug("BG removal rejected — subject too small")
            return None

        del alpha, rgba
        gc.collect()
        return {"ratio": ratio, "provider": self.provider}

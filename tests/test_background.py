"""Tests for the transparency pass (rembg mocked)."""

from io import BytesIO
from unittest.mock import patch

import pytest
from PIL import Image

from config.settings import BackgroundRemovalConfig
from imaging.background import BackgroundRemover

from tests.helpers import make_png


def _cutout(width=100, height=100, box=(20, 10, 80, 90)):
    """RGBA PNG: opaque *box* (if any), transparent elsewhere."""
    img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    if box is not None:
        img.paste((120, 40, 40, 255), box)
    buf = BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture
def remover():
    return BackgroundRemover(BackgroundRemovalConfig(enabled=True))


class TestBackgroundRemover:

    def test_already_transparent_passes_through(self, remover):
        data = _cutout()
        with patch("imaging.background._rembg_remove") as rm:
            res = remover.ensure_transparent(data, "image/png")
        rm.assert_not_called()
        assert not res.applied
        assert res.data == data
        assert res.stats["reason"] == "already_transparent"

    def test_disabled(self):
        remover = BackgroundRemover(BackgroundRemovalConfig(enabled=False))
        assert not remover.configured
        res = remover.ensure_transparent(make_png(), "image/jpeg")
        assert not res.applied
        assert res.mime_type == "image/jpeg"

    def test_accepted_cutout(self, remover):
        with patch("imaging.background._rembg_remove", return_value=_cutout()):
            res = remover.ensure_transparent(make_png(100, 100), "image/jpeg")
        assert res.applied
        assert res.mime_type == "image/png"
        assert res.stats["provider"] == "rembg"
        assert res.stats["ratio"] == pytest.approx(0.48)

    def test_everything_removed_is_rejected(self, remover):
        with patch("imaging.background._rembg_remove", return_value=_cutout(box=None)):
            res = remover.ensure_transparent(make_png(100, 100), "image/png")
        assert not res.applied
        assert res.stats["reason"] == "rejected"

    def test_tiny_subject_is_rejected(self, remover):
        # 9% retained: above the retention floor, below the subject-size floor
        with patch("imaging.background._rembg_remove", return_value=_cutout(box=(0, 0, 30, 30))):
            res = remover.ensure_transparent(make_png(100, 100), "image/png")
        assert not res.applied

    def test_rembg_error_keeps_original(self, remover):
        original = make_png(100, 100)
        with patch("imaging.background._rembg_remove", side_effect=RuntimeError("onnx")):
            res = remover.ensure_transparent(original, "image/png")
        assert not res.applied
        assert res.data == original
        assert res.stats["error"] == "onnx"

"""Tests for the bulk progress store."""

import pytest

from core.progress import BulkProgress


@pytest.fixture
def progress(test_config):
    return BulkProgress(test_config.paths.progress_db)


class TestBulkProgress:

    def test_done(self, progress):
        assert not progress.is_done("P1")
        progress.mark_done("P1", {"generatedImageUrls": ["u"]})
        assert progress.is_done("P1")
        assert progress.stats() == {"done": 1}

    def test_failed_then_done(self, progress):
        progress.mark_failed("P1", "quota", 429, "RESOURCE_EXHAUSTED")
        assert not progress.is_done("P1")
        [failure] = progress.failures()
        assert failure["product_id"] == "P1"
        assert failure["http_status"] == 429
        assert failure["attempts"] == 1

        progress.mark_done("P1", {})
        assert progress.is_done("P1")
        assert progress.failures() == []

    def test_attempts_counted(self, progress):
        progress.mark_failed("P1", "a")
        progress.mark_failed("P1", "b")
        assert progress.failures()[0]["attempts"] == 2
        assert progress.failures()[0]["error"] == "b"

    def test_reset(self, progress):
        progress.mark_done("P1", {})
        progress.mark_failed("P2", "x")
        progress.reset()
        assert progress.stats() == {}

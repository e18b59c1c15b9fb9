"""Tests for anchored multi-angle orchestration."""

import base64
import random
from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from config.settings import GenerationConfig
from config.templates import ANCHOR_NOTE, PROFILES, PROFILES_BY_ID, SAME_IDENTITY_SUFFIX
from core.cascade import ModelCascade
from core.gemini import GeminiImageClient
from core.models import AngleFailure, GenerationRequest, ProductContext
from core.orchestrator import AngleOrchestrator, BatchState, resolve_profile
from imaging.fetcher import FetchBatch
from utils.exceptions import BatchFailureError, StorageError, UpstreamError

from tests.helpers import FakeGeminiClient, make_png, make_source, ok_result

SOURCES = FetchBatch(images=[make_source("https://cdn.test/a.png")])


def _publish(success):
    return replace(success, image_url=f"https://media.test/{success.angle}.png")


def _orchestrator(script, publish=_publish, candidates=("m1", "m2")):
    client = FakeGeminiClient(script)
    orch = AngleOrchestrator(ModelCascade(client, candidates), publish=publish, rng=random.Random(3))
    return orch, client


def _request(angles, profile=None, **kw):
    return GenerationRequest(
        source_image_urls=["https://cdn.test/a.png"], angles=angles, preferred_profile_id=profile, **kw,
    )


def _texts(parts):
    return [p["text"] for p in parts if "text" in p]


class TestResolveProfile:

    def test_known_id(self):
        assert resolve_profile("model_04", random.Random(0)) is PROFILES_BY_ID["model_04"]

    @pytest.mark.parametrize("preferred", [None, "", "model_99"])
    def test_fallback_is_random_profile(self, preferred):
        assert resolve_profile(preferred, random.Random(0)) in PROFILES


class TestBatchState:

    def test_first_success_sets_anchor_once(self):
        orch, _ = _orchestrator({"m1": [ok_result("a"), ok_result("b")]})
        result = orch.run(_request(["front", "back"], "model_02"), SOURCES)
        first, second = result.successes
        assert first.anchor_url is None
        assert second.anchor_url == first.image_url == "https://media.test/front.png"

    def test_state_is_immutable(self):
        state = BatchState()
        nxt = state.with_failure(AngleFailure("front", "boom", 500))
        assert nxt is not state
        assert len(nxt.failures) == 1
        assert state.failures == ()


class TestOrchestrator:

    def test_all_angles_succeed_with_one_profile(self):
        orch, client = _orchestrator({"m1": [ok_result("a"), ok_result("b"), ok_result("c")]})
        result = orch.run(_request(["front", "left", "back"], "model_05"), SOURCES)
        assert [s.angle for s in result.successes] == ["front", "left", "back"]
        assert {s.profile.id for s in result.successes} == {"model_05"}
        assert result.profile.id == "model_05"
        assert not result.partial_success
        assert result.generated_urls == [f"https://media.test/{a}.png" for a in ("front", "left", "back")]

    def test_later_angles_carry_anchor_and_identity_line(self):
        orch, client = _orchestrator({"m1": [ok_result("a"), ok_result("b")]})
        orch.run(_request(["front", "back"]), SOURCES)
        first_parts, second_parts = client.calls[0][1], client.calls[1][1]
        assert ANCHOR_NOTE not in _texts(first_parts)
        assert ANCHOR_NOTE in _texts(second_parts)
        assert SAME_IDENTITY_SUFFIX not in first_parts[0]["text"]
        assert SAME_IDENTITY_SUFFIX in second_parts[0]["text"]

    def test_partial_success(self):
        orch, _ = _orchestrator({
            "m1": [ok_result("a"), UpstreamError("quota", status=429)],
            "m2": [UpstreamError("quota", status=429)],
        })
        result = orch.run(_request(["front", "back"]), SOURCES)
        assert [s.angle for s in result.successes] == ["front"]
        assert [f.angle for f in result.failures] == ["back"]
        assert result.failures[0].status == 429
        assert result.partial_success

    def test_first_angle_failure_makes_next_success_the_anchor(self):
        orch, client = _orchestrator({
            "m1": [UpstreamError("down", status=503), ok_result("b"), ok_result("c")],
            "m2": [UpstreamError("down", status=503)],
        })
        result = orch.run(_request(["front", "left", "back"]), SOURCES)
        left, back = result.successes
        assert left.anchor_url is None
        assert back.anchor_url == left.image_url

    def test_publish_failure_is_angle_failure(self):
        calls = []

        def flaky(success):
            calls.append(success.angle)
            if success.angle == "front":
                raise StorageError("bucket down")
            return _publish(success)

        orch, _ = _orchestrator({"m1": [ok_result("a"), ok_result("b")]}, publish=flaky)
        result = orch.run(_request(["front", "back"]), SOURCES)
        assert [f.code for f in result.failures] == ["STORAGE_UPLOAD_FAILED"]
        assert result.successes[0].angle == "back"
        assert result.successes[0].anchor_url is None

    def test_all_fail_with_quota_is_429(self):
        orch, _ = _orchestrator({
            "m1": [UpstreamError("boom", status=500), UpstreamError("quota", status=429)],
            "m2": [UpstreamError("boom", status=500), UpstreamError("quota", status=429)],
        })
        with pytest.raises(BatchFailureError) as exc:
            orch.run(_request(["front", "back"]), SOURCES)
        assert exc.value.status == 429
        assert exc.value.message.startswith("front: ")
        assert " | back: " in exc.value.message
        assert len(exc.value.failures) == 2

    def test_quota_cause_survives_later_fatal_angle(self):
        orch, _ = _orchestrator({
            "m1": [UpstreamError("quota", status=429), UpstreamError("bad key", status=400)],
            "m2": [UpstreamError("quota", status=429)],
        })
        with pytest.raises(BatchFailureError) as exc:
            orch.run(_request(["front", "back"]), SOURCES)
        assert exc.value.status == 429
        assert [f["status"] for f in exc.value.failures] == [429, 400]

    def test_all_fail_otherwise_502(self):
        orch, _ = _orchestrator({"m1": [UpstreamError("bad key", status=400)]})
        with pytest.raises(BatchFailureError) as exc:
            orch.run(_request(["front"]), SOURCES)
        assert exc.value.status == 502

    def test_context_and_color_reference_reach_prompt(self):
        orch, client = _orchestrator({"m1": [ok_result()]})
        ctx = ProductContext("P1", name="Lace Bodysuit", category="Lingerie", colors=["black"])
        color = make_source("https://cdn.test/color.png")
        result = orch.run(_request(["front"], custom_prompt="warmer light", target_color="noir"),
                          SOURCES, color, ctx)
        prompt = result.successes[0].prompt
        assert "Product name: Lace Bodysuit." in prompt
        assert "Target garment color for this generation: noir." in prompt
        assert "User adjustment instructions:\nwarmer light" in prompt
        assert result.successes[0].color_ref_hash == color.hash

    def test_without_publish_keeps_raw_success(self):
        orch, _ = _orchestrator({"m1": [ok_result()]}, publish=None)
        result = orch.run(_request(["front"]), SOURCES)
        assert result.successes[0].image_url is None
        assert result.generated_urls == []

    def test_undecodable_image_falls_through_to_next_model(self):
        good = base64.b64encode(make_png()).decode()

        def body(data):
            resp = MagicMock(ok=True, status_code=200, content=b"{}")
            resp.json.return_value = {"candidates": [{"content": {"parts": [{"inlineData": {"data": data}}]}}]}
            return resp

        session = MagicMock()
        session.post.side_effect = [body("%%%not-base64"), body(good), body(good)]
        client = GeminiImageClient(GenerationConfig(api_key="k"), session=session)
        orch = AngleOrchestrator(ModelCascade(client, ("m1", "m2")), publish=_publish, rng=random.Random(3))

        result = orch.run(_request(["front", "back"]), SOURCES)

        assert [s.angle for s in result.successes] == ["front", "back"]
        assert result.successes[0].model_used == "m2"
        assert session.post.call_count == 3

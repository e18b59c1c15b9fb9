"""
Sequential multi-angle generation.

The batch is a left fold over the requested angles.  ``BatchState`` is
the accumulator; every step returns a new one.  The first success locks
the style profile and becomes the consistency anchor for every later
angle.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

from config.templates import PROFILES, PROFILES_BY_ID, StyleProfile
from core.cascade import ModelCascade
from core.models import (
    AngleFailure,
    AngleSuccess,
    BatchResult,
    ConsistencyAnchor,
    GenerationRequest,
    ProductContext,
)
from core.prompts import angle_instruction, build_prompt
from imaging.fetcher import FetchBatch, SourceImage
from imaging.helpers import sha256_hex
from utils.exceptions import BatchFailureError, StudioError
from utils.log_config import get_logger

log = get_logger(__name__)

# Receives a fresh success, returns it with ``image_url`` set.
PublishFn = Callable[[AngleSuccess], AngleSuccess]

_EXHAUSTED_CODES = ("RESOURCE_EXHAUSTED", "GENERATION_FAILED")


@dataclass(frozen=True)
class BatchState:
    anchor:    Optional[ConsistencyAnchor]  = None
    profile:   Optional[StyleProfile]       = None
    successes: Tuple[AngleSuccess, ...]     = ()
    failures:  Tuple[AngleFailure, ...]     = ()

    def with_success(self, success: AngleSuccess) -> "BatchState":
        if self.anchor is not None:
            return replace(self, successes=self.successes + (success,))
        anchor = ConsistencyAnchor(
            url=success.image_url or "",
            content_hash=success.content_hash,
            image_bytes=success.image_bytes,
            mime_type=success.mime_type,
        )
        return replace(
            self,
            anchor=anchor,
            profile=success.profile,
            successes=self.successes + (success,),
        )

    def with_failure(self, failure: AngleFailure) -> "BatchState":
        return replace(self, failures=self.failures + (failure,))


def resolve_profile(preferred_id: Optional[str], rng: random.Random) -> StyleProfile:
    """Known id → that profile; anything else → a random one."""
    if preferred_id and preferred_id in PROFILES_BY_ID:
        return PROFILES_BY_ID[preferred_id]
    if preferred_id:
        log.warning("Unknown profile %r — picking one at random", preferred_id)
    return rng.choice(PROFILES)


class AngleOrchestrator:

    def __init__(
        self,
        cascade: ModelCascade,
        publish: Optional[PublishFn] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.cascade = cascade
        self.publish = publish
        self.rng = rng or random.Random()

    def run(
        self,
        request: GenerationRequest,
        sources: FetchBatch,
        color_reference: Optional[SourceImage] = None,
        context: Optional[ProductContext] = None,
    ) -> BatchResult:
        initial = resolve_profile(request.preferred_profile_id, self.rng)
        state = BatchState()
        for index, angle in enumerate(request.angles):
            state = self._step(state, index, angle, initial, request, sources, color_reference, context)

        if not state.successes:
            raise self._total_failure(list(state.failures))

        log.info(
            "Batch done — %d ok, %d failed, profile %s",
            len(state.successes), len(state.failures), state.profile.id,
        )
        return BatchResult(list(state.successes), list(state.failures), state.profile)

    # ── internals ───────────────────────────────────────────
    def _step(
        self,
        state: BatchState,
        index: int,
        angle: str,
        initial: StyleProfile,
        request: GenerationRequest,
        sources: FetchBatch,
        color_reference: Optional[SourceImage],
        context: Optional[ProductContext],
    ) -> BatchState:
        profile = state.profile or initial
        adjustments = "\n".join(filter(None, [request.custom_prompt, angle_instruction(angle, index)]))
        prompt = build_prompt(
            profile,
            context,
            reference_count=len(sources.images),
            has_color_reference=color_reference is not None,
            custom_prompt=adjustments,
            target_color=request.target_color,
        )

        log.info("Angle %d/%d: %s (anchor=%s)", index + 1, len(request.angles), angle,
                 "yes" if state.anchor else "no")
        try:
            out = self.cascade.generate(prompt, sources.images, color_reference, state.anchor)
            success = AngleSuccess(
                angle=angle,
                index=index,
                image_bytes=out.image.data,
                mime_type=out.image.mime_type,
                model_used=out.model_used,
                profile=profile,
                prompt=prompt,
                revised_prompt=out.revised_prompt,
                content_hash=sha256_hex(out.image.data),
                source_hashes=sources.hashes,
                color_ref_hash=color_reference.hash if color_reference else None,
                anchor_url=state.anchor.url if state.anchor else None,
            )
            if self.publish is not None:
                success = self.publish(success)
        except StudioError as exc:
            log.warning("Angle %s failed: %s", angle, exc.message)
            return state.with_failure(AngleFailure(angle, exc.message, exc.status, exc.code))

        log.info("Angle %s generated with %s", angle, success.model_used)
        return state.with_success(success)

    @staticmethod
    def _total_failure(failures: List[AngleFailure]) -> BatchFailureError:
        message = " | ".join(f"{f.angle}: {f.message}" for f in failures) or (
            "No angles could be generated with current references."
        )
        # only exhausted cascades carry a retryable cause; fatal errors are skipped
        exhausted = [f for f in failures if f.code in _EXHAUSTED_CODES]
        status = 429 if exhausted and exhausted[-1].status == 429 else 502
        return BatchFailureError(message, [f.to_dict() for f in failures], status=status)

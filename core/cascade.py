"""
Walks the image-model candidates in priority order until one answers.

Retryable failures (model missing, quota, no image, transient) advance
to the next candidate; anything else is raised immediately.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from core.gemini import GeminiImageClient, InlineImage
from core.models import ConsistencyAnchor
from core.prompts import build_parts
from imaging.fetcher import SourceImage
from utils.exceptions import CascadeExhaustedError, ConfigurationError, UpstreamError
from utils.log_config import get_logger

log = get_logger(__name__)


# ── classification ──────────────────────────────────────────

def _code(err: UpstreamError) -> str:
    return str(err.code or "").lower()


def _msg(err: UpstreamError) -> str:
    return str(err.message or "").lower()


def is_model_not_found(err: UpstreamError) -> bool:
    if err.status == 404:
        return True
    if "not_found" in _code(err):
        return True
    msg = _msg(err)
    return "model" in msg and "not found" in msg


def is_quota(err: UpstreamError) -> bool:
    if err.status == 429:
        return True
    code = _code(err)
    if "resource_exhausted" in code or "quota" in code:
        return True
    msg = _msg(err)
    return "quota" in msg or "rate limit" in msg


def is_no_image_data(err: UpstreamError) -> bool:
    return "no_image_data" in _code(err) or "did not return image data" in _msg(err)


def is_retryable(err: UpstreamError) -> bool:
    if is_model_not_found(err) or is_quota(err) or is_no_image_data(err):
        return True
    status = err.status or 0
    if status in (408, 409, 425) or 500 <= status <= 599:
        return True
    msg = _msg(err)
    if status == 400 and (
        "does not support the requested response modalities" in msg
        or "unable to process input image" in msg
    ):
        return True
    return "temporarily unavailable" in msg


def is_input_payload(err: UpstreamError) -> bool:
    if err.status == 413:
        return True
    if err.status != 400:
        return False
    msg = _msg(err)
    return any(s in msg for s in (
        "payload", "too large", "request size", "unable to process input image", "invalid argument",
    ))


# ── cascade ─────────────────────────────────────────────────

@dataclass
class CascadeResult:
    image:            InlineImage
    model_used:       str
    notes:            List[str]            = field(default_factory=list)
    attempts:         List[Dict[str, str]] = field(default_factory=list)
    single_reference: bool                 = False

    @property
    def revised_prompt(self) -> Optional[str]:
        joined = " | ".join(n for n in self.notes if n)
        return joined or None


def dedupe_candidates(candidates: Iterable[str]) -> List[str]:
    out: List[str] = []
    for name in candidates:
        model = (name or "").strip()
        if model and model not in out:
            out.append(model)
    return out


class ModelCascade:
    """
    Stateless between calls; safe to share across requests.
    ``attempts`` on the result lists the candidates that failed first.
    """

    def __init__(self, client: GeminiImageClient, candidates: Iterable[str]) -> None:
        self.client = client
        self.candidates = dedupe_candidates(candidates)
        if not self.candidates:
            raise ConfigurationError("No image model candidates configured", code="NO_MODEL_CANDIDATES")

    def generate(
        self,
        prompt: str,
        sources: Sequence[SourceImage],
        color_reference: Optional[SourceImage] = None,
        anchor: Optional[ConsistencyAnchor] = None,
    ) -> CascadeResult:
        attempts: List[Dict[str, str]] = []
        last_retryable: Optional[UpstreamError] = None
        parts = build_parts(prompt, sources, color_reference, anchor)

        for model in self.candidates:
            label = model
            try:
                result = self.client.generate(model, parts)
                return CascadeResult(result.image, model, result.text_notes, attempts)
            except UpstreamError as exc:
                err = exc

            if len(sources) > 1 and is_input_payload(err):
                log.info("%s rejected payload — retrying with canonical reference only", model)
                label = f"{model} (single-fallback)"
                try:
                    single = build_parts(prompt, sources[:1], color_reference, anchor)
                    result = self.client.generate(model, single)
                    return CascadeResult(result.image, model, result.text_notes, attempts, True)
                except UpstreamError as exc:
                    err = exc

            attempts.append({"model": label, "message": err.message})
            err.mark(is_retryable(err))
            if not err.retryable:
                log.warning("%s failed fatally: %s", label, err.message)
                raise err

            last_retryable = err
            log.info("%s unavailable (%s) — trying next candidate", label, err.status or err.code)

        quota = last_retryable is not None and is_quota(last_retryable)
        if quota:
            message = (
                "Gemini image generation quota is exhausted for this project/key. "
                "Enable billing or request image-model quota."
            )
        else:
            detail = " | ".join(f"{a['model']}: {a['message']}" for a in attempts)
            message = f"No Gemini image model succeeded. Attempts: {detail}"
        log.error("All %d model candidates failed", len(self.candidates))
        raise CascadeExhaustedError(message, attempts, quota=quota)

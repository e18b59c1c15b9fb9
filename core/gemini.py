"""
Thin REST client for Gemini image models (``generateContent``).

The API answers with either ``inlineData{mimeType,data}`` or
``inline_data{mime_type,data}`` depending on the surface; both are
normalised into one ``InlineImage`` right at the boundary.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from config.settings import GenerationConfig
from utils.exceptions import ConfigurationError, UpstreamError
from utils.log_config import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class InlineImage:
    data:      bytes
    mime_type: str


@dataclass
class GeminiImageResult:
    image:      InlineImage
    text_notes: List[str] = field(default_factory=list)


# ── request parts ───────────────────────────────────────────

def text_part(text: str) -> Dict[str, Any]:
    return {"text": text}


def image_part(data: bytes, mime_type: str) -> Dict[str, Any]:
    return {
        "inline_data": {
            "mime_type": mime_type,
            "data": base64.b64encode(data).decode("ascii"),
        }
    }


# ── response parsing ────────────────────────────────────────

def _decode(data: Any, model: Optional[str]) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, TypeError, ValueError) as exc:
        raise UpstreamError(
            f"Gemini returned undecodable image data: {exc}", code="NO_IMAGE_DATA", model=model,
        ) from exc


def extract_inline_image(part: Dict[str, Any], model: Optional[str] = None) -> Optional[InlineImage]:
    """Both wire shapes in, one value out; ``None`` for non-image parts."""
    camel = part.get("inlineData")
    if isinstance(camel, dict) and camel.get("data"):
        return InlineImage(
            data=_decode(camel["data"], model),
            mime_type=camel.get("mimeType") or "image/png",
        )
    snake = part.get("inline_data")
    if isinstance(snake, dict) and snake.get("data"):
        return InlineImage(
            data=_decode(snake["data"], model),
            mime_type=snake.get("mime_type") or "image/png",
        )
    return None


def parse_response(payload: Any, model: Optional[str] = None) -> GeminiImageResult:
    if not isinstance(payload, dict):
        raise UpstreamError("Gemini returned an empty response payload", model=model)

    error = payload.get("error")
    if isinstance(error, dict):
        raise UpstreamError(
            error.get("message") or "Gemini request failed",
            status=error.get("code") if isinstance(error.get("code"), int) else None,
            code=str(error.get("status") or error.get("code") or "") or None,
            model=model,
        )

    candidates = payload.get("candidates")
    if not isinstance(candidates, list):
        candidates = []
    notes: List[str] = []
    for cand in candidates:
        parts = ((cand or {}).get("content") or {}).get("parts") or []
        for part in parts:
            text = part.get("text")
            if isinstance(text, str) and text.strip():
                notes.append(text.strip())
            image = extract_inline_image(part, model)
            if image is not None:
                return GeminiImageResult(image=image, text_notes=notes)

    reasons = [c.get("finishReason") for c in candidates if isinstance(c, dict) and c.get("finishReason")]
    message = "Gemini did not return image data."
    if reasons:
        message += f" finishReasons={','.join(reasons)}"
    if notes:
        message += f" notes={' | '.join(notes)}"
    raise UpstreamError(message, code="NO_IMAGE_DATA", model=model)


# ── model-derived metadata ──────────────────────────────────

def quality_for(model: str) -> str:
    if "pro" in model:
        return "high"
    if "flash" in model:
        return "medium"
    return "auto"


def input_fidelity_for(model: str) -> str:
    return "high" if "pro" in model else "low"


# ── client ──────────────────────────────────────────────────

class GeminiImageClient:
    """One ``requests.Session`` per client; no SDK."""

    def __init__(self, cfg: GenerationConfig, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.session = session or requests.Session()

    def image_config(self, model: str) -> Dict[str, str]:
        conf = {"aspectRatio": self.cfg.aspect_ratio}
        if "pro" in model:
            conf["imageSize"] = self.cfg.image_size
        return conf

    def build_payload(self, model: str, parts: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
                "imageConfig": self.image_config(model),
            },
        }

    def generate(self, model: str, parts: List[Dict[str, Any]]) -> GeminiImageResult:
        if not self.cfg.configured:
            raise ConfigurationError(
                "Gemini image generation is not configured. Set GEMINI_API_KEY "
                "(or GOOGLE_API_KEY / GOOGLE_GENERATIVE_AI_API_KEY).",
                code="MISSING_API_KEY",
            )

        url = f"{self.cfg.api_base_url}/models/{quote(model, safe='')}:generateContent"
        try:
            resp = self.session.post(
                url,
                json=self.build_payload(model, parts),
                headers={"Content-Type": "application/json", "x-goog-api-key": self.cfg.api_key},
                timeout=self.cfg.request_timeout,
            )
        except requests.Timeout as exc:
            raise UpstreamError("Gemini request timed out", status=504, model=model) from exc
        except requests.RequestException as exc:
            raise UpstreamError(f"Gemini request failed: {exc}", status=503, model=model) from exc

        try:
            body = resp.json() if resp.content else None
        except ValueError:
            body = None

        if not resp.ok:
            err = body.get("error") if isinstance(body, dict) else None
            err = err if isinstance(err, dict) else {}
            raise UpstreamError(
                err.get("message") or f"Gemini request failed ({resp.status_code})",
                status=resp.status_code,
                code=str(err["status"]) if err.get("status") else None,
                model=model,
            )

        log.debug("Gemini %s → %d", model, resp.status_code)
        return parse_response(body, model=model)

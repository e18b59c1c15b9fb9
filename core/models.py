"""
Request / result / record types for the studio.

Payload parsing lives here too: every ``from_payload`` takes the loose
dict a caller sent (CLI flags, JSON body, CSV row) and returns a clean,
bounded value or raises ``ValidationError``.
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from config.settings import GenerationConfig
from config.templates import (
    ANGLE_ALIASES,
    ANGLES_BY_TOKEN,
    DEFAULT_ANGLE,
    StyleProfile,
)
from utils.exceptions import ValidationError


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  SANITIZERS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def clean_text(value: Any, limit: int) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text[:limit] if text else None


def clean_url_list(values: Iterable[Any]) -> List[str]:
    """Trim, drop blanks and non-strings, keep first occurrence."""
    out: List[str] = []
    for item in values:
        if not isinstance(item, str):
            continue
        url = item.strip()
        if url and url not in out:
            out.append(url)
    return out


def is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _angle_key(raw: str) -> str:
    key = raw.strip().lower().replace("-", "_").replace(" ", "_")
    return ANGLE_ALIASES.get(key, key)


def normalize_angles(target_angle: Any = None, angles: Any = None) -> List[str]:
    """
    ``angles`` wins over ``target_angle``.  Unknown tokens, non-strings
    and repeats are dropped; an empty result becomes ``["front"]``.
    """
    if isinstance(angles, (list, tuple)):
        raw: List[Any] = list(angles)
    elif isinstance(angles, str):
        raw = [angles]
    else:
        raw = [target_angle] if target_angle is not None else []

    out: List[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        token = _angle_key(item)
        if token in ANGLES_BY_TOKEN and token not in out:
            out.append(token)
    return out or [DEFAULT_ANGLE]


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return int(value)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  REQUESTS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class ProductContext:
    """What the catalog knows about the product; feeds the prompt."""
    product_id:    str
    name:          Optional[str]  = None
    category:      Optional[str]  = None
    colors:        List[str]      = field(default_factory=list)
    images:        List[str]      = field(default_factory=list)
    reference_url: Optional[str]  = None


@dataclass
class GenerationRequest:
    source_image_urls:          List[str]
    angles:                     List[str]       = field(default_factory=lambda: [DEFAULT_ANGLE])
    color_reference_image_url:  Optional[str]   = None
    custom_prompt:              Optional[str]   = None
    target_color:               Optional[str]   = None
    preferred_profile_id:       Optional[str]   = None
    place_first:                bool            = True
    max_images:                 Optional[int]   = None

    @classmethod
    def from_payload(
        cls,
        payload: Dict[str, Any],
        gen: GenerationConfig,
        default_source: Optional[str] = None,
        default_place_first: bool = True,
    ) -> "GenerationRequest":
        single = payload.get("sourceImageUrl")
        many = payload.get("sourceImageUrls") or []
        if not isinstance(many, (list, tuple)):
            many = []
        sources = clean_url_list([single, *many])
        if not sources and default_source:
            sources = [default_source]
        if not sources:
            raise ValidationError(
                "No source image available. Add at least one product image "
                "or pass sourceImageUrl/sourceImageUrls.",
                code="MISSING_SOURCE_IMAGES",
            )

        place_first = payload.get("placeFirst")
        return cls(
            source_image_urls=sources[: gen.max_reference_images],
            angles=normalize_angles(payload.get("targetAngle"), payload.get("angles")),
            color_reference_image_url=clean_text(payload.get("colorReferenceImageUrl"), 2048),
            custom_prompt=clean_text(payload.get("customPrompt"), gen.max_custom_prompt),
            target_color=clean_text(payload.get("targetColor"), gen.max_target_color),
            preferred_profile_id=clean_text(payload.get("preferredProfileId"), gen.max_profile_id),
            place_first=default_place_first if place_first is None else place_first is not False,
            max_images=_positive_int(payload.get("maxImages")),
        )


@dataclass
class CropRequest:
    image_url:        str
    rect:             Dict[str, float]
    aspect:           Optional[str]   = None
    target_long_edge: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CropRequest":
        url = clean_text(payload.get("imageUrl"), 4096)
        if not url or not is_http_url(url):
            raise ValidationError("imageUrl must be an http(s) URL", code="INVALID_IMAGE_URL")

        crop = payload.get("crop")
        if not isinstance(crop, dict):
            raise ValidationError("crop must be an object with x, y, width, height", code="INVALID_CROP")
        rect: Dict[str, float] = {}
        for key in ("x", "y", "width", "height"):
            value = crop.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValidationError(f"crop.{key} must be a finite number", code="INVALID_CROP")
            rect[key] = value

        aspect = payload.get("aspect")
        edge = payload.get("targetLongEdge")
        return cls(
            image_url=url,
            rect=rect,
            aspect=aspect if isinstance(aspect, str) else None,
            target_long_edge=edge if isinstance(edge, (int, float)) and not isinstance(edge, bool) else None,
        )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  RESULTS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class ConsistencyAnchor:
    url:          str
    content_hash: str
    image_bytes:  bytes
    mime_type:    str


@dataclass
class AngleSuccess:
    angle:            str
    index:            int
    image_bytes:      bytes
    mime_type:        str
    model_used:       str
    profile:          StyleProfile
    prompt:           str
    revised_prompt:   Optional[str]
    content_hash:     str
    source_hashes:    List[str]       = field(default_factory=list)
    color_ref_hash:   Optional[str]   = None
    anchor_url:       Optional[str]   = None
    image_url:        Optional[str]   = None
    bg_removed:       bool            = False


@dataclass(frozen=True)
class AngleFailure:
    angle:   str
    message: str
    status:  Optional[int] = None
    code:    Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"angle": self.angle, "message": self.message, "status": self.status, "code": self.code}


@dataclass
class BatchResult:
    successes: List[AngleSuccess]
    failures:  List[AngleFailure]
    profile:   Optional[StyleProfile]

    @property
    def partial_success(self) -> bool:
        return bool(self.successes) and bool(self.failures)

    @property
    def generated_urls(self) -> List[str]:
        return [s.image_url for s in self.successes if s.image_url]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  LEDGER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_JSON_FIELDS = ("source_urls", "source_hashes")


@dataclass(frozen=True)
class GenerationRecord:
    record_id:            str
    product_id:           str
    angle:                str
    angle_index:          int
    generated_url:        str
    source_urls:          Tuple[str, ...]
    source_hashes:        Tuple[str, ...]
    color_reference_url:  Optional[str]
    color_reference_hash: Optional[str]
    profile_id:           str
    profile_label:        str
    profile_description:  str
    model_used:           str
    output_format:        str
    quality:              str
    input_fidelity:       str
    prompt:               str
    revised_prompt:       Optional[str]
    custom_prompt:        Optional[str]
    target_color:         Optional[str]
    anchor_url:           Optional[str]
    bg_removed:           bool
    created_by:           Optional[str]
    created_at:           float

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        for key in _JSON_FIELDS:
            row[key] = json.dumps(list(row[key]))
        row["bg_removed"] = int(self.bg_removed)
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "GenerationRecord":
        data = dict(row)
        for key in _JSON_FIELDS:
            data[key] = tuple(json.loads(data[key] or "[]"))
        data["bg_removed"] = bool(data["bg_removed"])
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in _JSON_FIELDS:
            data[key] = list(data[key])
        return data

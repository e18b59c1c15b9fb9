"""
Pure crop/resize arithmetic.

Nothing here touches pixels; ``postprocess`` feeds the results to Pillow.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

_ASPECT_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*:\s*(\d+(?:\.\d+)?)$")


@dataclass(frozen=True)
class ExtractRect:
    left:   int
    top:    int
    width:  int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    def box(self) -> tuple:
        """Pillow crop box ``(left, top, right, bottom)``."""
        return (self.left, self.top, self.right, self.bottom)

    def to_dict(self) -> Dict[str, int]:
        return {"left": self.left, "top": self.top, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class ResizePlan:
    width:  int
    height: int
    fit:    str     # "cover" | "inside"


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def clamp(value: int, low: int, high: int) -> int:
    return min(high, max(low, value))


def parse_aspect(value: Any) -> Optional[float]:
    """``"4:5"`` → 0.8; ``"original"``, blanks and junk → None."""
    if not isinstance(value, str):
        return None
    text = value.strip().lower()
    if not text or text == "original":
        return None
    m = _ASPECT_RE.match(text)
    if not m:
        return None
    num, den = float(m.group(1)), float(m.group(2))
    if num <= 0 or den <= 0:
        return None
    return num / den


def parse_target_long_edge(
    value: Any,
    default: int = 3200,
    low: int = 512,
    high: int = 4096,
) -> int:
    if not _finite(value):
        return default
    return clamp(int(round(value)), low, high)


def resolve_extract_rect(
    crop: Dict[str, float],
    source_width: int,
    source_height: int,
) -> ExtractRect:
    """
    Turn any caller rectangle into an in-bounds, non-empty one.

    left/top are floored and clamped into ``[0, dim-1]``; width/height
    are floored, forced to at least 1px and clamped so the rectangle
    ends inside the image.
    """
    def _floor(key: str) -> int:
        raw = crop.get(key, 0)
        return math.floor(raw) if _finite(raw) else 0

    left = clamp(_floor("x"), 0, max(0, source_width - 1))
    top = clamp(_floor("y"), 0, max(0, source_height - 1))
    width = clamp(_floor("width"), 1, max(1, source_width - left))
    height = clamp(_floor("height"), 1, max(1, source_height - top))
    return ExtractRect(left, top, width, height)


def compute_resize_plan(aspect: Optional[float], target_long_edge: int) -> ResizePlan:
    if aspect and math.isfinite(aspect) and aspect > 0:
        if aspect >= 1:
            return ResizePlan(
                width=target_long_edge,
                height=max(1, round(target_long_edge / aspect)),
                fit="cover",
            )
        return ResizePlan(
            width=max(1, round(target_long_edge * aspect)),
            height=target_long_edge,
            fit="cover",
        )
    return ResizePlan(width=target_long_edge, height=target_long_edge, fit="inside")


def fit_inside(width: int, height: int, box_w: int, box_h: int) -> tuple:
    """Largest size with the source aspect that fits in ``box_w × box_h``."""
    scale = min(box_w / width, box_h / height)
    return max(1, round(width * scale)), max(1, round(height * scale))

"""Prompt text and request parts for one angle generation."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from config.templates import (
    ANCHOR_NOTE,
    ANGLES_BY_TOKEN,
    BASE_PROMPT,
    COLOR_REFERENCE_NOTE,
    DEFAULT_ANGLE,
    SAME_IDENTITY_SUFFIX,
    StyleProfile,
)
from core.gemini import image_part, text_part
from core.models import ConsistencyAnchor, ProductContext
from imaging.fetcher import SourceImage


def build_prompt(
    profile: StyleProfile,
    context: Optional[ProductContext],
    reference_count: int,
    has_color_reference: bool,
    custom_prompt: Optional[str] = None,
    target_color: Optional[str] = None,
) -> str:
    lines: List[str] = []
    if context is not None:
        if context.name:
            lines.append(f"Product name: {context.name}.")
        if context.category:
            lines.append(f"Category: {context.category}.")
        if context.colors:
            lines.append(f"Color hints from catalog: {', '.join(context.colors)}.")
    if target_color:
        lines.append(
            f"Target garment color for this generation: {target_color}. "
            "Prioritize this tone exactly."
        )
    lines.append(f"Number of garment reference images provided: {reference_count}.")
    if has_color_reference:
        lines.append(
            "A separate color reference image is also provided. "
            "Use it only to match garment color tone."
        )

    prompt = BASE_PROMPT.format(profile=profile.description) + "\n\n" + "\n".join(lines)
    if custom_prompt:
        prompt += f"\n\nUser adjustment instructions:\n{custom_prompt}"
    return prompt.strip()


def angle_instruction(angle: str, index: int) -> str:
    """Camera line for *angle*; every angle after the first also pins identity."""
    camera = ANGLES_BY_TOKEN.get(angle) or ANGLES_BY_TOKEN[DEFAULT_ANGLE]
    if index == 0:
        return camera.instruction
    return f"{camera.instruction} {SAME_IDENTITY_SUFFIX}"


def build_parts(
    prompt: str,
    sources: Sequence[SourceImage],
    color_reference: Optional[SourceImage] = None,
    anchor: Optional[ConsistencyAnchor] = None,
) -> List[Dict[str, Any]]:
    """
    Order: prompt, garment references (canonical first), color
    reference, then the anchor shot.
    """
    parts: List[Dict[str, Any]] = [text_part(prompt)]
    for src in sources:
        parts.append(image_part(src.data, src.mime_type))
    if color_reference is not None:
        parts.append(text_part(COLOR_REFERENCE_NOTE))
        parts.append(image_part(color_reference.data, color_reference.mime_type))
    if anchor is not None:
        parts.append(text_part(ANCHOR_NOTE))
        parts.append(image_part(anchor.image_bytes, anchor.mime_type))
    return parts

"""
Style profiles and camera angles.
Each profile steers how the model renders the person wearing the product;
each angle maps to a camera instruction appended to the base prompt.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class StyleProfile:
    id:          str
    label:       str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "label": self.label, "description": self.description}


@dataclass(frozen=True)
class CameraAngle:
    token:       str
    label:       str
    instruction: str


# ── ready-made profiles ─────────────────────────────────────

PROFILES: Tuple[StyleProfile, ...] = (
    StyleProfile(
        "model_01", "Model 01",
        "adult Latina woman with warm medium skin tone, shoulder-length dark brown hair, "
        "polished natural makeup",
    ),
    StyleProfile(
        "model_02", "Model 02",
        "adult Black woman with deep skin tone, short natural curls, clean editorial makeup",
    ),
    StyleProfile(
        "model_03", "Model 03",
        "adult woman with fair skin, straight ash-blonde hair, refined glam makeup",
    ),
    StyleProfile(
        "model_04", "Model 04",
        "adult woman with olive skin, long wavy brunette hair, premium studio beauty look",
    ),
    StyleProfile(
        "model_05", "Model 05",
        "adult East Asian woman with light skin, sleek black bob haircut, soft natural makeup",
    ),
    StyleProfile(
        "model_06", "Model 06",
        "adult South Asian woman with medium-brown skin, long straight black hair, "
        "subtle luminous makeup",
    ),
    StyleProfile(
        "model_07", "Model 07",
        "adult woman with tan skin, auburn wavy hair, professional daytime makeup",
    ),
    StyleProfile(
        "model_08", "Model 08",
        "adult woman with deep tan skin, platinum-blonde curls, precise high-fashion makeup",
    ),
    StyleProfile(
        "model_09", "Model 09",
        "adult woman with fair-to-light skin, long copper hair, defined but natural makeup",
    ),
    StyleProfile(
        "model_10", "Model 10",
        "adult Afro-Latina woman with rich brown skin, shoulder-length curls, "
        "elegant studio makeup",
    ),
)

PROFILES_BY_ID: Dict[str, StyleProfile] = {p.id: p for p in PROFILES}


# ── camera angles, in catalog display order ─────────────────

DEFAULT_ANGLE = "front"

ANGLES: Tuple[CameraAngle, ...] = (
    CameraAngle("front", "Front",
                "Front full-body camera angle, model facing camera directly."),
    CameraAngle("three_quarter_left", "3/4 Left",
                "3/4 left camera angle (about 25 degrees), full body visible."),
    CameraAngle("left", "Left Side",
                "Left side profile camera angle, full body visible."),
    CameraAngle("back_left", "3/4 Back Left",
                "3/4 back-left camera angle, full body visible."),
    CameraAngle("back", "Back",
                "Back full-body camera angle, full body visible."),
    CameraAngle("back_right", "3/4 Back Right",
                "3/4 back-right camera angle, full body visible."),
    CameraAngle("right", "Right Side",
                "Right side profile camera angle, full body visible."),
    CameraAngle("three_quarter_right", "3/4 Right",
                "3/4 right camera angle (about 25 degrees), full body visible."),
)

ANGLES_BY_TOKEN: Dict[str, CameraAngle] = {a.token: a for a in ANGLES}

ANGLE_ALIASES: Dict[str, str] = {
    "side":                 "left",
    "left_side":            "left",
    "right_side":           "right",
    "profile":              "left",
    "3/4_left":             "three_quarter_left",
    "3/4_right":            "three_quarter_right",
    "34_left":              "three_quarter_left",
    "34_right":             "three_quarter_right",
    "three_quarter":        "three_quarter_left",
    "back_3/4_left":        "back_left",
    "back_3/4_right":       "back_right",
    "rear":                 "back",
}


def angle_tokens() -> List[str]:
    return [a.token for a in ANGLES]


# ── prompt skeleton ─────────────────────────────────────────

BASE_PROMPT = """You are an expert ecommerce fashion photographer and retoucher.
Generate one premium studio product image from the provided references.

Source fidelity rules (mandatory):
- Use the garment from all references as the exact same product.
- Treat reference image #1 as canonical and use other references only to recover missing details.
- Preserve exact construction details: panel cuts, seams, stitch lines, closures, strap width/placement, edge trims and lace motifs.
- Preserve exact garment color family and tone. Do not shift hue or saturation beyond realistic studio lighting.
- Preserve textile realism: weave, micro-wrinkles, material sheen and fabric thickness must look physically plausible.
- Do not redesign, simplify, or invent new garment features.
- If a person appears in reference, replace only the person using this model profile while keeping garment identity unchanged: {profile}.

Model, pose, and framing rules:
- Exactly one adult model, full body visible from head to feet, centered.
- Neutral confident expression, arms relaxed with slight separation from torso.
- Keep anatomy natural and realistic: correct hands, shoulders, hips, limbs and body proportions.
- Maintain clean composition with padding around silhouette for storefront card cropping.

Lighting and camera rules:
- High-end studio look, soft key + fill lighting, controlled highlights, minimal harsh shadows.
- Sharp focus on garment texture and closures; avoid blur and over-smoothing.
- No cinematic color grading, no stylized filters.

Output constraints (mandatory):
- Background must be truly transparent (real alpha), with clean edges around hair, body and garment.
- No text, logos, watermark, props, furniture, extra people, mirrored duplicates, or collage layout.
- No checkerboard or fake transparency pattern."""

COLOR_REFERENCE_NOTE = (
    "The next image is color reference only. Keep garment design from previous "
    "references and use this image only to match garment color tone."
)

ANCHOR_NOTE = (
    "The next image is a previously generated shot of this same product. "
    "Match its model identity, styling, lighting and garment rendering exactly; "
    "change only the camera angle."
)

SAME_IDENTITY_SUFFIX = (
    "Keep garment details exact and keep the same model identity as previous "
    "generated variants."
)

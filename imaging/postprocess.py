"""
Deterministic crop / reframe for catalog images.

Flow:
    1. fetch bytes (size + time limited)
    2. bake EXIF orientation into pixels
    3. clamp the caller rectangle and extract it
    4. resize to aspect (cover) or long edge (inside)
    5. unsharp mask
    6. lossless PNG
"""

from __future__ import annotations

import gc
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, Optional

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from config.settings import CropConfig
from imaging.fetcher import ImageFetcher
from imaging.geometry import (
    ExtractRect,
    compute_resize_plan,
    fit_inside,
    parse_aspect,
    parse_target_long_edge,
    resolve_extract_rect,
)
from utils.exceptions import FetchError
from utils.log_config import get_logger

log = get_logger(__name__)


@dataclass
class CropResult:
    data:      bytes
    mime_type: str
    width:     int
    height:    int
    extract:   ExtractRect
    aspect:    Optional[str]

    def info(self) -> Dict[str, object]:
        return {
            "mimeType": self.mime_type,
            "width": self.width,
            "height": self.height,
            "crop": self.extract.to_dict(),
            "aspect": self.aspect,
        }


def _replace(old: Image.Image, new: Image.Image) -> Image.Image:
    """Close *old* once a transform has produced a distinct *new*."""
    if new is not old:
        old.close()
    return new


class CropProcessor:
    """Stateless apart from the fetcher's HTTP session."""

    def __init__(self, cfg: CropConfig, fetcher: Optional[ImageFetcher] = None) -> None:
        self.cfg = cfg
        self.fetcher = fetcher or ImageFetcher(
            timeout=cfg.fetch_timeout,
            max_bytes=cfg.max_source_bytes,
        )

    def process_url(
        self,
        image_url: str,
        crop: Dict[str, float],
        aspect: Optional[str] = None,
        target_long_edge: Optional[float] = None,
    ) -> CropResult:
        source = self.fetcher.fetch(image_url)
        return self.process_bytes(source.data, crop, aspect, target_long_edge)

    def process_bytes(
        self,
        data: bytes,
        crop: Dict[str, float],
        aspect: Optional[str] = None,
        target_long_edge: Optional[float] = None,
    ) -> CropResult:
        c = self.cfg
        ratio = parse_aspect(aspect)
        long_edge = parse_target_long_edge(
            target_long_edge, c.default_long_edge, c.min_long_edge, c.max_long_edge,
        )

        img = self._open(data)
        stages = [img]
        try:
            if not img.width or not img.height:
                raise FetchError("Unable to read source image metadata", code="IMAGE_UNREADABLE")

            extract = resolve_extract_rect(crop, img.width, img.height)
            out = img.crop(extract.box())
            stages.append(out)
            out = self._resize(out, ratio, long_edge)
            stages.append(out)
            out = out.filter(ImageFilter.UnsharpMask(
                radius=c.sharpen_radius,
                percent=c.sharpen_percent,
                threshold=c.sharpen_threshold,
            ))
            stages.append(out)

            buf = BytesIO()
            out.save(buf, "PNG", optimize=True, compress_level=c.png_compress_level)
            result = CropResult(
                data=buf.getvalue(),
                mime_type="image/png",
                width=out.width,
                height=out.height,
                extract=extract,
                aspect=aspect if isinstance(aspect, str) and aspect.strip() else None,
            )
        finally:
            # _resize may hand back its input
            for stage in {id(s): s for s in stages}.values():
                stage.close()
            gc.collect()

        log.info(
            "Cropped %s → %dx%d (aspect=%s, long_edge=%d)",
            extract.to_dict(), result.width, result.height, result.aspect or "original", long_edge,
        )
        return result

    # ── internals ───────────────────────────────────────────
    @staticmethod
    def _open(data: bytes) -> Image.Image:
        try:
            raw = Image.open(BytesIO(data))
            raw.load()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
            raise FetchError(
                f"Source image could not be decoded: {exc}", code="IMAGE_UNREADABLE",
            ) from exc
        # orientation must be baked in before any rectangle math
        img = _replace(raw, ImageOps.exif_transpose(raw))
        if img.mode not in ("RGB", "RGBA"):
            mode = "RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB"
            img = _replace(img, img.convert(mode))
        return img

    @staticmethod
    def _resize(img: Image.Image, ratio: Optional[float], long_edge: int) -> Image.Image:
        plan = compute_resize_plan(ratio, long_edge)
        if plan.fit == "cover":
            return ImageOps.fit(
                img, (plan.width, plan.height),
                method=Image.Resampling.LANCZOS, centering=(0.5, 0.5),
            )
        size = fit_inside(img.width, img.height, plan.width, plan.height)
        if size == img.size:
            return img
        return img.resize(size, Image.Resampling.LANCZOS)

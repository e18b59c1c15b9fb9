"""
Bulk generation — one independent ``generate`` request per CSV row.

    CSV row → payload → StudioService.generate → progress db

Products run one at a time; a failure is recorded and the run moves on.
Nothing already generated is rolled back.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from config.settings import BulkConfig
from core.progress import BulkProgress
from utils.exceptions import StudioError, ValidationError
from utils.log_config import get_logger

log = get_logger(__name__)

# CSV column → payload key
_COLUMN_MAP = {
    "source_image_url":          "sourceImageUrl",
    "color_reference_image_url": "colorReferenceImageUrl",
    "preferred_profile_id":      "preferredProfileId",
    "custom_prompt":             "customPrompt",
    "target_color":              "targetColor",
    "max_images":                "maxImages",
}

_LIST_SEP = "|"


@dataclass
class BulkJob:
    product_id: str
    payload:    Dict[str, Any] = field(default_factory=dict)


@dataclass
class BulkStats:
    total:   int = 0
    done:    int = 0
    failed:  int = 0
    skipped: int = 0
    partial: int = 0
    _t0:     float = field(default_factory=time.monotonic, repr=False)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._t0


def _cell(row: pd.Series, col: str) -> Optional[str]:
    if col not in row.index or pd.isna(row[col]):
        return None
    text = str(row[col]).strip()
    return text or None


def row_to_payload(row: pd.Series, default_angles: Sequence[str] = ()) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for col, key in _COLUMN_MAP.items():
        val = _cell(row, col)
        if val is None:
            continue
        payload[key] = int(float(val)) if key == "maxImages" else val

    sources = _cell(row, "source_image_urls")
    if sources:
        payload["sourceImageUrls"] = [s.strip() for s in sources.split(_LIST_SEP) if s.strip()]

    angles = _cell(row, "angles")
    if angles:
        payload["angles"] = [a.strip() for a in angles.split(_LIST_SEP) if a.strip()]
    elif default_angles:
        payload["angles"] = list(default_angles)

    place_first = _cell(row, "place_first")
    if place_first is not None:
        payload["placeFirst"] = place_first.lower() not in ("false", "0", "no")
    return payload


def load_jobs(
    csv_path: Path,
    id_column: str = "product_id",
    default_angles: Sequence[str] = (),
) -> List[BulkJob]:
    df = pd.read_csv(csv_path, dtype=str)
    if id_column not in df.columns:
        raise ValidationError(
            f"CSV has no '{id_column}' column (found: {', '.join(df.columns)})",
            code="INVALID_CSV",
        )

    jobs: List[BulkJob] = []
    seen = set()
    for _, row in df.iterrows():
        pid = _cell(row, id_column)
        if not pid or pid in seen:
            continue
        seen.add(pid)
        jobs.append(BulkJob(pid, row_to_payload(row, default_angles)))
    log.info("Loaded %d bulk jobs from %s", len(jobs), csv_path.name)
    return jobs


GenerateFn = Callable[[str, Dict[str, Any]], Dict[str, Any]]
ItemCallback = Callable[[BulkJob, str, Optional[str]], None]


class BulkRunner:
    """
    ``generate`` is ``StudioService.generate`` (or anything with the
    same shape); ``on_item(job, status, detail)`` drives progress UIs.
    """

    def __init__(
        self,
        generate: GenerateFn,
        progress: BulkProgress,
        cfg: BulkConfig,
        identity: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.generate = generate
        self.progress = progress
        self.cfg = cfg
        self.identity = identity
        self.sleep = sleep

    def run(
        self,
        jobs: Sequence[BulkJob],
        on_item: Optional[ItemCallback] = None,
    ) -> BulkStats:
        stats = BulkStats(total=len(jobs))
        for i, job in enumerate(jobs):
            if self.cfg.resume and self.progress.is_done(job.product_id):
                stats.skipped += 1
                self._notify(on_item, job, "skipped", None)
                continue

            status, detail = self._one(job)
            if status == "failed":
                stats.failed += 1
            else:
                stats.done += 1
                if status == "partial":
                    stats.partial += 1
            self._notify(on_item, job, status, detail)

            if i < len(jobs) - 1 and self.cfg.inter_item_delay > 0:
                self.sleep(self.cfg.inter_item_delay)

        log.info(
            "Bulk done — %d ok (%d partial), %d failed, %d skipped in %.1fs",
            stats.done, stats.partial, stats.failed, stats.skipped, stats.elapsed,
        )
        return stats

    def _one(self, job: BulkJob) -> Tuple[str, Optional[str]]:
        log.info("Bulk → %s", job.product_id)
        try:
            result = self.generate(job.product_id, job.payload, self.identity)
        except StudioError as exc:
            log.warning("Bulk %s failed (%s): %s", job.product_id, exc.status, exc.message)
            self.progress.mark_failed(job.product_id, exc.message, exc.status, exc.code)
            return "failed", exc.message

        self.progress.mark_done(job.product_id, {
            "generatedImageUrls": result["generatedImageUrls"],
            "failedAngles": result["failedAngles"],
            "modelUsed": result["modelUsed"],
        })
        if result["partialSuccess"]:
            return "partial", f"{len(result['failedAngles'])} angle(s) failed"
        return "done", result["generatedImageUrl"]

    @staticmethod
    def _notify(cb: Optional[ItemCallback], job: BulkJob, status: str, detail: Optional[str]) -> None:
        if cb is not None:
            cb(job, status, detail)

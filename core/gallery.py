"""Gallery recomputation after a generation batch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple


def merge_gallery(
    existing: Sequence[str],
    generated: Sequence[str],
    place_first: bool = True,
    reference_url: Optional[str] = None,
    max_images: Optional[int] = None,
) -> List[str]:
    """
    New URLs go before (or after) the existing ones, existing copies of
    them are dropped, the reference/size-chart URL never survives, and
    the list is cut to *max_images* when that is a positive number.
    """
    fresh: List[str] = []
    for url in generated:
        if url and url not in fresh:
            fresh.append(url)

    rest: List[str] = []
    for url in existing:
        if url and url not in fresh and url not in rest:
            rest.append(url)

    ordered = fresh + rest if place_first else rest + fresh
    if reference_url:
        ordered = [url for url in ordered if url != reference_url]
    if max_images and max_images > 0:
        ordered = ordered[:max_images]
    return ordered


@dataclass(frozen=True)
class GalleryState:
    """A product's ordered image URLs plus its reference/size-chart URL."""

    images:        Tuple[str, ...]
    reference_url: Optional[str] = None

    @classmethod
    def of(cls, images: Sequence[str], reference_url: Optional[str] = None) -> "GalleryState":
        return cls(tuple(merge_gallery(images, [], reference_url=reference_url)), reference_url)

    def merged(
        self,
        generated: Sequence[str],
        place_first: bool = True,
        max_images: Optional[int] = None,
    ) -> "GalleryState":
        images = merge_gallery(self.images, generated, place_first, self.reference_url, max_images)
        return GalleryState(tuple(images), self.reference_url)

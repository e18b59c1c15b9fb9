"""
Request handlers: generate, crop, capabilities.

``StudioService`` owns every external handle (model client, fetcher,
object store, ledger, catalog) and is built once per process with
``StudioService.from_config``; tests inject fakes through ``__init__``.
"""

from __future__ import annotations

import random
import time
import uuid
from dataclasses import replace
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from config.settings import AppConfig
from config.templates import ANGLES, PROFILES
from core.cascade import ModelCascade
from core.catalog import ProductCatalog
from core.gallery import GalleryState
from core.gemini import GeminiImageClient, input_fidelity_for, quality_for
from core.ledger import GenerationLedger
from core.models import (
    AngleSuccess,
    BatchResult,
    CropRequest,
    GenerationRecord,
    GenerationRequest,
)
from core.orchestrator import AngleOrchestrator
from core.storage import ObjectStore, build_store, crop_key, generated_key
from imaging.background import BackgroundRemover
from imaging.fetcher import ImageFetcher
from imaging.helpers import output_format_for, sha256_hex
from imaging.postprocess import CropProcessor
from utils.exceptions import ConfigurationError, StudioError
from utils.log_config import get_logger

log = get_logger(__name__)


class StudioService:

    def __init__(
        self,
        app: AppConfig,
        cascade: ModelCascade,
        store: ObjectStore,
        ledger: GenerationLedger,
        catalog: ProductCatalog,
        fetcher: Optional[ImageFetcher] = None,
        bg_remover: Optional[BackgroundRemover] = None,
        cropper: Optional[CropProcessor] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.app = app
        self.cascade = cascade
        self.store = store
        self.ledger = ledger
        self.catalog = catalog
        self.fetcher = fetcher or ImageFetcher(
            timeout=app.generation.fetch_timeout,
            max_bytes=app.crop.max_source_bytes,
        )
        self.bg_remover = bg_remover or BackgroundRemover(app.bg)
        self.cropper = cropper or CropProcessor(app.crop, fetcher=self.fetcher)
        self.rng = rng or random.Random()
        self.clock = clock

    @classmethod
    def from_config(cls, app: AppConfig) -> "StudioService":
        app.validate()
        app.paths.ensure()
        client = GeminiImageClient(app.generation)
        return cls(
            app=app,
            cascade=ModelCascade(client, app.generation.model_candidates),
            store=build_store(app),
            ledger=GenerationLedger(app.paths.ledger_db),
            catalog=ProductCatalog(app.paths.catalog_db),
        )

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    #  GENERATE
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def generate(
        self,
        product_id: str,
        payload: Dict[str, Any],
        identity: Optional[str] = None,
    ) -> Dict[str, Any]:
        gen = self.app.generation
        if not gen.configured:
            raise ConfigurationError(
                "Gemini image generation is not configured. Set GEMINI_API_KEY "
                "(or GOOGLE_API_KEY / GOOGLE_GENERATIVE_AI_API_KEY).",
                code="MISSING_API_KEY",
            )

        product = self.catalog.get(product_id)
        default_source = product.images[0] if product.images else product.reference_url
        request = GenerationRequest.from_payload(payload, gen, default_source, self.app.place_first)
        log.info(
            "Generate %s — angles=%s, %d reference(s)",
            product_id, ",".join(request.angles), len(request.source_image_urls),
        )

        sources = self.fetcher.fetch_many(request.source_image_urls, gen.max_reference_bytes)
        color_ref = (
            self.fetcher.fetch(request.color_reference_image_url)
            if request.color_reference_image_url else None
        )

        orchestrator = AngleOrchestrator(
            self.cascade,
            publish=partial(self._publish, product_id),
            rng=self.rng,
        )
        batch = orchestrator.run(request, sources, color_ref, product)

        created_by = identity or self.app.identity
        for success in batch.successes:
            self.ledger.append(self._record(product_id, request, success, created_by))

        gallery = GalleryState.of(product.images, product.reference_url).merged(
            batch.generated_urls,
            place_first=request.place_first,
            max_images=request.max_images,
        )
        images = list(gallery.images)
        self.catalog.update_images(product_id, images)

        return self._generation_response(product_id, request, batch, images)

    def _publish(self, product_id: str, success: AngleSuccess) -> AngleSuccess:
        """Transparency pass, then upload; the returned success carries the public URL."""
        bg = self.bg_remover.ensure_transparent(success.image_bytes, success.mime_type)
        key = generated_key(product_id, success.index + 1, bg.mime_type)
        url = self.store.upload(key, bg.data, bg.mime_type)
        return replace(
            success,
            image_bytes=bg.data,
            mime_type=bg.mime_type,
            content_hash=sha256_hex(bg.data) if bg.applied else success.content_hash,
            image_url=url,
            bg_removed=bg.applied,
        )

    def _record(
        self,
        product_id: str,
        request: GenerationRequest,
        success: AngleSuccess,
        created_by: Optional[str],
    ) -> GenerationRecord:
        return GenerationRecord(
            record_id=uuid.uuid4().hex,
            product_id=product_id,
            angle=success.angle,
            angle_index=success.index,
            generated_url=success.image_url or "",
            source_urls=tuple(request.source_image_urls),
            source_hashes=tuple(success.source_hashes),
            color_reference_url=request.color_reference_image_url,
            color_reference_hash=success.color_ref_hash,
            profile_id=success.profile.id,
            profile_label=success.profile.label,
            profile_description=success.profile.description,
            model_used=success.model_used,
            output_format=output_format_for(success.mime_type),
            quality=quality_for(success.model_used),
            input_fidelity=input_fidelity_for(success.model_used),
            prompt=success.prompt,
            revised_prompt=success.revised_prompt,
            custom_prompt=request.custom_prompt,
            target_color=request.target_color,
            anchor_url=success.anchor_url,
            bg_removed=success.bg_removed,
            created_by=created_by,
            created_at=self.clock(),
        )

    @staticmethod
    def _generation_response(
        product_id: str,
        request: GenerationRequest,
        batch: BatchResult,
        images: List[str],
    ) -> Dict[str, Any]:
        primary = batch.successes[0]
        urls = batch.generated_urls
        return {
            "success": True,
            "productId": product_id,
            "generatedImageUrl": urls[0] if urls else None,
            "generatedImageUrls": urls,
            "generatedAngles": [s.angle for s in batch.successes],
            "failedAngles": [f.to_dict() for f in batch.failures],
            "profile": batch.profile.to_dict() if batch.profile else None,
            "modelUsed": primary.model_used,
            "images": images,
            "partialSuccess": batch.partial_success,
            "sourceImageUrl": request.source_image_urls[0],
            "sourceImageUrls": list(request.source_image_urls),
            "colorReferenceImageUrl": request.color_reference_image_url,
            "targetColor": request.target_color,
            "customPrompt": request.custom_prompt,
            "backgroundRemoval": {
                "applied": primary.bg_removed,
                "provider": BackgroundRemover.provider if primary.bg_removed else None,
            },
        }

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    #  CROP
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def crop(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        crop_req = CropRequest.from_payload(payload)
        result = self.cropper.process_url(
            crop_req.image_url, crop_req.rect, crop_req.aspect, crop_req.target_long_edge,
        )
        url = self.store.upload(crop_key(), result.data, result.mime_type)
        log.info("Crop stored → %s", url)
        return {"croppedImageUrl": url, **result.info(), "sourceImageUrl": crop_req.image_url}

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    #  CAPABILITIES / ERRORS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def capabilities(self) -> Dict[str, Any]:
        return {
            "availableProfiles": [p.to_dict() for p in PROFILES],
            "availableAngles": [a.token for a in ANGLES],
            "configured": self.app.generation.configured,
            "backgroundRemovalConfigured": self.bg_remover.configured,
            "modelCandidates": list(self.cascade.candidates),
        }

    def close(self) -> None:
        self.ledger.close()
        self.catalog.close()


def error_payload(exc: BaseException, production: bool = False) -> Tuple[int, Dict[str, Any]]:
    """``(http_status, {error, debug?})``; ``debug`` is withheld in production."""
    if isinstance(exc, StudioError):
        status, message = exc.http_status, exc.message
        debug = {
            "status": exc.status,
            "code": exc.code,
            "attempts": exc.details.get("attempts"),
            "failures": exc.details.get("failures"),
        }
    else:
        status, message = 500, str(exc) or type(exc).__name__
        debug = {"status": None, "code": None, "attempts": None, "failures": None}

    body: Dict[str, Any] = {"error": message}
    if not production:
        body["debug"] = debug
    return status, body

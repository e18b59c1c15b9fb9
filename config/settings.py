"""
All configuration — flags, knobs, feature toggles.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from utils.exceptions import ConfigurationError

ROOT_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = ROOT_DIR / "data"


def _env(name: str, default: str = "") -> str:
    value = os.environ.get(name, "")
    return value.strip() or default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    try:
        parsed = int(raw)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  FLAGS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

VERBOSE_LOGGING              = False
ENVIRONMENT                  = _env("STUDIO_ENV", "development")
ENABLE_BACKGROUND_REMOVAL    = _env("STUDIO_BACKGROUND_REMOVAL", "true").lower() != "false"
PLACE_GENERATED_FIRST        = True
RESUME_BULK                  = True

DEFAULT_MODEL_CANDIDATES: Tuple[str, ...] = (
    "gemini-3-pro-image-preview",
    "nano-banana-pro-preview",
    "gemini-2.5-flash-image",
)


def _model_candidates() -> Tuple[str, ...]:
    override = _env("GEMINI_IMAGE_MODEL")
    return ((override,) if override else ()) + DEFAULT_MODEL_CANDIDATES


def _api_key() -> str:
    for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY"):
        value = _env(name)
        if value:
            return value
    return ""


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  DATACLASS CONFIGS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class PathConfig:
    root:         Path = DATA_DIR
    catalog_db:   Path = DATA_DIR / "catalog" / "products.db"
    ledger_db:    Path = DATA_DIR / "catalog" / "ledger.db"
    progress_db:  Path = DATA_DIR / "temp" / "bulk_progress.db"
    storage_dir:  Path = DATA_DIR / "storage"
    log_file:     Path = DATA_DIR / "logs" / "studio.log"

    def ensure(self) -> None:
        for d in (
            self.catalog_db.parent, self.ledger_db.parent,
            self.progress_db.parent, self.storage_dir,
            self.log_file.parent,
        ):
            d.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class GenerationConfig:
    """
    Upstream image model settings.

    ``model_candidates`` is the cascade order; duplicates and blanks
    are dropped by the cascade itself.
    """

    api_key:               str             = field(default_factory=_api_key)
    api_base_url:          str             = "https://generativelanguage.googleapis.com/v1beta"
    model_candidates:      Tuple[str, ...] = field(default_factory=_model_candidates)
    aspect_ratio:          str             = _env("GEMINI_IMAGE_ASPECT_RATIO", "3:4")
    image_size:            str             = _env("GEMINI_IMAGE_SIZE", "2K")
    max_reference_images:  int             = _env_int("GEMINI_IMAGE_MAX_REFERENCE_IMAGES", 3)
    max_reference_bytes:   int             = _env_int("GEMINI_IMAGE_MAX_TOTAL_BYTES", 12 * 1024 * 1024)
    request_timeout:       int             = 120
    fetch_timeout:         int             = 20
    max_custom_prompt:     int             = 1200
    max_target_color:      int             = 60
    max_profile_id:        int             = 80

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class CropConfig:
    max_source_bytes:   int   = 50 * 1024 * 1024
    fetch_timeout:      int   = 20
    default_long_edge:  int   = 3200
    min_long_edge:      int   = 512
    max_long_edge:      int   = 4096
    sharpen_radius:     float = 1.0
    sharpen_percent:    int   = 60
    sharpen_threshold:  int   = 2
    png_compress_level: int   = 9


@dataclass(frozen=True)
class StorageConfig:
    backend:          str = _env("STUDIO_STORAGE_BACKEND", "local")
    bucket:           str = _env("STUDIO_STORAGE_BUCKET")
    public_base_url:  str = _env("STUDIO_PUBLIC_BASE_URL", "http://localhost:8000/media")
    upload_attempts:  int = 3


@dataclass(frozen=True)
class BackgroundRemovalConfig:
    enabled:          bool  = ENABLE_BACKGROUND_REMOVAL
    min_retention:    float = 0.05
    max_retention:    float = 0.95
    min_object_ratio: float = 0.10
    alpha_floor:      int   = 10


@dataclass(frozen=True)
class BulkConfig:
    resume:           bool  = RESUME_BULK
    inter_item_delay: float = 0.5
    id_column:        str   = "product_id"


@dataclass
class AppConfig:
    paths:       PathConfig              = field(default_factory=PathConfig)
    generation:  GenerationConfig        = field(default_factory=GenerationConfig)
    crop:        CropConfig              = field(default_factory=CropConfig)
    storage:     StorageConfig           = field(default_factory=StorageConfig)
    bg:          BackgroundRemovalConfig = field(default_factory=BackgroundRemovalConfig)
    bulk:        BulkConfig              = field(default_factory=BulkConfig)

    verbose:     bool           = VERBOSE_LOGGING
    environment: str            = ENVIRONMENT
    place_first: bool           = PLACE_GENERATED_FIRST
    identity:    Optional[str]  = None

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def validate(self) -> None:
        if self.storage.backend not in ("local", "gcs"):
            raise ConfigurationError(f"Unknown storage backend: {self.storage.backend}")
        if self.storage.backend == "gcs" and not self.storage.bucket:
            raise ConfigurationError("STUDIO_STORAGE_BUCKET is required for gcs storage")
        c = self.crop
        if not (0 < c.min_long_edge <= c.default_long_edge <= c.max_long_edge):
            raise ConfigurationError("Crop long-edge limits are inconsistent")


cfg = AppConfig()


DEFAULT_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
}

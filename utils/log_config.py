"""
Centralised logging setup.
"""

from __future__ import annotations

import logging
import sys
import warnings
from pathlib import Path
from typing import Optional

_CONFIGURED = False

# All noisy loggers to silence
NOISY_LOGGERS = [
    # Network
    "urllib3", "urllib3.connectionpool", "requests", "httpx", "httpcore",
    "h11", "h2", "hpack",
    # Google client libraries
    "google", "google.auth", "google.cloud", "google.resumable_media",
    # Image
    "PIL", "PIL.Image", "PIL.PngImagePlugin", "PIL.JpegImagePlugin",
    "PIL.TiffImagePlugin",
    # Background removal
    "rembg", "rembg.bg", "onnxruntime", "onnx", "pooch",
    # Other
    "asyncio", "chardet", "charset_normalizer", "filelock",
]


def setup_root(log_file: Path, verbose: bool = False) -> None:
    """Configure logging once at startup."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s │ %(levelname)-7s │ %(name)-22s │ %(message)s"
    datefmt = "%H:%M:%S"

    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt=datefmt,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(log_file), encoding="utf-8"),
        ],
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)
        logging.getLogger(name).propagate = False

    for prefix in ["h2.", "httpcore.", "httpx.", "google."]:
        for handler_name in list(logging.Logger.manager.loggerDict.keys()):
            if handler_name.startswith(prefix):
                logging.getLogger(handler_name).setLevel(logging.ERROR)
                logging.getLogger(handler_name).propagate = False

    warnings.filterwarnings("ignore", message=".*Palette images.*")
    warnings.filterwarnings("ignore", category=UserWarning, module="rembg")

    _CONFIGURED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name or "studio")

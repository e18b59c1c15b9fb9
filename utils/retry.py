"""Retry decorator with exponential back-off for transient I/O."""

from __future__ import annotations

import time
from functools import wraps
from typing import Callable, Optional, Tuple, Type

from utils.log_config import get_logger

log = get_logger(__name__)


def retry(
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    when: Optional[Callable[[BaseException], bool]] = None,
):
    """
    Retry the wrapped call up to *max_attempts* times, sleeping
    ``backoff_base * 2**(n-1)`` between tries.

    Only instances of *exceptions* are retried, and only when *when*
    (if given) returns True for them; everything else is re-raised
    immediately.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    if attempt >= max_attempts or (when is not None and not when(exc)):
                        raise
                    delay = backoff_base * (2 ** (attempt - 1))
                    log.debug(
                        "%s failed (attempt %d/%d), retrying in %.1fs — %s",
                        func.__name__, attempt, max_attempts, delay, exc,
                    )
                    time.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator

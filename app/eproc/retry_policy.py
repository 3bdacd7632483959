from __future__ import annotations

import time
from typing import Callable, TypeVar

from .logging_utils import _scraper_event

T = TypeVar("T")


def compute_backoff_seconds(
    attempt_index: int,
    *,
    initial_delay: float = 1.0,
    multiplier: float = 2.0,
    max_delay: float = 30.0,
) -> float:
    """Return a capped exponential backoff for the given attempt (1-based)."""

    exponent = max(0, attempt_index - 1)
    return float(min(initial_delay * (multiplier ** exponent), max_delay))


def with_retry(
    fn: Callable[[], T],
    *,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    multiplier: float = 2.0,
    max_delay: float = 30.0,
    label: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds or ``max_retries`` extra attempts are used.

    The last exception is re-raised once the attempts are exhausted.
    """

    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except Exception as exc:  # noqa: BLE001
            if attempt > max_retries:
                _scraper_event(
                    "error",
                    phase="retry_decision",
                    label=label,
                    kind="exhausted",
                    attempt=attempt,
                    max_retries=max_retries,
                    error=str(exc),
                    will_retry=False,
                )
                raise

            delay = compute_backoff_seconds(
                attempt,
                initial_delay=initial_delay,
                multiplier=multiplier,
                max_delay=max_delay,
            )
            _scraper_event(
                "state",
                phase="retry_decision",
                label=label,
                kind="retryable",
                attempt=attempt,
                max_retries=max_retries,
                error=str(exc),
                next_retry_seconds=delay,
                will_retry=True,
            )
            sleep(delay)


__all__ = ["compute_backoff_seconds", "with_retry"]

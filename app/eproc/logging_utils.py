from __future__ import annotations

import logging
from typing import Any

from .utils import log_line

_ERROR_LABELS = {"error", "auth_error", "download_error"}


def _scraper_event(label: str = "", /, *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured monitor log line.

    ``phase`` is accepted as an alias for the label. When both are given the
    label wins and ``phase`` is folded into the payload. Labels in
    ``_ERROR_LABELS`` are logged at WARNING level.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{k}={v!r}" for k, v in sorted(fields.items()))
        level = logging.WARNING if phase_label.lower() in _ERROR_LABELS else logging.INFO
        log_line(f"[MONITOR][{phase_label.upper()}] {payload}", level=level)
    except Exception:
        # Logging must never break a cycle.
        return


__all__ = ["_scraper_event"]

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, Optional

_DATETIME_FORMATS: Iterable[str] = (
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
)

_DATE_FRAGMENT = re.compile(r"\d{2}/\d{2}/\d{4}(?:\s+\d{2}:\d{2}(?::\d{2})?)?")


def parse_br_datetime(value: str | None) -> Optional[datetime]:
    """Parse a ``dd/mm/yyyy [HH:MM[:SS]]`` string, returning ``None`` on failure.

    Surrounding text is tolerated; the first date-looking fragment is used.
    """

    candidate = (value or "").strip()
    if not candidate:
        return None

    match = _DATE_FRAGMENT.search(candidate)
    if match:
        candidate = re.sub(r"\s+", " ", match.group(0))

    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(candidate, fmt)
        except ValueError:
            continue
    return None


def to_iso(value: str | None) -> Optional[str]:
    """Convert a Brazilian date string to ISO-8601 or ``None``."""

    parsed = parse_br_datetime(value)
    return parsed.isoformat() if parsed else None

"""Debug artefacts saved while ``DEBUG_MODE`` is enabled."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Dict, List, Optional

from bs4 import BeautifulSoup
from playwright.sync_api import Page

from . import config
from .utils import log_line, sanitize_filename


def _artifact_path(label: str, suffix: str) -> Path:
    stamp = time.strftime("%Y%m%d_%H%M%S", time.gmtime())
    return config.DEBUG_DIR / f"{stamp}_{sanitize_filename(label)}{suffix}"


def describe_tables(html: str) -> List[Dict[str, object]]:
    """Summarise every table on a page: id, classes, caption, headers, row count."""

    soup = BeautifulSoup(html or "", "html5lib")
    summary: List[Dict[str, object]] = []
    for index, table in enumerate(soup.find_all("table")):
        caption = table.find("caption")
        summary.append(
            {
                "index": index,
                "id": table.get("id") or "",
                "classes": " ".join(table.get("class") or []),
                "caption": caption.get_text(" ", strip=True) if caption else "",
                "headers": [th.get_text(" ", strip=True)[:40] for th in table.find_all("th")][:10],
                "rows": len(table.find_all("tr")),
            }
        )
    return summary


def save_debug_snapshot(page: Optional[Page], label: str) -> Optional[Path]:
    """Write page HTML and a screenshot; no-op unless ``DEBUG_MODE`` is on."""

    if not config.DEBUG_MODE or page is None or page.is_closed():
        return None

    html_path = _artifact_path(label, ".html")
    try:
        html_path.parent.mkdir(parents=True, exist_ok=True)
        html = page.content()
        html_path.write_text(html, encoding="utf-8")
        log_line(f"[DEBUG] Saved HTML -> {html_path}")
        for table in describe_tables(html):
            log_line(f"[DEBUG] table {table}")
    except Exception as exc:  # noqa: BLE001
        log_line(f"[DEBUG] Failed to save HTML for {label}: {exc}")
        return None

    try:
        page.screenshot(path=str(_artifact_path(label, ".png")), full_page=True)
    except Exception as exc:  # noqa: BLE001
        log_line(f"[DEBUG] Failed to save screenshot for {label}: {exc}")
    return html_path


__all__ = ["describe_tables", "save_debug_snapshot"]

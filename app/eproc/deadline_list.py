from __future__ import annotations

from typing import List, Tuple

from playwright.sync_api import Error as PWError, Page

from . import config
from .browser import open_in_new_tab, pause, snapshot_html, wait_for_selector, wait_for_settle
from .debug_html import save_debug_snapshot
from .errors import ElementNotFound, ListPageNotFound
from .logging_utils import _scraper_event
from .models import CaseRecord
from .parser import parse_deadline_list, parse_record_count
from .selectors import PORTAL_SELECTORS
from .utils import log_line

_DEADLINE_LINK_ATTR = "data-eproc-target"

# Tags the count link in the row labelled exactly ``label`` so it can be clicked.
_MARK_DEADLINE_LINK_SCRIPT = """
([label, attr]) => {
    for (const row of document.querySelectorAll('tr')) {
        const cells = row.querySelectorAll('td');
        if (cells.length < 2) continue;
        if ((cells[0].textContent || '').trim() !== label) continue;
        const link = cells[1].querySelector('a');
        if (!link) continue;
        link.setAttribute(attr, 'deadline-list');
        return (link.textContent || '').trim();
    }
    return null;
}
"""

_EMPTY_LIST_MARKERS = ("nenhum registro encontrado", "nenhum processo")


def navigate_to_panel(page: Page) -> bool:
    """Open the advocate panel. Returns ``False`` when the link is missing."""

    selectors = PORTAL_SELECTORS
    link = page.locator("a", has_text=selectors.panel_link_text)
    if link.count() == 0:
        link = page.locator(f"a[href*='{selectors.panel_href_marker}']")
    if link.count() == 0:
        log_line("[LIST] Panel link not found; assuming the panel is already open.")
        save_debug_snapshot(page, "panel_link_missing")
        return False

    link.first.click()
    wait_for_settle(page, label="panel")
    pause(page, config.STEP_DELAY_RANGE)
    save_debug_snapshot(page, "panel")
    _scraper_event("nav", step="panel", url=page.url)
    return True


def _deadline_link_selector(page: Page) -> str | None:
    selectors = PORTAL_SELECTORS
    try:
        count_text = page.evaluate(
            _MARK_DEADLINE_LINK_SCRIPT, [selectors.deadline_row_label, _DEADLINE_LINK_ATTR]
        )
    except PWError as exc:
        log_line(f"[LIST] Could not scan panel rows: {exc}")
        count_text = None

    if count_text is not None:
        log_line(f"[LIST] Panel reports {count_text} cases with open deadlines")
        return f"a[{_DEADLINE_LINK_ATTR}='deadline-list']"

    fallback = ", ".join(f"a[href*='{marker}']" for marker in selectors.list_url_markers)
    if page.locator(fallback).count() > 0:
        return fallback
    return None


def open_deadline_list(page: Page) -> Page:
    """Click through to the open-deadline list and return the page showing it.

    Raises :class:`ListPageNotFound` when neither a new tab, the current tab,
    nor any open tab shows the list.
    """

    selector = _deadline_link_selector(page)
    if selector is None:
        save_debug_snapshot(page, "deadline_link_missing")
        raise ListPageNotFound("Open-deadline link not found on the panel")

    list_page = open_in_new_tab(
        page,
        lambda: page.locator(selector).first.click(),
        url_markers=PORTAL_SELECTORS.list_url_markers,
        label="deadline_list",
    )
    if list_page is None:
        raise ListPageNotFound("Open-deadline list page did not open")

    wait_for_settle(list_page, label="deadline_list")
    pause(list_page, config.STEP_DELAY_RANGE)
    return list_page


def extract_deadline_list(list_page: Page, advocate_name: str) -> List[CaseRecord]:
    """Snapshot the list page and parse its cases.

    A page with neither the table nor an explicit "no records" message raises
    :class:`ElementNotFound` so an unrendered page never empties the store.
    """

    selectors = PORTAL_SELECTORS
    if not wait_for_selector(list_page, selectors.list_table, label="deadline_table"):
        body_text = (list_page.inner_text("body") or "").lower()
        if any(marker in body_text for marker in _EMPTY_LIST_MARKERS):
            log_line("[LIST] Portal reports no open deadlines.")
            return []
        save_debug_snapshot(list_page, "deadline_table_missing")
        raise ElementNotFound(f"Deadline table {selectors.list_table!r} not found")

    html = snapshot_html(list_page)
    save_debug_snapshot(list_page, "deadline_list")

    hint = parse_record_count(list_page.inner_text("body"))
    cases = parse_deadline_list(html, advocate_name, table_selector=selectors.list_table)
    if hint is not None and hint != len(cases):
        log_line(f"[LIST] Portal shows {hint} records but {len(cases)} were parsed")
    _scraper_event("list", step="parsed", cases=len(cases), portal_total=hint, url=list_page.url)
    return cases


def fetch_open_deadline_cases(page: Page, advocate_name: str) -> Tuple[List[CaseRecord], Page]:
    """Navigate panel -> list and return ``(cases, list_page)``."""

    navigate_to_panel(page)
    list_page = open_deadline_list(page)
    return extract_deadline_list(list_page, advocate_name), list_page


__all__ = [
    "navigate_to_panel",
    "open_deadline_list",
    "extract_deadline_list",
    "fetch_open_deadline_cases",
]

"""Per-case detail extraction: event history, represented side, documents."""
from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from playwright.sync_api import Error as PWError, Page

from . import config, db
from .browser import open_in_new_tab, snapshot_html, wait_for_selector, wait_for_settle
from .debug_html import save_debug_snapshot
from .documents import DocumentStats, Fetcher, fetch_document, process_case_documents
from .errors import ElementNotFound, ErrorCode
from .logging_utils import _scraper_event
from .models import CaseRecord, ProcessEvent, RepresentedSide
from .parser import parse_events, parse_representatives
from .selectors import PORTAL_SELECTORS
from .storage import BlobStore
from .utils import digits_only, log_line, normalize_text, random_delay

_CASE_LINK_ATTR = "data-eproc-case"

# Tags the first link that names the docket (text or digits-only href).
_MARK_CASE_LINK_SCRIPT = """
([docket, digits, attr]) => {
    for (const link of document.querySelectorAll('a')) {
        const text = link.textContent || '';
        const href = link.getAttribute('href') || '';
        if (text.includes(docket) || (digits && href.includes(digits))) {
            link.setAttribute(attr, docket);
            return true;
        }
    }
    return false;
}
"""


@dataclass
class CaseDetailResult:
    docket_number: str
    events: List[ProcessEvent] = field(default_factory=list)
    side_updated: bool = False
    documents: DocumentStats = field(default_factory=DocumentStats)
    ok: bool = True


@dataclass
class BatchResult:
    processed: List[CaseDetailResult] = field(default_factory=list)
    all_processed: bool = True

    @property
    def events_saved(self) -> int:
        return sum(len(result.events) for result in self.processed)

    @property
    def sides_updated(self) -> int:
        return sum(1 for result in self.processed if result.side_updated)

    @property
    def documents_downloaded(self) -> int:
        return sum(result.documents.downloaded for result in self.processed)


def correlation_base(events: Sequence[ProcessEvent]) -> Optional[int]:
    """Event referenced by the first open-deadline event, if any."""

    for event in events:
        if event.is_open_deadline:
            return event.referenced_event
    return None


def filter_events_for_persistence(events: Sequence[ProcessEvent], base: Optional[int]) -> List[ProcessEvent]:
    """Keep events numbered at or after ``base``; everything when ``base`` is unset."""

    if not base:
        return list(events)
    return [event for event in events if (event.event_number or 0) >= base]


def advocate_in_list(names: Iterable[str], advocate_name: str) -> bool:
    target = normalize_text(advocate_name)
    if not target:
        return False
    return any(target in normalize_text(name) for name in names)


def resolve_represented_side(
    case: CaseRecord,
    representatives: Dict[RepresentedSide, List[str]],
    advocate_name: str,
) -> Optional[RepresentedSide]:
    """Persist the side whose representatives include the advocate.

    Returns the newly set side, or ``None`` when nothing changed. A case whose
    side is already known is left untouched.
    """

    if case.represented_side is not None:
        return None

    for side in (RepresentedSide.PLAINTIFF, RepresentedSide.DEFENDANT):
        if not advocate_in_list(representatives.get(side, []), advocate_name):
            continue
        name, tax_id = case.party_for(side)
        if db.update_represented_side(case.docket_number, side, name, tax_id):
            case.represented_side = side
            case.client_name = name
            case.client_tax_id = tax_id or None
            log_line(f"[DETAIL] Represented side for {case.docket_number}: {side.value}")
            return side
        return None
    return None


def open_case_detail(list_page: Page, docket_number: str) -> Page:
    """Open the detail view of ``docket_number`` from the list page."""

    digits = digits_only(docket_number)
    found = list_page.evaluate(_MARK_CASE_LINK_SCRIPT, [docket_number, digits, _CASE_LINK_ATTR])
    if not found:
        raise ElementNotFound(f"Link for case {docket_number} not found on the list page")

    selector = f"a[{_CASE_LINK_ATTR}='{docket_number}']"
    detail_page = open_in_new_tab(
        list_page,
        lambda: list_page.locator(selector).first.click(),
        url_markers=(digits, "processo_selecionar"),
        label=f"case_detail:{docket_number}",
    )
    if detail_page is None:
        raise ElementNotFound(f"Detail page for case {docket_number} did not open")

    wait_for_settle(detail_page, label="case_detail")
    return detail_page


def _return_to_list(list_page: Page, detail_page: Page) -> None:
    if detail_page is not list_page:
        try:
            detail_page.close()
        except PWError as exc:
            log_line(f"[DETAIL] Failed to close detail tab: {exc}")
        return
    try:
        list_page.go_back(wait_until="domcontentloaded", timeout=config.BROWSER_TIMEOUT_MS)
    except PWError as exc:
        log_line(f"[DETAIL] Could not go back to the list: {exc}")
        return
    wait_for_selector(list_page, PORTAL_SELECTORS.list_table, label="deadline_table_return")


def extract_case_detail(
    list_page: Page,
    case: CaseRecord,
    advocate_name: str,
    *,
    store: BlobStore,
    fetcher: Fetcher = fetch_document,
) -> CaseDetailResult:
    """Extract events, side and documents for one case.

    Any failure is logged and turned into an empty result so the batch goes on.
    """

    docket = case.docket_number
    detail_page: Optional[Page] = None
    try:
        detail_page = open_case_detail(list_page, docket)
        html = snapshot_html(detail_page)
        save_debug_snapshot(detail_page, f"detail_{digits_only(docket)}")

        all_events = parse_events(html, docket, base_url=detail_page.url)
        base = correlation_base(all_events)
        relevant = filter_events_for_persistence(all_events, base)
        log_line(f"[DETAIL] {docket}: keeping {len(relevant)} of {len(all_events)} events (base {base or 0})")
        if relevant:
            db.replace_events(docket, relevant)

        side_updated = False
        if case.represented_side is None:
            side_updated = resolve_represented_side(case, parse_representatives(html), advocate_name) is not None

        documents = DocumentStats()
        if all_events:
            documents = process_case_documents(
                detail_page.context, docket, all_events, store=store, fetcher=fetcher
            )

        _scraper_event(
            "detail",
            step="case_done",
            docket=docket,
            events=len(relevant),
            side_updated=side_updated,
            documents=documents.downloaded,
        )
        return CaseDetailResult(docket, events=relevant, side_updated=side_updated, documents=documents)
    except Exception as exc:  # noqa: BLE001
        _scraper_event(
            "error",
            phase="detail",
            docket=docket,
            error=str(exc),
            error_type=type(exc).__name__,
            error_code=getattr(exc, "error_code", ErrorCode.CASE_FAILED),
        )
        log_line(f"[DETAIL] Case {docket} failed:\n{traceback.format_exc()}")
        return CaseDetailResult(docket, ok=False)
    finally:
        if detail_page is not None:
            _return_to_list(list_page, detail_page)


def extract_case_details(
    list_page: Page,
    cases: Sequence[CaseRecord],
    advocate_name: str,
    *,
    limit: int,
    skip: Set[str] | None = None,
    store: BlobStore,
    fetcher: Fetcher = fetch_document,
) -> BatchResult:
    """Run detail extraction for at most ``limit`` cases not in ``skip``.

    ``all_processed`` is true when no candidate was left for a later cycle.
    """

    skip = skip or set()
    candidates = [case for case in cases if case.docket_number not in skip]
    log_line(
        f"[DETAIL] Candidates: {len(candidates)} of {len(cases)} "
        f"({len(skip)} skipped)"
    )
    if not candidates:
        return BatchResult(all_processed=True)

    batch = candidates[: max(0, limit)]
    result = BatchResult(all_processed=len(candidates) <= len(batch))
    for index, case in enumerate(batch):
        result.processed.append(
            extract_case_detail(list_page, case, advocate_name, store=store, fetcher=fetcher)
        )
        if index < len(batch) - 1:
            random_delay(config.CASE_DELAY_RANGE)

    _scraper_event(
        "detail",
        step="batch_done",
        processed=len(batch),
        remaining=len(candidates) - len(batch),
        events=result.events_saved,
        sides=result.sides_updated,
        documents=result.documents_downloaded,
    )
    return result


def backfill_represented_side(
    list_page: Page,
    advocate_name: str,
    *,
    limit: int,
    skip: Set[str] | None = None,
    store: BlobStore,
    fetcher: Fetcher = fetch_document,
) -> BatchResult:
    """Re-run detail extraction for listed cases whose side is still unknown.

    ``skip`` holds cases already visited earlier in the same cycle.
    """

    pending = db.get_cases_without_represented_side()
    log_line(f"[DETAIL] Cases without represented side: {len(pending)}")
    return extract_case_details(
        list_page, pending, advocate_name, limit=limit, skip=skip, store=store, fetcher=fetcher
    )


__all__ = [
    "CaseDetailResult",
    "BatchResult",
    "correlation_base",
    "filter_events_for_persistence",
    "advocate_in_list",
    "resolve_represented_side",
    "open_case_detail",
    "extract_case_detail",
    "extract_case_details",
    "backfill_represented_side",
]

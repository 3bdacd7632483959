"""Selection and download of documents attached to deadline-related events."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from playwright.sync_api import BrowserContext, Error as PWError, Response, TimeoutError as PWTimeout

from . import config, db
from .browser import is_target_closed_error
from .errors import ErrorCode, StoreFailure
from .logging_utils import _scraper_event
from .models import Attachment, ProcessEvent, StoredDocument
from .storage import BlobStore
from .utils import digits_only, log_line, random_delay, sanitize_filename

ALREADY_DOWNLOADED = "already_downloaded"
DOWNLOADED = "downloaded"
FAILED = "failed"

_CAPTURED_KINDS = ("pdf", "html", "octet-stream")


@dataclass
class FetchedDocument:
    data: bytes
    content_type: str


@dataclass
class DocumentStats:
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0


Fetcher = Callable[[BrowserContext, str], Optional[FetchedDocument]]


def document_base(events: Sequence[ProcessEvent]) -> Optional[int]:
    """Return the smallest event referenced by any open-deadline event."""

    references = [
        event.referenced_event
        for event in events
        if event.is_open_deadline and event.referenced_event is not None
    ]
    return min(references) if references else None


def select_document_events(events: Sequence[ProcessEvent]) -> List[ProcessEvent]:
    """Events at or after the document base that carry attachments, ascending.

    Without any open-deadline reference nothing is selected.
    """

    base = document_base(events)
    if base is None:
        return []
    relevant = [
        event
        for event in events
        if (event.event_number or 0) >= base and event.has_attachments
    ]
    relevant.sort(key=lambda event: event.event_number or 0)
    if relevant:
        log_line(
            f"[DOCS] {len(relevant)} events with documents from base {base} "
            f"(events {relevant[0].event_number} to {relevant[-1].event_number})"
        )
    return relevant


def build_storage_path(docket_number: str, event_number: int, name: str) -> str:
    """``{docket digits}/evento_{n}/{sanitised name}.pdf``."""

    filename = name if name.lower().endswith(".pdf") else f"{name}.pdf"
    return f"{digits_only(docket_number)}/evento_{event_number}/{sanitize_filename(filename)}"


def _matches_document(response_url: str, url: str) -> bool:
    return response_url == url or response_url.startswith(url.split("?")[0])


def _header_content_type(response: Response) -> str:
    try:
        raw = response.headers.get("content-type") or ""
    except PWError:
        return ""
    return raw.split(";")[0].strip().lower()


def fetch_document(context: BrowserContext, url: str) -> Optional[FetchedDocument]:
    """Fetch ``url`` in a throwaway tab of the authenticated context.

    Prefers the captured response body, then the navigation response, and
    finally prints the tab to A4 PDF when the portal served an HTML viewer.
    Returns ``None`` when no successful response arrived or nothing usable
    was captured.
    """

    page = None
    matched: list[Response] = []
    try:
        page = context.new_page()

        def on_response(response: Response) -> None:
            if matched:
                return
            if _matches_document(response.url, url) and any(
                kind in _header_content_type(response) for kind in _CAPTURED_KINDS
            ):
                matched.append(response)

        page.on("response", on_response)

        nav_response = None
        try:
            nav_response = page.goto(url, wait_until="networkidle", timeout=config.DOCUMENT_TIMEOUT_MS)
        except PWTimeout as exc:
            log_line(f"[DOCS] Navigation to document timed out: {exc}")
        except PWError as exc:
            # Direct downloads abort navigation but the response is still captured.
            if is_target_closed_error(exc):
                raise
            log_line(f"[DOCS] Navigation to document interrupted: {exc}")

        received = [
            response
            for response in (matched[0] if matched else None, nav_response)
            if response is not None and response.status < 400
        ]
        if not received:
            # A failed navigation leaves an error tab; printing it would store a fake document.
            _scraper_event("download_error", step="no_response", url=url, error_code=ErrorCode.DOWNLOAD_FAILED)
            return None

        data: Optional[bytes] = None
        content_type = ""
        for candidate in received:
            try:
                data = candidate.body()
                content_type = _header_content_type(candidate)
                break
            except PWError as exc:
                log_line(f"[DOCS] Response body unavailable: {exc}")

        if data and not content_type and data.startswith(b"%PDF"):
            content_type = "application/pdf"
        if not data or not content_type or "html" in content_type:
            try:
                data = page.pdf(format="A4", print_background=True)
                content_type = "application/pdf"
            except PWError as exc:
                log_line(f"[DOCS] PDF rendering fallback failed: {exc}")
                data = None

        if not data:
            _scraper_event("download_error", step="empty", url=url, error_code=ErrorCode.DOWNLOAD_EMPTY)
            return None
        return FetchedDocument(data=data, content_type=content_type)
    except PWError as exc:
        _scraper_event("download_error", step="fetch", url=url, error=str(exc), error_code=ErrorCode.DOWNLOAD_FAILED)
        return None
    finally:
        if page is not None:
            try:
                page.close()
            except PWError as exc:
                log_line(f"[DOCS] Failed to close document tab: {exc}")


def download_attachment(
    context: BrowserContext,
    docket_number: str,
    event: ProcessEvent,
    attachment: Attachment,
    *,
    store: BlobStore,
    fetcher: Fetcher = fetch_document,
) -> str:
    """Download one attachment unless its storage path is already recorded."""

    event_number = event.event_number or 0
    storage_path = build_storage_path(docket_number, event_number, attachment.name)
    if db.document_exists(storage_path):
        log_line(f"[DOCS] Already downloaded, skipping: {storage_path}")
        return ALREADY_DOWNLOADED

    fetched = fetcher(context, attachment.url)
    if fetched is None:
        log_line(f"[DOCS] Failed to download {attachment.name} ({attachment.url[:80]})")
        return FAILED

    try:
        size = store.upload(storage_path, fetched.data, fetched.content_type, overwrite=True)
        signed_url = store.signed_url(storage_path, config.SIGNED_URL_TTL_SECONDS)
        db.save_document(
            StoredDocument(
                docket_number=docket_number,
                event_number=event_number,
                event_date=event.occurred_at,
                original_name=attachment.name,
                content_kind=fetched.content_type,
                size_bytes=size,
                storage_path=storage_path,
                signed_url=signed_url,
            )
        )
    except StoreFailure as exc:
        _scraper_event("download_error", step="store", path=storage_path, error=str(exc))
        return FAILED

    _scraper_event("download", step="stored", path=storage_path, bytes=size, content_type=fetched.content_type)
    return DOWNLOADED


def process_case_documents(
    context: BrowserContext,
    docket_number: str,
    events: Sequence[ProcessEvent],
    *,
    store: BlobStore,
    fetcher: Fetcher = fetch_document,
) -> DocumentStats:
    """Download every relevant attachment of a case, one at a time."""

    stats = DocumentStats()
    for event in select_document_events(events):
        for attachment in event.attachments:
            if not attachment.url:
                log_line(f"[DOCS] Attachment without URL: {attachment.name} (event {event.event_number})")
                continue
            status = download_attachment(
                context, docket_number, event, attachment, store=store, fetcher=fetcher
            )
            if status == ALREADY_DOWNLOADED:
                stats.skipped += 1
                continue
            if status == DOWNLOADED:
                stats.downloaded += 1
            else:
                stats.failed += 1
            random_delay(config.STEP_DELAY_RANGE)

    _scraper_event(
        "download",
        step="case_done",
        docket=docket_number,
        downloaded=stats.downloaded,
        skipped=stats.skipped,
        failed=stats.failed,
    )
    return stats


__all__ = [
    "ALREADY_DOWNLOADED",
    "DOWNLOADED",
    "FAILED",
    "FetchedDocument",
    "DocumentStats",
    "document_base",
    "select_document_events",
    "build_storage_path",
    "fetch_document",
    "download_attachment",
    "process_case_documents",
]

"""One monitoring cycle: login, list, reconcile, details, backfill."""
from __future__ import annotations

import time
import traceback
from dataclasses import dataclass
from typing import Callable, Optional

from . import config, db
from .auth import authenticate
from .browser import BrowserSession, close_extra_pages
from .case_detail import backfill_represented_side, extract_case_details
from .deadline_list import fetch_open_deadline_cases
from .logging_utils import _scraper_event
from .models import RunStatus
from .reconcile import sync_cases
from .storage import BlobStore, get_store
from .utils import ensure_dirs, log_line, setup_run_logger


@dataclass
class CycleResult:
    run_id: Optional[int]
    status: RunStatus
    fully_drained: bool = False
    cases_found: int = 0
    cases_new: int = 0
    cases_removed: int = 0
    events_saved: int = 0
    sides_updated: int = 0
    documents_downloaded: int = 0
    error_message: Optional[str] = None


def run_cycle(
    *,
    session_factory: Callable[[], BrowserSession] = BrowserSession,
    store: BlobStore | None = None,
    advocate_name: str | None = None,
    limit: int | None = None,
) -> CycleResult:
    """Run one cycle and record it in ``runs``.

    Never raises: failures finalise the run as ``error`` and the result is
    reported as not drained so the scheduler stays in active mode.
    """

    ensure_dirs()
    setup_run_logger()
    db.initialize_schema()

    advocate = advocate_name if advocate_name is not None else config.ADVOGADO_NOME
    batch_limit = limit if limit is not None else config.MAX_PROCESSES_PER_CYCLE
    blob_store = store or get_store()

    run_id = db.create_run()
    started = time.monotonic()
    result = CycleResult(run_id=run_id, status=RunStatus.RUNNING)
    _scraper_event("cycle", step="start", run_id=run_id, limit=batch_limit)

    try:
        with session_factory() as session:
            page = session.page
            try:
                authenticate(page)

                extracted, list_page = fetch_open_deadline_cases(page, advocate)
                reconciled = sync_cases(extracted, store=blob_store)
                result.cases_found = len(reconciled.cases)
                result.cases_new = len(reconciled.new)
                result.cases_removed = len(reconciled.removed)

                # Stored rows carry the represented side set by earlier cycles.
                stored = {case.docket_number: case for case in db.get_all_cases()}
                listed = [stored.get(case.docket_number, case) for case in reconciled.cases]

                details = extract_case_details(
                    list_page,
                    listed,
                    advocate,
                    limit=batch_limit,
                    skip=db.get_cases_with_events(),
                    store=blob_store,
                )
                backfill = backfill_represented_side(
                    list_page,
                    advocate,
                    limit=batch_limit,
                    skip={item.docket_number for item in details.processed},
                    store=blob_store,
                )

                result.events_saved = details.events_saved + backfill.events_saved
                result.sides_updated = details.sides_updated + backfill.sides_updated
                result.documents_downloaded = details.documents_downloaded + backfill.documents_downloaded
                result.fully_drained = details.all_processed and backfill.all_processed

                failures = [item for item in details.processed + backfill.processed if not item.ok]
                result.status = RunStatus.PARTIAL if failures else RunStatus.SUCCESS
            finally:
                if session.context is not None:
                    closed = close_extra_pages(session.context, page)
                    if closed:
                        log_line(f"[CYCLE] Closed {closed} extra tabs")
    except Exception as exc:  # noqa: BLE001
        result.status = RunStatus.ERROR
        result.fully_drained = False
        result.error_message = str(exc) or type(exc).__name__
        trace = traceback.format_exc()
        log_line(f"[CYCLE] Cycle failed: {result.error_message}\n{trace}")
        _scraper_event(
            "error",
            phase="cycle",
            run_id=run_id,
            error=result.error_message,
            error_code=getattr(exc, "error_code", None),
        )
        db.finalize_run(
            run_id,
            status=RunStatus.ERROR,
            cases_found=result.cases_found,
            cases_new=result.cases_new,
            cases_removed=result.cases_removed,
            error_message=result.error_message,
            error_trace=trace,
            duration_seconds=time.monotonic() - started,
        )
        return result

    db.finalize_run(
        run_id,
        status=result.status,
        cases_found=result.cases_found,
        cases_new=result.cases_new,
        cases_removed=result.cases_removed,
        duration_seconds=time.monotonic() - started,
    )
    _scraper_event(
        "cycle",
        step="done",
        run_id=run_id,
        status=result.status.value,
        drained=result.fully_drained,
        found=result.cases_found,
        new=result.cases_new,
        removed=result.cases_removed,
        events=result.events_saved,
        sides=result.sides_updated,
        documents=result.documents_downloaded,
    )
    return result


__all__ = ["CycleResult", "run_cycle"]

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

from . import db
from .logging_utils import _scraper_event
from .models import CaseRecord
from .storage import BlobStore
from .utils import digits_only, log_line


@dataclass
class ReconcileResult:
    new: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    upserted: int = 0
    duplicates: int = 0
    cases: List[CaseRecord] = field(default_factory=list)


def dedupe_cases(cases: Iterable[CaseRecord]) -> List[CaseRecord]:
    """Collapse repeated docket numbers, keeping the last record seen.

    Output order follows the first appearance of each docket number.
    """

    latest: dict[str, CaseRecord] = {}
    total = 0
    for case in cases:
        total += 1
        latest[case.docket_number] = case
    collapsed = total - len(latest)
    if collapsed:
        log_line(f"[RECONCILE] Collapsed {collapsed} duplicate case rows ({total} -> {len(latest)})")
    return list(latest.values())


def compare_cases(extracted: Iterable[str], stored: Iterable[str]) -> tuple[List[str], List[str]]:
    """Return ``(new, removed)`` docket numbers, each sorted."""

    extracted_set = set(extracted)
    stored_set = set(stored)
    return sorted(extracted_set - stored_set), sorted(stored_set - extracted_set)


def sync_cases(extracted: Sequence[CaseRecord], *, store: BlobStore | None = None) -> ReconcileResult:
    """Bring the stored case set in line with the freshly extracted list.

    Upserts every extracted case and deletes those no longer listed; blobs of
    removed cases are deleted best-effort.
    """

    unique = dedupe_cases(extracted)
    stored = [case.docket_number for case in db.get_all_cases()]
    new, removed = compare_cases((case.docket_number for case in unique), stored)

    upserted = db.upsert_cases(unique)

    if removed:
        if store is not None:
            for path in db.get_document_paths_for_cases(removed):
                store.delete(path)
            for docket in removed:
                for path in store.list(f"{digits_only(docket)}/"):
                    store.delete(path)
        db.delete_cases(removed)

    _scraper_event(
        "state",
        phase="reconcile",
        extracted=len(unique),
        stored=len(stored),
        new=len(new),
        removed=len(removed),
    )
    return ReconcileResult(
        new=new,
        removed=removed,
        upserted=upserted,
        duplicates=len(extracted) - len(unique),
        cases=unique,
    )


__all__ = ["ReconcileResult", "dedupe_cases", "compare_cases", "sync_cases"]

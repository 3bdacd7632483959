"""SQLite helpers for the eproc deadline monitor.

This module defines the database path, connection helper, schema
initialisation and the record operations used by a cycle: case upserts and
deletions, event replacement, stored-document bookkeeping and the run log.
"""
from __future__ import annotations

import json
import sqlite3
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional, Set

from . import config
from .errors import StoreFailure
from .models import (
    Attachment,
    CaseRecord,
    ProcessEvent,
    RepresentedSide,
    RunRecord,
    RunStatus,
    StoredDocument,
)
from .utils import log_line

DB_PATH: Path = config.DB_PATH

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Columns refreshed on every list upsert. Represented-side columns are not in
# this list: they are only filled while still NULL.
LIST_COLUMNS: tuple[str, ...] = (
    "court_code",
    "plaintiff_name",
    "plaintiff_tax_id",
    "defendant_name",
    "defendant_tax_id",
    "case_class",
    "subject",
    "deadline_event",
    "deadline_days",
    "notice_sent_at",
    "deadline_start_at",
    "deadline_end_at",
    "raw_data",
)


def get_connection() -> sqlite3.Connection:
    """Return a SQLite connection to the project database.

    The parent directory is created if missing, foreign keys are enforced so
    case deletions cascade, and ``check_same_thread`` is disabled because the
    scheduler runs cycles on timer threads.
    """

    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize_schema() -> None:
    """Create the tables if they do not yet exist. Safe to call repeatedly."""

    statements: Iterable[str] = (
        """
        CREATE TABLE IF NOT EXISTS cases (
            docket_number     TEXT PRIMARY KEY,
            court_code        TEXT,
            plaintiff_name    TEXT,
            plaintiff_tax_id  TEXT,
            defendant_name    TEXT,
            defendant_tax_id  TEXT,
            represented_side  TEXT,
            client_name       TEXT,
            client_tax_id     TEXT,
            case_class        TEXT,
            subject           TEXT,
            deadline_event    TEXT,
            deadline_days     INTEGER,
            notice_sent_at    TEXT,
            deadline_start_at TEXT,
            deadline_end_at   TEXT,
            raw_data          TEXT,
            created_at        TEXT NOT NULL,
            updated_at        TEXT NOT NULL
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS events (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            docket_number    TEXT NOT NULL,
            event_number     INTEGER,
            actor            TEXT,
            occurred_at      TEXT,
            description      TEXT,
            attachments_json TEXT NOT NULL DEFAULT '[]',
            is_open_deadline INTEGER NOT NULL DEFAULT 0,
            referenced_event INTEGER,
            raw_data         TEXT,
            created_at       TEXT NOT NULL,
            FOREIGN KEY(docket_number) REFERENCES cases(docket_number) ON DELETE CASCADE
        );
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_events_docket
            ON events(docket_number, event_number);
        """,
        """
        CREATE TABLE IF NOT EXISTS documents (
            id             INTEGER PRIMARY KEY AUTOINCREMENT,
            docket_number  TEXT NOT NULL,
            event_number   INTEGER NOT NULL,
            event_date     TEXT,
            original_name  TEXT NOT NULL,
            content_kind   TEXT,
            size_bytes     INTEGER,
            storage_path   TEXT NOT NULL UNIQUE,
            signed_url     TEXT,
            created_at     TEXT NOT NULL,
            FOREIGN KEY(docket_number) REFERENCES cases(docket_number) ON DELETE CASCADE
        );
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_documents_docket
            ON documents(docket_number);
        """,
        """
        CREATE TABLE IF NOT EXISTS runs (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            started_at       TEXT NOT NULL,
            finished_at      TEXT,
            duration_seconds REAL,
            status           TEXT NOT NULL,
            cases_found      INTEGER NOT NULL DEFAULT 0,
            cases_new        INTEGER NOT NULL DEFAULT 0,
            cases_removed    INTEGER NOT NULL DEFAULT 0,
            error_message    TEXT,
            error_trace      TEXT
        );
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_runs_started_at
            ON runs(started_at DESC);
        """,
    )

    conn = get_connection()
    with conn:
        for statement in statements:
            conn.execute(statement)


def _utc_now() -> str:
    """Return a UTC timestamp formatted as ISO8601 without fractional seconds."""

    return time.strftime(_TIMESTAMP_FORMAT, time.gmtime())


def _dump_json(value: Any) -> str:
    return json.dumps(value or {}, ensure_ascii=False, sort_keys=True)


def _load_json(value: Optional[str], default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------


def row_to_case(row: sqlite3.Row) -> CaseRecord:
    side = row["represented_side"]
    return CaseRecord(
        docket_number=row["docket_number"],
        court_code=row["court_code"] or "",
        plaintiff_name=row["plaintiff_name"] or "",
        plaintiff_tax_id=row["plaintiff_tax_id"] or "",
        defendant_name=row["defendant_name"] or "",
        defendant_tax_id=row["defendant_tax_id"] or "",
        represented_side=RepresentedSide(side) if side else None,
        client_name=row["client_name"],
        client_tax_id=row["client_tax_id"],
        case_class=row["case_class"] or "",
        subject=row["subject"] or "",
        deadline_event=row["deadline_event"] or "",
        deadline_days=row["deadline_days"],
        notice_sent_at=row["notice_sent_at"],
        deadline_start_at=row["deadline_start_at"],
        deadline_end_at=row["deadline_end_at"],
        raw_data=_load_json(row["raw_data"], {}),
    )


def get_all_cases() -> List[CaseRecord]:
    """Return every stored case. Best-effort: read errors yield an empty list."""

    try:
        conn = get_connection()
        rows = conn.execute("SELECT * FROM cases ORDER BY docket_number").fetchall()
    except sqlite3.Error as exc:
        log_line(f"[DB] Failed to load cases: {exc}")
        return []
    return [row_to_case(row) for row in rows]


def get_case(docket_number: str) -> Optional[CaseRecord]:
    conn = get_connection()
    row = conn.execute(
        "SELECT * FROM cases WHERE docket_number = ?", (docket_number,)
    ).fetchone()
    return row_to_case(row) if row else None


def upsert_cases(cases: Iterable[CaseRecord]) -> int:
    """Insert or update cases keyed by docket number.

    Updates touch only list-derived columns; ``represented_side`` and the
    client fields are written only while the stored side is still NULL.
    Raises :class:`StoreFailure` when the write fails.
    """

    now = _utc_now()
    rows = [
        (
            case.docket_number,
            case.court_code,
            case.plaintiff_name,
            case.plaintiff_tax_id,
            case.defendant_name,
            case.defendant_tax_id,
            case.represented_side.value if case.represented_side else None,
            case.client_name,
            case.client_tax_id,
            case.case_class,
            case.subject,
            case.deadline_event,
            case.deadline_days,
            case.notice_sent_at,
            case.deadline_start_at,
            case.deadline_end_at,
            _dump_json(case.raw_data),
            now,
            now,
        )
        for case in cases
    ]
    if not rows:
        return 0

    list_updates = ",\n                ".join(f"{col} = excluded.{col}" for col in LIST_COLUMNS)
    sql = f"""
        INSERT INTO cases (
            docket_number, court_code, plaintiff_name, plaintiff_tax_id,
            defendant_name, defendant_tax_id, represented_side, client_name,
            client_tax_id, case_class, subject, deadline_event, deadline_days,
            notice_sent_at, deadline_start_at, deadline_end_at, raw_data,
            created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(docket_number) DO UPDATE SET
                {list_updates},
                client_name = CASE WHEN cases.represented_side IS NULL
                    THEN excluded.client_name ELSE cases.client_name END,
                client_tax_id = CASE WHEN cases.represented_side IS NULL
                    THEN excluded.client_tax_id ELSE cases.client_tax_id END,
                represented_side = COALESCE(cases.represented_side, excluded.represented_side),
                updated_at = excluded.updated_at
    """

    try:
        conn = get_connection()
        with conn:
            conn.executemany(sql, rows)
    except sqlite3.Error as exc:
        raise StoreFailure(f"Failed to upsert {len(rows)} cases: {exc}") from exc
    return len(rows)


def delete_cases(docket_numbers: Iterable[str]) -> int:
    """Delete cases (events and documents cascade). Best-effort."""

    targets = [(docket,) for docket in docket_numbers]
    if not targets:
        return 0
    try:
        conn = get_connection()
        with conn:
            conn.executemany("DELETE FROM cases WHERE docket_number = ?", targets)
    except sqlite3.Error as exc:
        log_line(f"[DB] Failed to delete {len(targets)} cases: {exc}")
        return 0
    return len(targets)


def get_cases_with_events() -> Set[str]:
    """Return docket numbers that already have a persisted event history."""

    try:
        conn = get_connection()
        rows = conn.execute("SELECT DISTINCT docket_number FROM events").fetchall()
    except sqlite3.Error as exc:
        log_line(f"[DB] Failed to load cases with events: {exc}")
        return set()
    return {row["docket_number"] for row in rows}


def get_cases_without_represented_side() -> List[CaseRecord]:
    """Return cases whose represented side is still unknown."""

    try:
        conn = get_connection()
        rows = conn.execute(
            "SELECT * FROM cases WHERE represented_side IS NULL ORDER BY docket_number"
        ).fetchall()
    except sqlite3.Error as exc:
        log_line(f"[DB] Failed to load cases without represented side: {exc}")
        return []
    return [row_to_case(row) for row in rows]


def update_represented_side(
    docket_number: str,
    side: RepresentedSide,
    client_name: str,
    client_tax_id: str | None,
) -> bool:
    """Set the represented side once. Returns ``False`` if it was already set."""

    try:
        conn = get_connection()
        with conn:
            cursor = conn.execute(
                """
                UPDATE cases
                SET represented_side = ?, client_name = ?, client_tax_id = ?, updated_at = ?
                WHERE docket_number = ? AND represented_side IS NULL
                """,
                (side.value, client_name, client_tax_id or None, _utc_now(), docket_number),
            )
    except sqlite3.Error as exc:
        raise StoreFailure(f"Failed to update represented side for {docket_number}: {exc}") from exc
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def replace_events(docket_number: str, events: Iterable[ProcessEvent]) -> int:
    """Replace the stored event history of ``docket_number`` in one transaction."""

    now = _utc_now()
    rows = [
        (
            docket_number,
            event.event_number,
            event.actor,
            event.occurred_at,
            event.description,
            json.dumps([a.to_dict() for a in event.attachments], ensure_ascii=False),
            1 if event.is_open_deadline else 0,
            event.referenced_event,
            _dump_json(event.raw_data),
            now,
        )
        for event in events
    ]
    try:
        conn = get_connection()
        with conn:
            conn.execute("DELETE FROM events WHERE docket_number = ?", (docket_number,))
            conn.executemany(
                """
                INSERT INTO events (
                    docket_number, event_number, actor, occurred_at, description,
                    attachments_json, is_open_deadline, referenced_event, raw_data, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
    except sqlite3.Error as exc:
        raise StoreFailure(f"Failed to replace events for {docket_number}: {exc}") from exc
    return len(rows)


def get_events_for_case(docket_number: str) -> List[ProcessEvent]:
    conn = get_connection()
    rows = conn.execute(
        """
        SELECT * FROM events
        WHERE docket_number = ?
        ORDER BY event_number IS NULL, event_number
        """,
        (docket_number,),
    ).fetchall()
    return [
        ProcessEvent(
            docket_number=row["docket_number"],
            event_number=row["event_number"],
            actor=row["actor"],
            occurred_at=row["occurred_at"],
            description=row["description"],
            attachments=[Attachment(**item) for item in _load_json(row["attachments_json"], [])],
            is_open_deadline=bool(row["is_open_deadline"]),
            referenced_event=row["referenced_event"],
            raw_data=_load_json(row["raw_data"], {}),
        )
        for row in rows
    ]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def document_exists(storage_path: str) -> bool:
    conn = get_connection()
    row = conn.execute(
        "SELECT 1 FROM documents WHERE storage_path = ? LIMIT 1", (storage_path,)
    ).fetchone()
    return row is not None


def save_document(document: StoredDocument) -> None:
    """Insert a stored document row keyed by its storage path."""

    try:
        conn = get_connection()
        with conn:
            conn.execute(
                """
                INSERT INTO documents (
                    docket_number, event_number, event_date, original_name,
                    content_kind, size_bytes, storage_path, signed_url, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(storage_path) DO UPDATE SET
                    content_kind = excluded.content_kind,
                    size_bytes = excluded.size_bytes,
                    signed_url = excluded.signed_url
                """,
                (
                    document.docket_number,
                    document.event_number,
                    document.event_date,
                    document.original_name,
                    document.content_kind,
                    document.size_bytes,
                    document.storage_path,
                    document.signed_url,
                    document.created_at or _utc_now(),
                ),
            )
    except sqlite3.Error as exc:
        raise StoreFailure(f"Failed to save document {document.storage_path}: {exc}") from exc


def get_documents_for_case(docket_number: str) -> List[StoredDocument]:
    conn = get_connection()
    rows = conn.execute(
        "SELECT * FROM documents WHERE docket_number = ? ORDER BY event_number, storage_path",
        (docket_number,),
    ).fetchall()
    return [
        StoredDocument(
            docket_number=row["docket_number"],
            event_number=row["event_number"],
            event_date=row["event_date"],
            original_name=row["original_name"],
            content_kind=row["content_kind"],
            size_bytes=row["size_bytes"],
            storage_path=row["storage_path"],
            signed_url=row["signed_url"],
            created_at=row["created_at"],
        )
        for row in rows
    ]


def get_document_paths_for_cases(docket_numbers: Iterable[str]) -> List[str]:
    """Return blob paths stored for the given cases (used before deletion)."""

    targets = list(docket_numbers)
    if not targets:
        return []
    placeholders = ", ".join("?" for _ in targets)
    try:
        conn = get_connection()
        rows = conn.execute(
            f"SELECT storage_path FROM documents WHERE docket_number IN ({placeholders})",
            targets,
        ).fetchall()
    except sqlite3.Error as exc:
        log_line(f"[DB] Failed to load document paths: {exc}")
        return []
    return [row["storage_path"] for row in rows]


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


def create_run() -> int:
    """Insert a row into ``runs`` with status ``running`` and return its id."""

    conn = get_connection()
    with conn:
        cursor = conn.execute(
            "INSERT INTO runs (started_at, status) VALUES (?, ?)",
            (_utc_now(), RunStatus.RUNNING.value),
        )
    return int(cursor.lastrowid)


def finalize_run(
    run_id: int,
    *,
    status: RunStatus,
    cases_found: int = 0,
    cases_new: int = 0,
    cases_removed: int = 0,
    error_message: Optional[str] = None,
    error_trace: Optional[str] = None,
    duration_seconds: Optional[float] = None,
) -> bool:
    """Finalise a running run. Returns ``False`` if it was already finalised."""

    conn = get_connection()
    row = conn.execute("SELECT started_at FROM runs WHERE id = ?", (run_id,)).fetchone()
    if row is None:
        return False

    finished_at = _utc_now()
    if duration_seconds is None:
        started = datetime.strptime(row["started_at"], _TIMESTAMP_FORMAT)
        duration_seconds = (datetime.strptime(finished_at, _TIMESTAMP_FORMAT) - started).total_seconds()

    with conn:
        cursor = conn.execute(
            """
            UPDATE runs
            SET status = ?, finished_at = ?, duration_seconds = ?, cases_found = ?,
                cases_new = ?, cases_removed = ?, error_message = ?, error_trace = ?
            WHERE id = ? AND status = ?
            """,
            (
                status.value,
                finished_at,
                round(duration_seconds, 3),
                cases_found,
                cases_new,
                cases_removed,
                error_message,
                error_trace,
                run_id,
                RunStatus.RUNNING.value,
            ),
        )
    return cursor.rowcount > 0


def _row_to_run(row: sqlite3.Row) -> RunRecord:
    return RunRecord(
        id=row["id"],
        started_at=row["started_at"],
        status=RunStatus(row["status"]),
        finished_at=row["finished_at"],
        duration_seconds=row["duration_seconds"],
        cases_found=row["cases_found"],
        cases_new=row["cases_new"],
        cases_removed=row["cases_removed"],
        error_message=row["error_message"],
        error_trace=row["error_trace"],
    )


def get_run(run_id: int) -> Optional[RunRecord]:
    conn = get_connection()
    row = conn.execute("SELECT * FROM runs WHERE id = ?", (run_id,)).fetchone()
    return _row_to_run(row) if row else None


def list_recent_runs(limit: int = 20) -> List[RunRecord]:
    """Return the most recent runs, newest first."""

    conn = get_connection()
    rows = conn.execute(
        "SELECT * FROM runs ORDER BY id DESC LIMIT ?", (max(1, int(limit)),)
    ).fetchall()
    return [_row_to_run(row) for row in rows]


def get_latest_run() -> Optional[RunRecord]:
    runs = list_recent_runs(limit=1)
    return runs[0] if runs else None


def count_rows(table: str) -> int:
    if table not in {"cases", "events", "documents", "runs"}:
        raise ValueError(f"Unknown table {table!r}")
    conn = get_connection()
    row = conn.execute(f"SELECT COUNT(*) AS total FROM {table}").fetchone()
    return int(row["total"])


__all__ = [
    "DB_PATH",
    "get_connection",
    "initialize_schema",
    "row_to_case",
    "get_all_cases",
    "get_case",
    "upsert_cases",
    "delete_cases",
    "get_cases_with_events",
    "get_cases_without_represented_side",
    "update_represented_side",
    "replace_events",
    "get_events_for_case",
    "document_exists",
    "save_document",
    "get_documents_for_case",
    "get_document_paths_for_cases",
    "create_run",
    "finalize_run",
    "get_run",
    "list_recent_runs",
    "get_latest_run",
    "count_rows",
]

from __future__ import annotations

from pathlib import Path

import pytest

from app.eproc import db
from app.eproc.errors import StoreFailure
from app.eproc.models import Attachment, ProcessEvent, RepresentedSide, RunStatus, StoredDocument
from tests.test_api import _case, _configure_temp_paths

DOCKET = "5001234-56.2024.8.21.0001"


def test_upsert_inserts_and_updates_list_fields(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()

    assert db.upsert_cases([_case(DOCKET, deadline_days=15)]) == 1
    db.upsert_cases([_case(DOCKET, deadline_days=5, subject="Revisão")])

    stored = db.get_case(DOCKET)
    assert stored is not None
    assert stored.deadline_days == 5
    assert stored.subject == "Revisão"
    assert len(db.get_all_cases()) == 1


def test_upsert_never_overwrites_represented_side(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()

    db.upsert_cases([_case(DOCKET)])
    assert db.update_represented_side(DOCKET, RepresentedSide.PLAINTIFF, "MARIA DA SILVA", "12345678900")

    db.upsert_cases(
        [
            _case(
                DOCKET,
                represented_side=RepresentedSide.DEFENDANT,
                client_name="INSS",
                client_tax_id=None,
            )
        ]
    )

    stored = db.get_case(DOCKET)
    assert stored.represented_side is RepresentedSide.PLAINTIFF
    assert stored.client_name == "MARIA DA SILVA"
    assert stored.client_tax_id == "12345678900"


def test_upsert_fills_side_when_still_unknown(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()

    db.upsert_cases([_case(DOCKET)])
    db.upsert_cases([_case(DOCKET, represented_side=RepresentedSide.DEFENDANT, client_name="INSS")])

    stored = db.get_case(DOCKET)
    assert stored.represented_side is RepresentedSide.DEFENDANT
    assert stored.client_name == "INSS"
    assert db.get_cases_without_represented_side() == []


def test_update_represented_side_only_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()
    db.upsert_cases([_case(DOCKET)])

    assert db.update_represented_side(DOCKET, RepresentedSide.DEFENDANT, "INSS", "") is True
    assert db.update_represented_side(DOCKET, RepresentedSide.PLAINTIFF, "MARIA", "1") is False
    assert db.get_case(DOCKET).represented_side is RepresentedSide.DEFENDANT
    assert db.get_case(DOCKET).client_tax_id is None


def test_replace_events_and_cascade_delete(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()
    db.upsert_cases([_case(DOCKET)])

    first = [ProcessEvent(docket_number=DOCKET, event_number=n, description=f"E{n}") for n in (1, 2, 3)]
    db.replace_events(DOCKET, first)
    db.replace_events(
        DOCKET,
        [
            ProcessEvent(
                docket_number=DOCKET,
                event_number=10,
                is_open_deadline=True,
                referenced_event=3,
                attachments=[Attachment(name="CERT1", kind="pdf", url="https://x/CERT1.pdf")],
            )
        ],
    )

    events = db.get_events_for_case(DOCKET)
    assert [event.event_number for event in events] == [10]
    assert events[0].is_open_deadline is True
    assert events[0].referenced_event == 3
    assert events[0].attachments == [Attachment(name="CERT1", kind="pdf", url="https://x/CERT1.pdf")]
    assert db.get_cases_with_events() == {DOCKET}

    db.save_document(
        StoredDocument(
            docket_number=DOCKET,
            event_number=10,
            event_date=None,
            original_name="CERT1",
            content_kind="application/pdf",
            size_bytes=3,
            storage_path="50012345620248210001/evento_10/CERT1.pdf",
        )
    )
    assert db.document_exists("50012345620248210001/evento_10/CERT1.pdf")
    assert db.get_document_paths_for_cases([DOCKET]) == ["50012345620248210001/evento_10/CERT1.pdf"]

    assert db.delete_cases([DOCKET]) == 1
    assert db.get_case(DOCKET) is None
    assert db.get_events_for_case(DOCKET) == []
    assert not db.document_exists("50012345620248210001/evento_10/CERT1.pdf")


def test_replace_events_for_unknown_case_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()

    with pytest.raises(StoreFailure):
        db.replace_events("9999999-99.9999.9.99.9999", [ProcessEvent(docket_number="x", event_number=1)])


def test_finalize_run_only_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()

    run_id = db.create_run()
    assert db.get_run(run_id).status is RunStatus.RUNNING

    assert db.finalize_run(run_id, status=RunStatus.SUCCESS, cases_found=3, duration_seconds=1.5) is True
    assert db.finalize_run(run_id, status=RunStatus.ERROR, error_message="late") is False

    run = db.get_run(run_id)
    assert run.status is RunStatus.SUCCESS
    assert run.cases_found == 3
    assert run.duration_seconds == 1.5
    assert run.finished_at is not None
    assert run.error_message is None

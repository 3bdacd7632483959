from __future__ import annotations

from pathlib import Path

import pytest

from app.eproc import case_detail, config, db
from app.eproc.documents import DocumentStats
from app.eproc.models import ProcessEvent, RepresentedSide
from tests.test_api import _case, _configure_temp_paths
from tests.test_browser import _FakePage
from tests.test_parser_events import BASE_URL, DOCKET as DETAIL_DOCKET, _events_html
from tests.test_parser_representatives import TABLE_HTML

ADVOCATE = "ANA PAULA SOUZA"
DETAIL_HTML = _events_html().replace("<body>", "<body>" + TABLE_HTML.split("<body>")[1].split("</body>")[0], 1)


def _events(*specs):
    return [
        ProcessEvent(docket_number="X", event_number=number, is_open_deadline=flagged, referenced_event=ref)
        for number, flagged, ref in specs
    ]


def test_correlation_base_uses_first_flagged_event() -> None:
    events = _events((60, True, 52), (55, True, 40), (52, False, None))
    assert case_detail.correlation_base(events) == 52
    assert case_detail.correlation_base(_events((1, False, None))) is None


def test_filter_events_for_persistence() -> None:
    events = _events((60, True, 52), (52, False, None), (51, False, None), (70, False, None))
    kept = case_detail.filter_events_for_persistence(events, 52)
    assert [event.event_number for event in kept] == [60, 52, 70]
    assert case_detail.filter_events_for_persistence(events, None) == events


def test_advocate_in_list_ignores_accents_and_case() -> None:
    assert case_detail.advocate_in_list(["Dra. Ána Paula Souza (OAB/RS 1)"], ADVOCATE)
    assert not case_detail.advocate_in_list(["JOÃO PEREIRA"], ADVOCATE)
    assert not case_detail.advocate_in_list(["ANA PAULA SOUZA"], "")


def test_resolve_represented_side_sets_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()
    case = _case("5000001-11.2024.8.21.0001")
    db.upsert_cases([case])

    side = case_detail.resolve_represented_side(
        case,
        {RepresentedSide.PLAINTIFF: ["ANA PAULA SOUZA"], RepresentedSide.DEFENDANT: ["PROCURADORIA FEDERAL"]},
        ADVOCATE,
    )

    assert side is RepresentedSide.PLAINTIFF
    assert case.client_name == "MARIA DA SILVA"
    stored = db.get_case(case.docket_number)
    assert stored.represented_side is RepresentedSide.PLAINTIFF
    assert stored.client_tax_id == "12345678900"


def test_resolve_represented_side_leaves_known_side(monkeypatch: pytest.MonkeyPatch) -> None:
    case = _case("5000001-11.2024.8.21.0001", represented_side=RepresentedSide.DEFENDANT)

    def _fail(*args, **kwargs):
        raise AssertionError("known side must not be written again")

    monkeypatch.setattr(case_detail.db, "update_represented_side", _fail)

    side = case_detail.resolve_represented_side(
        case, {RepresentedSide.PLAINTIFF: [ADVOCATE]}, ADVOCATE
    )
    assert side is None
    assert case.represented_side is RepresentedSide.DEFENDANT


def test_resolve_represented_side_without_match(monkeypatch: pytest.MonkeyPatch) -> None:
    case = _case("5000001-11.2024.8.21.0001")
    monkeypatch.setattr(case_detail.db, "update_represented_side", lambda *a, **k: pytest.fail("no write expected"))
    assert case_detail.resolve_represented_side(case, {}, ADVOCATE) is None


def test_extract_case_details_isolates_failures(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    cases = [_case(f"500000{i}-11.2024.8.21.0001") for i in range(1, 6)]
    visited: list[str] = []

    def fake_open(list_page, docket):
        visited.append(docket)
        if docket == cases[1].docket_number:
            raise RuntimeError("detail page broke")
        raise case_detail.ElementNotFound("no link")

    monkeypatch.setattr(case_detail, "open_case_detail", fake_open)

    result = case_detail.extract_case_details(
        object(),
        cases,
        ADVOCATE,
        limit=3,
        skip={cases[0].docket_number},
        store=None,
    )

    assert visited == [case.docket_number for case in cases[1:4]]
    assert [item.ok for item in result.processed] == [False, False, False]
    assert result.all_processed is False
    assert result.events_saved == 0


def test_extract_case_details_drains_when_under_limit(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    cases = [_case("5000001-11.2024.8.21.0001"), _case("5000002-11.2024.8.21.0001")]
    seen: list[str] = []

    def fake_extract(list_page, case, advocate_name, *, store, fetcher):
        seen.append(case.docket_number)
        return case_detail.CaseDetailResult(case.docket_number, side_updated=True)

    monkeypatch.setattr(case_detail, "extract_case_detail", fake_extract)

    result = case_detail.extract_case_details(object(), cases, ADVOCATE, limit=10, store=None)

    assert seen == [case.docket_number for case in cases]
    assert result.all_processed is True
    assert result.sides_updated == 2

    empty = case_detail.extract_case_details(
        object(), cases, ADVOCATE, limit=10, skip={case.docket_number for case in cases}, store=None
    )
    assert empty.processed == []
    assert empty.all_processed is True


def test_extract_case_detail_persists_from_correlation_base(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    monkeypatch.setattr(config, "DEBUG_MODE", False)
    db.initialize_schema()
    case = _case(DETAIL_DOCKET)
    db.upsert_cases([case])

    list_page = _FakePage(url="https://eproc/lista")
    detail_page = _FakePage(list_page.context, url=BASE_URL, html=DETAIL_HTML)
    opened: list[str] = []

    def fake_open(page, docket):
        opened.append(docket)
        return detail_page

    handed_over: list[list[int]] = []

    def fake_documents(context, docket, events, *, store, fetcher):
        handed_over.append([event.event_number for event in events])
        return DocumentStats(downloaded=2)

    monkeypatch.setattr(case_detail, "open_case_detail", fake_open)
    monkeypatch.setattr(case_detail, "process_case_documents", fake_documents)

    result = case_detail.extract_case_detail(list_page, case, "João Pereira", store=None)

    assert result.ok
    assert opened == [DETAIL_DOCKET]
    assert sorted(event.event_number for event in result.events) == [40, 41, 42, 43, 44, 45, 50]
    assert sorted(event.event_number for event in db.get_events_for_case(DETAIL_DOCKET)) == [
        40, 41, 42, 43, 44, 45, 50
    ]
    assert handed_over == [[50, 45, 44, 43, 42, 41, 40, 39, 38]]
    assert result.documents.downloaded == 2
    assert result.side_updated is True
    assert db.get_case(DETAIL_DOCKET).represented_side is RepresentedSide.PLAINTIFF
    assert detail_page.closed and not list_page.closed

    def no_side_write(*args, **kwargs):
        raise AssertionError("side already known")

    monkeypatch.setattr(case_detail.db, "update_represented_side", no_side_write)
    again = case_detail.extract_case_detail(list_page, db.get_case(DETAIL_DOCKET), "João Pereira", store=None)

    assert again.ok
    assert again.side_updated is False

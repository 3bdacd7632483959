from __future__ import annotations

import pytest

from app.eproc import config, deadline_list
from app.eproc.errors import ElementNotFound
from tests.test_browser import LIST_URL, _FakePage
from tests.test_parser_deadline_list import ADVOCATE, LIST_HTML


@pytest.fixture(autouse=True)
def _quiet(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "DEBUG_MODE", False)


def test_extract_deadline_list_parses_rendered_table() -> None:
    page = _FakePage(url=LIST_URL, html=LIST_HTML, body_text="Processos com prazo em aberto (3 registros)")

    cases = deadline_list.extract_deadline_list(page, ADVOCATE)

    assert [case.docket_number for case in cases] == [
        "5001234-56.2024.8.21.0001",
        "5009876-12.2023.8.21.0010",
    ]
    assert page.evaluated == [None]


def test_extract_deadline_list_empty_marker_returns_no_cases() -> None:
    page = _FakePage(url=LIST_URL, body_text="Nenhum registro encontrado.")
    page.selector_present = False

    assert deadline_list.extract_deadline_list(page, ADVOCATE) == []
    assert page.evaluated == []


def test_extract_deadline_list_missing_table_raises() -> None:
    page = _FakePage(url=LIST_URL, body_text="Carregando...")
    page.selector_present = False

    with pytest.raises(ElementNotFound):
        deadline_list.extract_deadline_list(page, ADVOCATE)

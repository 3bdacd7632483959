from __future__ import annotations

from app.eproc import parser
from app.eproc.case_detail import correlation_base, filter_events_for_persistence
from app.eproc.documents import select_document_events

DOCKET = "5001234-56.2024.8.21.0001"
BASE_URL = "https://eproc1g.tjrs.jus.br/eproc/controlador.php?acao=processo_selecionar&num_processo=50012345620248210001"


def _event_row(number: int, description: str, *, bg: str = "", docs: str = "") -> str:
    bg_attr = f' data-bg-color="{bg}"' if bg else ""
    return (
        "<tr>"
        f"<td>{number}</td>"
        f"<td>{number % 28 + 1:02d}/03/2024 10:00:00</td>"
        f"<td{bg_attr}>{description}</td>"
        "<td>SERVIDOR</td>"
        f"<td>{docs}</td>"
        "</tr>"
    )


def _doc_link(number: int) -> str:
    return f'<a href="controlador.php?acao=acessar_documento&amp;doc={number}">PET{number}</a>'


def _events_html() -> str:
    rows = [
        _event_row(
            50,
            "Intimação Eletrônica - Expedida/Certificada - Refer. ao Evento 40",
            bg="rgb(252, 252, 189)",
        )
    ]
    rows += [_event_row(n, f"Juntada de petição {n}", docs=_doc_link(n)) for n in range(45, 37, -1)]
    return (
        "<html><body>"
        '<table class="infraTable" id="resumo"><tr><th>Classe</th><th>Assunto</th></tr>'
        "<tr><td>Procedimento Comum</td><td>Benefício</td></tr></table>"
        '<table id="tblEventos"><caption>Eventos</caption>'
        "<tr><th>Evento</th><th>Data/Hora</th><th>Descrição</th><th>Usuário</th><th>Documentos</th></tr>"
        + "".join(rows)
        + "</table></body></html>"
    )


def test_parse_events_reads_every_row() -> None:
    events = parser.parse_events(_events_html(), DOCKET, base_url=BASE_URL)

    assert [event.event_number for event in events] == [50, 45, 44, 43, 42, 41, 40, 39, 38]
    flagged = events[0]
    assert flagged.is_open_deadline is True
    assert flagged.referenced_event == 40
    assert flagged.actor == "SERVIDOR"
    assert flagged.attachments == []
    assert all(not event.is_open_deadline for event in events[1:])

    pet = events[1]
    assert pet.occurred_at == "2024-03-18T10:00:00"
    assert len(pet.attachments) == 1
    assert pet.attachments[0].name == "PET45"
    assert pet.attachments[0].kind == "outro"
    assert pet.attachments[0].url == (
        "https://eproc1g.tjrs.jus.br/eproc/controlador.php?acao=acessar_documento&doc=45"
    )


def test_end_to_end_correlation_keeps_events_from_referenced_base() -> None:
    events = parser.parse_events(_events_html(), DOCKET, base_url=BASE_URL)

    base = correlation_base(events)
    assert base == 40
    persisted = filter_events_for_persistence(events, base)
    assert sorted(event.event_number for event in persisted) == [40, 41, 42, 43, 44, 45, 50]

    selected = select_document_events(events)
    assert [event.event_number for event in selected] == [40, 41, 42, 43, 44, 45]


def test_parse_events_flag_from_inline_style_and_onclick_links() -> None:
    html = (
        "<table><tr><th>Evento</th><th>Data</th><th>Descrição</th><th>Usuário</th></tr>"
        "<tr><td>7 </td><td>01/02/2024 09:30</td>"
        '<td style="background-color: #FCFCBD">Refer. ao Evento 3</td><td>JUIZ</td>'
        "<td><a href=\"#\" onclick=\"abrirDocumento('controlador.php?acao=acessar_documento&amp;doc=9')\">SENT1</a>"
        '<a href="https://example.com/ajuda">Ajuda</a>'
        '<a href="https://example.com/files/DESPADEC1.pdf">DESPADEC1</a>'
        '<a href="https://example.com/x">x</a></td></tr>'
        "</table>"
    )

    (event,) = parser.parse_events(html, DOCKET, base_url="https://eproc1g.tjrs.jus.br/eproc/")

    assert event.event_number == 7
    assert event.occurred_at == "2024-02-01T09:30:00"
    assert event.is_open_deadline is True
    assert event.referenced_event == 3
    assert [(a.name, a.kind) for a in event.attachments] == [("SENT1", "outro"), ("DESPADEC1", "pdf")]
    assert event.attachments[0].url == (
        "https://eproc1g.tjrs.jus.br/eproc/controlador.php?acao=acessar_documento&doc=9"
    )


def test_parse_events_keeps_rows_without_number() -> None:
    html = (
        "<table><caption>Lista de Eventos</caption>"
        "<tr><td></td><td></td><td>Observação sem número</td></tr>"
        "<tr><td></td><td></td><td></td></tr>"
        "<tr><td>1</td><td>02/01/2024 08:00:00</td></tr>"
        "</table>"
    )

    events = parser.parse_events(html, DOCKET)

    assert len(events) == 1
    assert events[0].event_number is None
    assert events[0].description == "Observação sem número"
    assert events[0].actor is None


def test_parse_events_without_events_table() -> None:
    assert parser.parse_events("<table><tr><th>Nome</th></tr></table>", DOCKET) == []


def test_parse_events_inside_layout_table() -> None:
    html = (
        '<table id="layout"><tr><td>'
        '<table id="tblEventos">'
        "<tr><th>Evento</th><th>Data/Hora</th><th>Descrição</th><th>Usuário</th></tr>"
        + _event_row(12, "Intimação - Refer. ao Evento 11", bg="rgb(252, 252, 189)")
        + _event_row(11, "Juntada", docs=_doc_link(11))
        + "</table></td></tr></table>"
    )

    events = parser.parse_events(html, DOCKET, base_url=BASE_URL)

    assert [event.event_number for event in events] == [12, 11]
    assert events[0].is_open_deadline is True
    assert events[0].referenced_event == 11
    assert [a.name for a in events[1].attachments] == ["PET11"]

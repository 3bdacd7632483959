"""HTML parsing for eproc deadline lists, event histories and party tables.

Everything here is a pure function over a rendered HTML snapshot: the browser
layer captures ``page.content()`` (after stamping computed background colours
with :data:`STAMP_BACKGROUND_SCRIPT`) and hands the markup over. Parsing is
best-effort per field: a missing value becomes ``None``/empty and is logged,
it never raises.
"""
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .date_utils import to_iso
from .models import Attachment, CaseRecord, ProcessEvent, RepresentedSide
from .utils import digits_only, log_line, normalize_text

# Background colour eproc uses to highlight an open deadline (light yellow).
HIGHLIGHT_COLOR = "rgb(252, 252, 189)"
BG_COLOR_ATTR = "data-bg-color"

# Run in the page before snapshotting so computed colours survive into HTML.
STAMP_BACKGROUND_SCRIPT = """
() => {
    let stamped = 0;
    for (const td of document.querySelectorAll('td')) {
        td.setAttribute('%s', window.getComputedStyle(td).backgroundColor || '');
        stamped += 1;
    }
    return stamped;
}
""" % BG_COLOR_ATTR

DOCKET_RE = re.compile(r"(\d{7}-\d{2}\.\d{4}\.\d\.\d{2}\.\d{4})")
COURT_RE = re.compile(r"Ju[íi]zo:\s*</b>\s*([A-Z0-9]+)", re.IGNORECASE)
DEADLINE_DAYS_RE = re.compile(r"(\d+)\s*dias?", re.IGNORECASE)
RECORD_COUNT_RE = re.compile(r"\((\d+)\s*registros?\)", re.IGNORECASE)
EVENT_NUMBER_RE = re.compile(r"^(\d+)")
EVENT_REFERENCE_RE = re.compile(r"Refer\.\s*ao\s*Evento\s*(\d+)", re.IGNORECASE)
OAB_RE = re.compile(r"\b([A-Z]{2})\s*(\d{5,6})\b")

_BR = r"(?:\s|<br\s*/?>)*"
_PARTY_TEMPLATE = (
    r"<b>\s*({roles})\s*</b>" + _BR + r"(?:<[^>]+>)?([^<(]+)(?:</[^>]+>)?" + _BR + r"(?:\(([\d.\-/]+)\))?"
)
PLAINTIFF_ROLES = ("Autora?", "Requerente", "Exequente", "Suscitante", "Embargante")
DEFENDANT_ROLES = ("R[ée]u?", "Requerid[oa]", "Executad[oa]", "Suscitad[oa]", "Embargad[oa]")
PLAINTIFF_PARTY_RE = re.compile(_PARTY_TEMPLATE.format(roles="|".join(PLAINTIFF_ROLES)), re.IGNORECASE)
DEFENDANT_PARTY_RE = re.compile(_PARTY_TEMPLATE.format(roles="|".join(DEFENDANT_ROLES)), re.IGNORECASE)

# Keyword sets used to classify "parties and representatives" columns.
PLAINTIFF_TERMS = ("AUTOR", "REQUERENTE", "EXEQUENTE", "EMBARGANTE", "SUSCITANTE", "IMPETRANTE", "RECLAMANTE")
DEFENDANT_TERMS = ("REU", "REQUERIDO", "EXECUTADO", "EMBARGADO", "SUSCITADO", "IMPETRADO", "RECLAMADO")

DOC_URL_RE = re.compile(r"documento|anexo|download|acao=acessar", re.IGNORECASE)
DOC_NAME_RE = re.compile(
    r"^(PET|SENT|DEC|ATO|DESP|CERT|MAND|OFIC|CONT|PROC|EMBDEC|APELA|EMAIL|ATOORD|DESPADEC|EXTATO)\d*",
    re.IGNORECASE,
)
DOC_ONCLICK_RE = re.compile(r"abrirDocumento|visualizar", re.IGNORECASE)
_ONCLICK_URL_RE = re.compile(r"['\"]([^'\"]*(?:controlador|acao=|\.pdf)[^'\"]*)['\"]", re.IGNORECASE)

SOCIETY_SUFFIX = "SOCIEDADE INDIVIDUAL DE ADVOCACIA"


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html5lib")


def _cell_text(cell: Optional[Tag]) -> str:
    if cell is None:
        return ""
    return re.sub(r"\s+", " ", cell.get_text(" ", strip=True)).strip()


def _direct_cells(row: Tag) -> List[Tag]:
    return row.find_all("td", recursive=False)


# ---------------------------------------------------------------------------
# Deadline list
# ---------------------------------------------------------------------------


def extract_docket_number(text: str) -> Optional[str]:
    """Return the first docket number found in ``text`` or ``None``."""

    match = DOCKET_RE.search(text or "")
    return match.group(1) if match else None


def parse_deadline_days(text: str) -> Optional[int]:
    """Extract the deadline length from strings such as ``"15 dias"``."""

    match = DEADLINE_DAYS_RE.search(text or "")
    return int(match.group(1)) if match else None


def parse_record_count(text: str) -> Optional[int]:
    """Return the total shown in ``"(65 registros)"`` style hints."""

    match = RECORD_COUNT_RE.search(text or "")
    return int(match.group(1)) if match else None


def _extract_party(pattern: re.Pattern[str], cell_html: str) -> Tuple[str, str]:
    match = pattern.search(cell_html)
    if not match:
        return "", ""
    name = re.sub(r"\s+", " ", match.group(2)).strip()
    tax_id = digits_only(match.group(3) or "")
    return name, tax_id


def name_matches_advocate(party_name: str, advocate_name: str) -> bool:
    """Return ``True`` when ``party_name`` refers to the advocate or their firm."""

    party = normalize_text(party_name)
    advocate = normalize_text(advocate_name)
    if not party or not advocate:
        return False

    if advocate in party:
        return True
    if f"{advocate} {SOCIETY_SUFFIX}" in party:
        return True
    first_name = advocate.split(" ")[0]
    return "ADVOCACIA" in party and first_name in party


def infer_represented_side(
    plaintiff_name: str, defendant_name: str, advocate_name: str
) -> Optional[RepresentedSide]:
    """Infer which side the advocate is on when they are a party themselves."""

    if name_matches_advocate(plaintiff_name, advocate_name):
        return RepresentedSide.PLAINTIFF
    if name_matches_advocate(defendant_name, advocate_name):
        return RepresentedSide.DEFENDANT
    return None


def parse_deadline_row(row: Tag, advocate_name: str) -> Optional[CaseRecord]:
    """Parse one ``<tr>`` of the deadline table; ``None`` for non-case rows."""

    cells = _direct_cells(row)
    if len(cells) < 7:
        return None

    case_html = cells[1].decode_contents()
    docket_number = extract_docket_number(case_html)
    if not docket_number:
        return None

    court_match = COURT_RE.search(case_html)
    court_code = court_match.group(1) if court_match else ""
    if not court_code:
        log_line(f"[PARSER] No court code for {docket_number}")

    plaintiff_name, plaintiff_tax_id = _extract_party(PLAINTIFF_PARTY_RE, case_html)
    defendant_name, defendant_tax_id = _extract_party(DEFENDANT_PARTY_RE, case_html)
    if not plaintiff_name or not defendant_name:
        log_line(
            f"[PARSER] Incomplete parties for {docket_number}: "
            f"plaintiff={plaintiff_name!r} defendant={defendant_name!r}"
        )

    side = infer_represented_side(plaintiff_name, defendant_name, advocate_name)
    client_name: Optional[str] = None
    client_tax_id: Optional[str] = None
    if side is RepresentedSide.PLAINTIFF:
        client_name, client_tax_id = plaintiff_name, plaintiff_tax_id
    elif side is RepresentedSide.DEFENDANT:
        client_name, client_tax_id = defendant_name, defendant_tax_id

    texts = [_cell_text(cell) for cell in cells]
    texts += [""] * (8 - len(texts))
    deadline_event = texts[4]

    return CaseRecord(
        docket_number=docket_number,
        court_code=court_code,
        plaintiff_name=plaintiff_name,
        plaintiff_tax_id=plaintiff_tax_id,
        defendant_name=defendant_name,
        defendant_tax_id=defendant_tax_id,
        represented_side=side,
        client_name=client_name,
        client_tax_id=client_tax_id,
        case_class=texts[2],
        subject=texts[3],
        deadline_event=deadline_event,
        deadline_days=parse_deadline_days(deadline_event),
        notice_sent_at=to_iso(texts[5]),
        deadline_start_at=to_iso(texts[6]),
        deadline_end_at=to_iso(texts[7]),
        raw_data={"raw_html": case_html},
    )


def parse_deadline_list(html: str, advocate_name: str, *, table_selector: str = "table.infraTable") -> List[CaseRecord]:
    """Parse the open-deadline table into :class:`CaseRecord` objects.

    Rows without a docket number (headers, totals, malformed rows) are
    dropped.
    """

    soup = _soup(html)
    table = soup.select_one(table_selector)
    if table is None:
        log_line(f"[PARSER] Deadline table {table_selector!r} not found")
        return []

    cases: List[CaseRecord] = []
    dropped = 0
    for row in table.select("tr"):
        if row.find_parent("table") is not table:
            continue
        record = parse_deadline_row(row, advocate_name)
        if record is None:
            dropped += 1
            continue
        cases.append(record)

    with_side = sum(1 for case in cases if case.represented_side is not None)
    log_line(
        f"[PARSER] Deadline list: {len(cases)} cases, {dropped} rows dropped, "
        f"represented side known for {with_side}, pending {len(cases) - with_side}"
    )
    return cases


# ---------------------------------------------------------------------------
# Event history
# ---------------------------------------------------------------------------


def _normalize_color(value: str | None) -> str:
    raw = (value or "").strip().lower()
    hex_match = re.fullmatch(r"#([0-9a-f]{6})", raw)
    if hex_match:
        digits = hex_match.group(1)
        r, g, b = (int(digits[i : i + 2], 16) for i in (0, 2, 4))
        return f"rgb({r},{g},{b})"
    return re.sub(r"\s+", "", raw)


def _cell_background(cell: Tag) -> str:
    stamped = cell.get(BG_COLOR_ATTR)
    if stamped:
        return str(stamped)
    style = str(cell.get("style") or "")
    match = re.search(r"background(?:-color)?\s*:\s*([^;]+)", style, re.IGNORECASE)
    if match:
        return match.group(1).strip()
    return str(cell.get("bgcolor") or "")


def is_highlighted(cell: Optional[Tag]) -> bool:
    """Return ``True`` when ``cell`` carries the open-deadline highlight."""

    if cell is None:
        return False
    return _normalize_color(_cell_background(cell)) == _normalize_color(HIGHLIGHT_COLOR)


def extract_referenced_event(text: str | None) -> Optional[int]:
    match = EVENT_REFERENCE_RE.search(text or "")
    return int(match.group(1)) if match else None


def find_events_table(soup: BeautifulSoup) -> Optional[Tag]:
    """Locate the event table by caption or header text."""

    for table in soup.find_all("table"):
        caption = table.find("caption", recursive=False)
        if caption is not None and "eventos" in caption.get_text(" ", strip=True).lower():
            return table
        # Only the table's own headers count; layout tables wrap the real one.
        own_headers = [th for th in table.find_all("th") if th.find_parent("table") is table]
        header_text = " ".join(th.get_text(" ", strip=True) for th in own_headers)
        if "evento" in header_text.lower():
            return table
    return None


def is_document_link(href: str, name: str, onclick: str) -> bool:
    return bool(
        DOC_URL_RE.search(href or "")
        or DOC_NAME_RE.search(name or "")
        or DOC_ONCLICK_RE.search(onclick or "")
    )


def extract_attachments(row: Tag, *, base_url: str | None = None) -> List[Attachment]:
    """Collect document links from anywhere in ``row``."""

    attachments: List[Attachment] = []
    seen: set[str] = set()
    for anchor in row.find_all("a"):
        href = str(anchor.get("href") or "").strip()
        name = anchor.get_text(" ", strip=True)
        onclick = str(anchor.get("onclick") or "")

        if not href or href == "#" or href.lower().startswith("javascript:"):
            onclick_url = _ONCLICK_URL_RE.search(onclick)
            href = onclick_url.group(1) if onclick_url else ""
        if not href or len(name) < 2:
            continue
        if not is_document_link(href, name, onclick):
            continue

        url = urljoin(base_url, href) if base_url else href
        if url in seen:
            continue
        seen.add(url)
        kind = "pdf" if ".pdf" in url.lower() else "outro"
        attachments.append(Attachment(name=name, kind=kind, url=url))
    return attachments


def parse_events(html: str, docket_number: str, *, base_url: str | None = None) -> List[ProcessEvent]:
    """Parse every row of the case's event table.

    Layout is ``Evento | Data/Hora | Descrição | Usuário | Documentos`` but
    attachments are collected from the whole row.
    """

    soup = _soup(html)
    table = find_events_table(soup)
    if table is None:
        log_line(f"[PARSER] Event table not found for {docket_number}")
        return []

    events: List[ProcessEvent] = []
    for row in table.find_all("tr"):
        if row.find_parent("table") is not table:
            continue
        cells = _direct_cells(row)
        if len(cells) < 3:
            continue

        number_match = EVENT_NUMBER_RE.match(_cell_text(cells[0]))
        event_number = int(number_match.group(1)) if number_match else None
        date_text = _cell_text(cells[1])
        description = _cell_text(cells[2])
        actor = _cell_text(cells[3]) if len(cells) > 3 else ""

        if event_number is None and not date_text and not description:
            continue
        if event_number is None:
            log_line(f"[PARSER] Event without number in {docket_number}: {description[:60]!r}")

        events.append(
            ProcessEvent(
                docket_number=docket_number,
                event_number=event_number,
                actor=actor or None,
                occurred_at=to_iso(date_text),
                description=description or None,
                attachments=extract_attachments(row, base_url=base_url),
                is_open_deadline=is_highlighted(cells[2]),
                referenced_event=extract_referenced_event(description),
                raw_data={"raw_html": row.decode_contents()},
            )
        )

    for event in events:
        if event.is_open_deadline:
            log_line(
                f"[PARSER] Open deadline: event {event.event_number} refers to event {event.referenced_event}"
            )
    return events


# ---------------------------------------------------------------------------
# Parties and representatives
# ---------------------------------------------------------------------------


def classify_side(text: str) -> Optional[RepresentedSide]:
    upper = normalize_text(text)
    if not upper:
        return None
    if any(term in upper for term in PLAINTIFF_TERMS):
        return RepresentedSide.PLAINTIFF
    if any(term in upper for term in DEFENDANT_TERMS):
        return RepresentedSide.DEFENDANT
    return None


def extract_representative_name(line: str) -> Optional[str]:
    """Return the lawyer name preceding an OAB registration on ``line``.

    ``") - Pessoa Jurídica  FULANO DE TAL  RS053253"`` yields
    ``"FULANO DE TAL"``: segments separated by two or more spaces collapse to
    the last one.
    """

    match = OAB_RE.search(line or "")
    if not match:
        return None
    raw_name = line[: match.start()].strip()
    if len(raw_name) <= 3:
        return None
    name = re.split(r"\s{2,}", raw_name)[-1].strip()
    return name if len(name) > 3 else None


def _representatives_from_tables(soup: BeautifulSoup) -> Dict[RepresentedSide, List[str]]:
    found: Dict[RepresentedSide, List[str]] = {RepresentedSide.PLAINTIFF: [], RepresentedSide.DEFENDANT: []}

    for table in soup.find_all("table"):
        headers = [th for th in table.find_all("th") if th.find_parent("table") is table]
        if len(headers) < 2:
            continue
        header_sides = [classify_side(th.get_text(" ", strip=True)) for th in headers]
        if not any(header_sides):
            continue

        for row in table.find_all("tr"):
            if row.find_parent("table") is not table:
                continue
            for index, cell in enumerate(_direct_cells(row)):
                if index >= len(header_sides) or header_sides[index] is None:
                    continue
                side = header_sides[index]
                for line in cell.get_text("\n").split("\n"):
                    name = extract_representative_name(line.strip())
                    if name:
                        found[side].append(name)

        if found[RepresentedSide.PLAINTIFF] or found[RepresentedSide.DEFENDANT]:
            break
    return found


def _representatives_from_text(lines: Iterable[str]) -> Dict[RepresentedSide, List[str]]:
    found: Dict[RepresentedSide, List[str]] = {RepresentedSide.PLAINTIFF: [], RepresentedSide.DEFENDANT: []}
    current: Optional[RepresentedSide] = None

    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        side = classify_side(line)
        if side is not None:
            current = side
            continue
        if current is None:
            continue
        name = extract_representative_name(line)
        if name:
            found[current].append(name)
    return found


def parse_representatives(html: str) -> Dict[RepresentedSide, List[str]]:
    """Return representative names per side from a case detail page."""

    soup = _soup(html)
    found = _representatives_from_tables(soup)
    if not found[RepresentedSide.PLAINTIFF] and not found[RepresentedSide.DEFENDANT]:
        body = soup.body or soup
        found = _representatives_from_text(body.get_text("\n").split("\n"))

    if found[RepresentedSide.PLAINTIFF] or found[RepresentedSide.DEFENDANT]:
        log_line(
            f"[PARSER] Representatives: plaintiff={found[RepresentedSide.PLAINTIFF]} "
            f"defendant={found[RepresentedSide.DEFENDANT]}"
        )
    else:
        log_line("[PARSER] No representatives found on detail page")
    return found


__all__ = [
    "HIGHLIGHT_COLOR",
    "STAMP_BACKGROUND_SCRIPT",
    "DOCKET_RE",
    "extract_docket_number",
    "parse_deadline_days",
    "parse_record_count",
    "name_matches_advocate",
    "infer_represented_side",
    "parse_deadline_row",
    "parse_deadline_list",
    "is_highlighted",
    "extract_referenced_event",
    "find_events_table",
    "extract_attachments",
    "parse_events",
    "classify_side",
    "extract_representative_name",
    "parse_representatives",
]

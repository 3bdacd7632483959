"""Typed records produced by the parser and persisted by the store."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RepresentedSide(str, Enum):
    PLAINTIFF = "plaintiff"
    DEFENDANT = "defendant"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


@dataclass
class Attachment:
    name: str
    kind: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class CaseRecord:
    docket_number: str
    court_code: str = ""
    plaintiff_name: str = ""
    plaintiff_tax_id: str = ""
    defendant_name: str = ""
    defendant_tax_id: str = ""
    represented_side: Optional[RepresentedSide] = None
    client_name: Optional[str] = None
    client_tax_id: Optional[str] = None
    case_class: str = ""
    subject: str = ""
    deadline_event: str = ""
    deadline_days: Optional[int] = None
    notice_sent_at: Optional[str] = None
    deadline_start_at: Optional[str] = None
    deadline_end_at: Optional[str] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)

    def party_for(self, side: RepresentedSide) -> tuple[str, str]:
        """Return ``(name, tax_id)`` of the party on ``side``."""

        if side is RepresentedSide.PLAINTIFF:
            return self.plaintiff_name, self.plaintiff_tax_id
        return self.defendant_name, self.defendant_tax_id


@dataclass
class ProcessEvent:
    docket_number: str
    event_number: Optional[int]
    actor: Optional[str] = None
    occurred_at: Optional[str] = None
    description: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)
    is_open_deadline: bool = False
    referenced_event: Optional[int] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)


@dataclass
class StoredDocument:
    docket_number: str
    event_number: int
    event_date: Optional[str]
    original_name: str
    content_kind: Optional[str]
    size_bytes: Optional[int]
    storage_path: str
    signed_url: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class RunRecord:
    id: int
    started_at: str
    status: RunStatus = RunStatus.RUNNING
    finished_at: Optional[str] = None
    duration_seconds: Optional[float] = None
    cases_found: int = 0
    cases_new: int = 0
    cases_removed: int = 0
    error_message: Optional[str] = None
    error_trace: Optional[str] = None


__all__ = [
    "Attachment",
    "CaseRecord",
    "ProcessEvent",
    "RepresentedSide",
    "RunRecord",
    "RunStatus",
    "StoredDocument",
]

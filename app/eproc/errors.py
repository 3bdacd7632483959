"""Error taxonomy for the deadline monitor.

Codes are persisted with failed runs and included in structured log lines, so
they should stay stable for reporting.
"""
from __future__ import annotations


class ErrorCode:
    AUTH_FAILED = "auth_failed"
    AUTH_FIELD_NOT_FOUND = "auth_field_not_found"
    AUTH_STILL_ON_LOGIN = "auth_still_on_login"
    NAV_TIMEOUT = "navigation_timeout"
    ELEMENT_NOT_FOUND = "element_not_found"
    LIST_PAGE_NOT_FOUND = "list_page_not_found"
    CASE_FAILED = "case_failed"
    DOWNLOAD_FAILED = "download_failed"
    DOWNLOAD_EMPTY = "download_empty"
    STORE_FAILED = "store_failed"
    INTERNAL = "internal_error"


class MonitorError(Exception):
    """Base class for failures raised by the monitor."""

    error_code: str = ErrorCode.INTERNAL

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code


class AuthenticationFailure(MonitorError):
    error_code = ErrorCode.AUTH_FAILED


class FieldNotFound(AuthenticationFailure):
    """No candidate selector matched a required login field."""

    error_code = ErrorCode.AUTH_FIELD_NOT_FOUND

    def __init__(self, field: str, candidates: tuple[str, ...] | list[str]) -> None:
        super().__init__(f"{field} field not found among: {', '.join(candidates)}")
        self.field = field
        self.candidates = tuple(candidates)


class NavigationTimeout(MonitorError):
    error_code = ErrorCode.NAV_TIMEOUT


class ElementNotFound(MonitorError):
    error_code = ErrorCode.ELEMENT_NOT_FOUND


class ListPageNotFound(ElementNotFound):
    error_code = ErrorCode.LIST_PAGE_NOT_FOUND


class StoreFailure(MonitorError):
    error_code = ErrorCode.STORE_FAILED


__all__ = [
    "ErrorCode",
    "MonitorError",
    "AuthenticationFailure",
    "FieldNotFound",
    "NavigationTimeout",
    "ElementNotFound",
    "ListPageNotFound",
    "StoreFailure",
]

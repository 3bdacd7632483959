"""Login to eproc through its Keycloak identity provider, TOTP included."""
from __future__ import annotations

import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

import pyotp
from playwright.sync_api import Error as PWError, Page

from . import config
from .browser import first_present, pause, safe_goto, wait_for_settle
from .debug_html import save_debug_snapshot
from .errors import AuthenticationFailure, ErrorCode, FieldNotFound, NavigationTimeout
from .logging_utils import _scraper_event
from .retry_policy import with_retry
from .selectors import LOGIN_SELECTORS
from .utils import log_line


class LoginState(str, Enum):
    NOT_STARTED = "not_started"
    CREDENTIALS_ENTERED = "credentials_entered"
    SECOND_FACTOR = "second_factor"
    SUBMITTED = "submitted"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass
class LoginOutcome:
    state: LoginState
    reason: Optional[str] = None
    url: str = ""

    @property
    def ok(self) -> bool:
        return self.state is LoginState.AUTHENTICATED


# Sets the value through the DOM and fires the events Keycloak listens to.
_FILL_SCRIPT = """
([selector, value]) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    el.focus();
    el.value = value;
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
    return true;
}
"""


def sanitize_totp_secret(secret: str | None) -> str:
    """Strip whitespace, dashes and underscores and upper-case the secret."""

    return re.sub(r"[\s_-]", "", secret or "").upper()


def generate_totp(secret: str, *, for_time: float | None = None) -> str:
    totp = pyotp.TOTP(sanitize_totp_secret(secret))
    if for_time is None:
        return totp.now()
    return totp.at(for_time)


def fill_input(page: Page, candidates: Sequence[str], value: str, *, field: str) -> str:
    """Fill the first matching candidate and return its selector.

    Raises :class:`FieldNotFound` when no candidate is on the page.
    """

    selector = first_present(page, candidates)
    if selector is None:
        save_debug_snapshot(page, f"login_missing_{field}")
        raise FieldNotFound(field, candidates)

    filled = page.evaluate(_FILL_SCRIPT, [selector, value])
    if not filled:
        page.locator(selector).first.fill(value)
    pause(page, config.FIELD_DELAY_RANGE)
    log_line(f"[AUTH] Filled {field} via {selector}")
    return selector


def click_submit(page: Page) -> str:
    """Submit the login form; returns which strategy was used."""

    selector = first_present(page, LOGIN_SELECTORS.submit)
    if selector is not None:
        page.locator(selector).first.click()
        return selector

    by_text = page.get_by_role("button", name=re.compile(LOGIN_SELECTORS.submit_text, re.IGNORECASE))
    if by_text.count() > 0:
        by_text.first.click()
        return f"text:{LOGIN_SELECTORS.submit_text}"

    page.keyboard.press("Enter")
    return "keyboard:Enter"


def read_login_error(page: Page) -> Optional[str]:
    try:
        locator = page.locator(LOGIN_SELECTORS.error)
        if locator.count() == 0:
            return None
        text = (locator.first.inner_text() or "").strip()
    except PWError:
        return None
    return text or None


def classify_outcome(url: str, error_text: Optional[str]) -> LoginOutcome:
    """Decide the login result from the landing URL and any error banner."""

    if error_text:
        return LoginOutcome(LoginState.FAILED, reason=error_text, url=url)
    lowered = (url or "").lower()
    if any(marker in lowered for marker in LOGIN_SELECTORS.login_url_markers):
        return LoginOutcome(LoginState.FAILED, reason="still_on_login", url=url)
    return LoginOutcome(LoginState.AUTHENTICATED, url=url)


def _fill_totp_if_present(page: Page, secret: str) -> bool:
    if first_present(page, LOGIN_SELECTORS.totp) is None:
        return False
    fill_input(page, LOGIN_SELECTORS.totp, generate_totp(secret), field="totp")
    return True


def attempt_login(page: Page, *, username: str, password: str, totp_secret: str) -> LoginOutcome:
    """Run one login attempt; never retries."""

    state = LoginState.NOT_STARTED
    _scraper_event("auth", step="start", state=state.value)

    if not safe_goto(page, config.EPROC_LOGIN_URL, label="login"):
        raise NavigationTimeout(f"Login page did not load: {config.EPROC_LOGIN_URL}")
    wait_for_settle(page, label="login")
    save_debug_snapshot(page, "login_page")

    fill_input(page, LOGIN_SELECTORS.username, username, field="username")
    fill_input(page, LOGIN_SELECTORS.password, password, field="password")
    state = LoginState.CREDENTIALS_ENTERED

    # The code field shows up on the first screen, on a second screen, or not at all.
    totp_done = _fill_totp_if_present(page, totp_secret)
    if totp_done:
        state = LoginState.SECOND_FACTOR
    _scraper_event("auth", step="credentials", state=state.value, totp=totp_done)

    method = click_submit(page)
    state = LoginState.SUBMITTED
    _scraper_event("auth", step="submit", state=state.value, method=method)
    wait_for_settle(page, label="login_submit")

    if not totp_done and _fill_totp_if_present(page, totp_secret):
        _scraper_event("auth", step="second_factor", state=LoginState.SECOND_FACTOR.value)
        method = click_submit(page)
        _scraper_event("auth", step="submit", state=LoginState.SUBMITTED.value, method=method)
        wait_for_settle(page, label="login_totp_submit")

    outcome = classify_outcome(page.url, read_login_error(page))
    if outcome.ok:
        _scraper_event("auth", step="done", state=outcome.state.value, url=outcome.url)
    else:
        save_debug_snapshot(page, "login_failed")
        _scraper_event("auth_error", step="done", state=outcome.state.value, reason=outcome.reason, url=outcome.url)
    return outcome


def authenticate(
    page: Page,
    *,
    username: str | None = None,
    password: str | None = None,
    totp_secret: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> LoginOutcome:
    """Log in, retrying once after a fixed delay.

    Raises :class:`AuthenticationFailure` (or :class:`FieldNotFound`) when
    both attempts fail.
    """

    def _attempt() -> LoginOutcome:
        outcome = attempt_login(
            page,
            username=username if username is not None else config.EPROC_USER,
            password=password if password is not None else config.EPROC_PASSWORD,
            totp_secret=totp_secret if totp_secret is not None else config.EPROC_TOTP_SECRET,
        )
        if not outcome.ok:
            code = ErrorCode.AUTH_STILL_ON_LOGIN if outcome.reason == "still_on_login" else ErrorCode.AUTH_FAILED
            raise AuthenticationFailure(f"Login failed: {outcome.reason}", error_code=code)
        return outcome

    return with_retry(
        _attempt,
        max_retries=config.LOGIN_MAX_RETRIES,
        initial_delay=config.LOGIN_RETRY_DELAY_SECONDS,
        multiplier=1.0,
        max_delay=config.LOGIN_RETRY_DELAY_SECONDS,
        label="login",
        sleep=sleep,
    )


__all__ = [
    "LoginState",
    "LoginOutcome",
    "sanitize_totp_secret",
    "generate_totp",
    "fill_input",
    "click_submit",
    "read_login_error",
    "classify_outcome",
    "attempt_login",
    "authenticate",
]

"""Playwright session handling and guarded page helpers.

A :class:`BrowserSession` owns one Chromium browser, one context and the main
page for the duration of a cycle. Helpers below never raise Playwright
timeouts to their callers: they log a structured event and report failure.
"""
from __future__ import annotations

import random
from typing import Callable, Iterable, Optional, Sequence

from playwright.sync_api import (
    Browser,
    BrowserContext,
    Dialog,
    Error as PWError,
    Page,
    Playwright,
    TimeoutError as PWTimeout,
    sync_playwright,
)

from . import config
from .logging_utils import _scraper_event
from .parser import STAMP_BACKGROUND_SCRIPT
from .utils import log_line

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


def is_target_closed_error(exc: Exception) -> bool:
    """Return ``True`` if *exc* indicates the Playwright target is gone."""

    message = str(exc)
    return any(
        marker in message
        for marker in (
            "Target closed",
            "Target crashed",
            "has been closed",
            "Execution context was destroyed",
        )
    )


def _accept_dialog(dialog: Dialog) -> None:
    try:
        log_line(f"[BROWSER] Auto-accepting {dialog.type} dialog: {dialog.message[:120]!r}")
        dialog.accept()
    except PWError as exc:
        log_line(f"[BROWSER] Dialog already handled: {exc}")


def _attach_dialog_handler(page: Page) -> None:
    page.on("dialog", _accept_dialog)


class BrowserSession:
    """Scoped Chromium session: ``with BrowserSession() as session: ...``.

    Every page opened in the context (new tabs included) auto-accepts native
    dialogs so an unexpected ``alert()`` cannot block navigation.
    """

    def __init__(self, *, headless: bool | None = None) -> None:
        self.headless = config.HEADLESS if headless is None else headless
        self._playwright_cm = None
        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    def _proxy_settings(self) -> Optional[dict]:
        if not config.PROXY_SERVER:
            return None
        proxy = {"server": config.PROXY_SERVER}
        if config.PROXY_USER:
            proxy["username"] = config.PROXY_USER
            proxy["password"] = config.PROXY_PASS or ""
        return proxy

    def __enter__(self) -> "BrowserSession":
        self._playwright_cm = sync_playwright()
        self._playwright = self._playwright_cm.__enter__()
        try:
            launch_kwargs = {"headless": self.headless, "args": LAUNCH_ARGS}
            if config.CHROMIUM_EXECUTABLE:
                launch_kwargs["executable_path"] = config.CHROMIUM_EXECUTABLE
            proxy = self._proxy_settings()
            if proxy:
                launch_kwargs["proxy"] = proxy
            self.browser = self._playwright.chromium.launch(**launch_kwargs)

            self.context = self.browser.new_context(
                user_agent=config.USER_AGENT,
                locale="pt-BR",
                timezone_id="America/Sao_Paulo",
                viewport={"width": 1368, "height": 900},
                extra_http_headers=config.COMMON_HEADERS,
                accept_downloads=True,
            )
            self.context.set_default_timeout(config.SELECTOR_TIMEOUT_MS)
            self.context.set_default_navigation_timeout(config.BROWSER_TIMEOUT_MS)
            self.context.add_init_script(
                "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"
            )
            self.context.on("page", _attach_dialog_handler)

            self.page = self.context.new_page()
            _attach_dialog_handler(self.page)
        except Exception:
            self.close()
            raise
        _scraper_event("state", phase="browser", step="launched", headless=self.headless)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Tear everything down; safe to call more than once."""

        for closer, name in (
            (self.context.close if self.context else None, "context"),
            (self.browser.close if self.browser else None, "browser"),
        ):
            if closer is None:
                continue
            try:
                closer()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[BROWSER] Failed to close {name}: {exc}")
        self.context = None
        self.browser = None
        self.page = None

        if self._playwright_cm is not None:
            try:
                self._playwright_cm.__exit__(None, None, None)
            except Exception as exc:  # noqa: BLE001
                log_line(f"[BROWSER] Failed to stop Playwright: {exc}")
            self._playwright_cm = None
            self._playwright = None


def pause(page: Optional[Page], bounds: tuple[float, float]) -> None:
    """Wait a random duration within ``bounds`` if *page* remains open."""

    low, high = bounds
    if page is None or high <= 0:
        return
    seconds = random.uniform(max(0.0, low), max(low, high))
    if seconds > 0 and not page.is_closed():
        page.wait_for_timeout(int(seconds * 1000))


def safe_goto(page: Page, url: str, *, label: str, wait_until: str = "domcontentloaded") -> bool:
    """Navigate to ``url`` with bounded timeouts and structured logging."""

    try:
        _scraper_event("nav", step="goto", label=label, url=url)
        page.goto(url, wait_until=wait_until, timeout=config.BROWSER_TIMEOUT_MS)
        return True
    except PWTimeout as exc:
        log_line(f"[BROWSER][NAV] goto({url!r}) timed out: {exc}")
        _scraper_event("error", phase="nav", step="goto_timeout", label=label, url=url, error=str(exc))
        return False
    except PWError as exc:
        step = "goto_target_closed" if is_target_closed_error(exc) else "goto_error"
        log_line(f"[BROWSER][NAV] goto({url!r}) failed: {exc}")
        _scraper_event("error", phase="nav", step=step, label=label, url=url, error=str(exc))
        return False


def wait_for_settle(page: Page, *, label: str, timeout_ms: int | None = None) -> bool:
    """Wait for network idle; a timeout is logged and tolerated."""

    try:
        page.wait_for_load_state("networkidle", timeout=timeout_ms or config.NAV_SETTLE_TIMEOUT_MS)
        return True
    except PWTimeout:
        log_line(f"[BROWSER][NAV] networkidle timeout on {label}; continuing.")
        return False
    except PWError as exc:
        log_line(f"[BROWSER][NAV] wait_for_load_state failed on {label}: {exc}")
        return False


def wait_for_selector(page: Page, selector: str, *, label: str, timeout_ms: int | None = None) -> bool:
    try:
        page.wait_for_selector(selector, timeout=timeout_ms or config.SELECTOR_TIMEOUT_MS)
        return True
    except PWTimeout as exc:
        _scraper_event("error", phase="wait", step="selector_timeout", label=label, selector=selector, error=str(exc))
        return False
    except PWError as exc:
        _scraper_event("error", phase="wait", step="selector_error", label=label, selector=selector, error=str(exc))
        return False


def first_present(page: Page, candidates: Iterable[str]) -> Optional[str]:
    """Return the first selector in ``candidates`` that matches an element."""

    for selector in candidates:
        try:
            if page.locator(selector).count() > 0:
                return selector
        except PWError:
            continue
    return None


def open_in_new_tab(
    page: Page,
    click: Callable[[], None],
    *,
    url_markers: Sequence[str],
    label: str,
    timeout_seconds: float | None = None,
) -> Optional[Page]:
    """Run ``click`` and return the page that shows the result.

    The new-page listener is armed before clicking. When no tab appears in
    time, the current page is accepted if its URL carries one of
    ``url_markers``; failing that, any open tab with such a URL is used.
    Returns ``None`` when nothing matches.
    """

    context = page.context
    timeout_ms = int((timeout_seconds or config.NEW_TAB_TIMEOUT_SECONDS) * 1000)
    try:
        with context.expect_page(timeout=timeout_ms) as new_page_info:
            click()
        new_page = new_page_info.value
        try:
            new_page.wait_for_load_state("domcontentloaded", timeout=config.BROWSER_TIMEOUT_MS)
        except PWTimeout:
            log_line(f"[BROWSER][TAB] New tab for {label} slow to load; continuing.")
        _scraper_event("nav", step="new_tab", label=label, url=new_page.url)
        return new_page
    except PWTimeout:
        log_line(f"[BROWSER][TAB] No new tab for {label} within {timeout_ms} ms; checking current tab.")

    wait_for_settle(page, label=label)
    if any(marker in (page.url or "") for marker in url_markers):
        _scraper_event("nav", step="same_tab", label=label, url=page.url)
        return page

    for candidate in context.pages:
        if candidate is page or candidate.is_closed():
            continue
        if any(marker in (candidate.url or "") for marker in url_markers):
            _scraper_event("nav", step="existing_tab", label=label, url=candidate.url)
            return candidate

    _scraper_event("error", phase="nav", step="tab_not_found", label=label, markers=list(url_markers))
    return None


def snapshot_html(page: Page) -> str:
    """Return the rendered HTML with computed cell backgrounds stamped in."""

    try:
        page.evaluate(STAMP_BACKGROUND_SCRIPT)
    except PWError as exc:
        log_line(f"[BROWSER] Could not stamp background colours: {exc}")
    return page.content()


def close_extra_pages(context: BrowserContext, keep: Page) -> int:
    """Close every page in ``context`` except ``keep``; return how many closed."""

    closed = 0
    for candidate in list(context.pages):
        if candidate is keep or candidate.is_closed():
            continue
        try:
            candidate.close()
            closed += 1
        except PWError as exc:
            log_line(f"[BROWSER] Failed to close tab {candidate.url}: {exc}")
    return closed


__all__ = [
    "BrowserSession",
    "is_target_closed_error",
    "pause",
    "safe_goto",
    "wait_for_settle",
    "wait_for_selector",
    "first_present",
    "open_in_new_tab",
    "snapshot_html",
    "close_extra_pages",
]

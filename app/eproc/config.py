"""Configuration constants for the eproc deadline monitor."""
from __future__ import annotations

import os
from pathlib import Path


def _env_flag(env_var: str, default: str) -> bool:
    return os.getenv(env_var, default).strip().lower() not in {"0", "false", "no", ""}


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


DATA_DIR: Path = Path(os.getenv("EPROC_DATA_DIR", "/app/data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
MAX_CYCLE_LOGS: int = max(1, int(os.getenv("MAX_CYCLE_LOGS", "200")))
DEBUG_DIR: Path = DATA_DIR / "debug"
STORAGE_DIR: Path = DATA_DIR / "storage"
DB_PATH: Path = DATA_DIR / "eproc.db"

# Portal
EPROC_BASE_URL: str = os.getenv("EPROC_BASE_URL", "https://eproc1g.tjrs.jus.br")
EPROC_LOGIN_URL: str = os.getenv(
    "EPROC_LOGIN_URL",
    f"{EPROC_BASE_URL}/eproc/controlador.php?acao=usuario_login_form",
)

# Credentials
EPROC_USER: str = os.getenv("EPROC_USER", "")
EPROC_PASSWORD: str = os.getenv("EPROC_PASSWORD", "")
EPROC_TOTP_SECRET: str = os.getenv("EPROC_TOTP_SECRET", "")

# Name of the monitored advocate, matched against parties and representatives.
ADVOGADO_NOME: str = os.getenv("ADVOGADO_NOME", "")

# Scheduling
SCRAPER_INTERVAL_MINUTES: int = int(os.getenv("SCRAPER_INTERVAL_MINUTES", "15"))
MAX_PROCESSES_PER_CYCLE: int = int(os.getenv("MAX_PROCESSES_PER_CYCLE", "3"))
RECESS_HOURS: float = float(os.getenv("RECESS_HOURS", "24"))
SHUTDOWN_WAIT_SECONDS: int = _parse_timeout_seconds("SHUTDOWN_WAIT_SECONDS", 120)

# Browser
HEADLESS: bool = _env_flag("HEADLESS", "true")
CHROMIUM_EXECUTABLE: str | None = os.getenv("CHROMIUM_EXECUTABLE") or None
BROWSER_TIMEOUT_MS: int = int(os.getenv("BROWSER_TIMEOUT_MS", "60000"))
NAV_SETTLE_TIMEOUT_MS: int = int(os.getenv("NAV_SETTLE_TIMEOUT_MS", "30000"))
SELECTOR_TIMEOUT_MS: int = int(os.getenv("SELECTOR_TIMEOUT_MS", "15000"))
NEW_TAB_TIMEOUT_SECONDS: int = _parse_timeout_seconds("NEW_TAB_TIMEOUT_SECONDS", 15)
DOCUMENT_TIMEOUT_MS: int = int(os.getenv("DOCUMENT_TIMEOUT_MS", "60000"))

PROXY_SERVER: str | None = os.getenv("PROXY_SERVER") or None
PROXY_USER: str | None = os.getenv("PROXY_USER") or None
PROXY_PASS: str | None = os.getenv("PROXY_PASS") or None

# Randomised pacing between steps (seconds)
STEP_DELAY_RANGE: tuple[float, float] = (
    float(os.getenv("STEP_DELAY_MIN_SECONDS", "1.0")),
    float(os.getenv("STEP_DELAY_MAX_SECONDS", "2.0")),
)
FIELD_DELAY_RANGE: tuple[float, float] = (
    float(os.getenv("FIELD_DELAY_MIN_SECONDS", "0.3")),
    float(os.getenv("FIELD_DELAY_MAX_SECONDS", "0.7")),
)
CASE_DELAY_RANGE: tuple[float, float] = (
    float(os.getenv("CASE_DELAY_MIN_SECONDS", "2.0")),
    float(os.getenv("CASE_DELAY_MAX_SECONDS", "4.0")),
)

# Login retry: a single extra attempt to avoid account lockout.
LOGIN_MAX_RETRIES: int = 1
LOGIN_RETRY_DELAY_SECONDS: float = float(os.getenv("LOGIN_RETRY_DELAY_SECONDS", "5"))

# Blob storage
SIGNING_SECRET: str = os.getenv("SIGNING_SECRET", "dev-secret-change-me")
SIGNED_URL_TTL_SECONDS: int = _parse_timeout_seconds("SIGNED_URL_TTL_SECONDS", 3600)
PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8080").rstrip("/")

DEBUG_MODE: bool = _env_flag("DEBUG_MODE", "false")

COMMON_HEADERS: dict[str, str] = {
    "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
}

USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)


def recess_delay_seconds() -> float:
    """Return the dormant-mode delay in seconds."""

    return RECESS_HOURS * 3600.0


def active_interval_seconds() -> float:
    """Return the active-mode trigger interval in seconds."""

    return SCRAPER_INTERVAL_MINUTES * 60.0

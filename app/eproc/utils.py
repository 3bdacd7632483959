from __future__ import annotations

import logging
import random
import re
import sys
import time
import unicodedata
from datetime import datetime, timezone
from pathlib import Path

from . import config

LOGGER = logging.getLogger("eproc")
_LOGGER_INITIALISED = False


def _configure_logger(log_path: Path) -> None:
    """Configure the shared application logger to write to ``log_path``."""

    global _LOGGER_INITIALISED

    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        try:
            handler.close()
        except Exception:  # noqa: BLE001
            continue

    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    LOGGER.setLevel(logging.DEBUG if config.DEBUG_MODE else logging.INFO)
    LOGGER.addHandler(stream_handler)
    LOGGER.propagate = False

    # A read-only data volume still gets stdout logging.
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as exc:
        LOGGER.warning("Cannot write log file %s: %s", log_path, exc)
    else:
        file_handler.setFormatter(formatter)
        LOGGER.addHandler(file_handler)

    _LOGGER_INITIALISED = True


def _ensure_logger() -> None:
    """Initialise the logger lazily using the default log file."""

    if _LOGGER_INITIALISED:
        return
    _configure_logger(config.LOG_FILE)


def setup_run_logger() -> Path:
    """Rotate to a fresh timestamped log file for the current cycle."""

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = config.LOG_DIR / f"cycle_{timestamp}.log"
    _configure_logger(log_path)
    LOGGER.info("Logging to %s", log_path)
    prune_old_logs(keep=log_path)
    return log_path


def prune_old_logs(*, keep: Path | None = None) -> int:
    """Delete the oldest ``cycle_*.log`` files beyond ``config.MAX_CYCLE_LOGS``."""

    files = sorted(config.LOG_DIR.glob("cycle_*.log"))
    removed = 0
    while len(files) > config.MAX_CYCLE_LOGS:
        old = files.pop(0)
        if old == keep:
            continue
        try:
            old.unlink()
            removed += 1
        except OSError:
            continue
    return removed


def ensure_dirs() -> None:
    """Ensure that the application's expected directory structure exists."""

    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    config.LOG_DIR.mkdir(parents=True, exist_ok=True)
    config.STORAGE_DIR.mkdir(parents=True, exist_ok=True)


def log_line(message: str, *, level: int = logging.INFO) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.log(level, message)


def sanitize_filename(name: str) -> str:
    """Replace anything outside ``[a-zA-Z0-9._-]`` with an underscore."""

    return re.sub(r"[^a-zA-Z0-9._-]", "_", name or "")


def normalize_text(value: str | None) -> str:
    """Upper-case ``value`` and strip diacritics for name comparisons."""

    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value.upper())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.strip()


def random_delay(bounds: tuple[float, float]) -> float:
    """Sleep for a random duration within ``bounds`` and return it."""

    low, high = bounds
    if high < low:
        low, high = high, low
    delay = random.uniform(max(0.0, low), max(0.0, high))
    if delay > 0:
        time.sleep(delay)
    return delay


def digits_only(value: str) -> str:
    return re.sub(r"[^0-9]", "", value or "")


__all__ = [
    "LOGGER",
    "ensure_dirs",
    "setup_run_logger",
    "prune_old_logs",
    "log_line",
    "sanitize_filename",
    "normalize_text",
    "random_delay",
    "digits_only",
]

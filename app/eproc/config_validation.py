from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["scheduler", "cli", "api", "tests"]

# Entrypoints that drive the portal and therefore need credentials.
_LIVE_ENTRYPOINTS = {"scheduler", "cli"}


def _raise_config_error(
    message: str, *, entrypoint: Entrypoint, error: str, mode: str | None
) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
        mode=mode,
    )
    mode_fragment = f", mode={mode}" if mode else ""
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint}{mode_fragment})")
    raise ValueError(message)


def _clamp(field: str, value: int, adjusted: int, *, entrypoint: Entrypoint, mode: str | None) -> int:
    _scraper_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field,
        value=value,
        adjusted=adjusted,
        entrypoint=entrypoint,
        mode=mode,
    )
    log_line(f"[CONFIG] {field}={value} out of range; clamping to {adjusted}.")
    return adjusted


def validate_runtime_config(entrypoint: Entrypoint, *, mode: str | None = None) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Out-of-range batch sizes are clamped and logged instead.
    """

    if entrypoint in _LIVE_ENTRYPOINTS:
        missing = [
            name
            for name, value in (
                ("EPROC_USER", config.EPROC_USER),
                ("EPROC_PASSWORD", config.EPROC_PASSWORD),
                ("EPROC_TOTP_SECRET", config.EPROC_TOTP_SECRET),
                ("ADVOGADO_NOME", config.ADVOGADO_NOME),
            )
            if not (value or "").strip()
        ]
        if missing:
            _raise_config_error(
                f"Missing required settings: {', '.join(missing)}.",
                entrypoint=entrypoint,
                error="missing_credentials",
                mode=mode,
            )

    if not 1 <= config.SCRAPER_INTERVAL_MINUTES <= 60:
        _raise_config_error(
            "SCRAPER_INTERVAL_MINUTES must be between 1 and 60.",
            entrypoint=entrypoint,
            error="interval_out_of_range",
            mode=mode,
        )

    if config.MAX_PROCESSES_PER_CYCLE < 1:
        config.MAX_PROCESSES_PER_CYCLE = _clamp(
            "MAX_PROCESSES_PER_CYCLE",
            config.MAX_PROCESSES_PER_CYCLE,
            1,
            entrypoint=entrypoint,
            mode=mode,
        )

    if config.RECESS_HOURS <= 0:
        _raise_config_error(
            "RECESS_HOURS must be greater than zero.",
            entrypoint=entrypoint,
            error="invalid_recess",
            mode=mode,
        )

    timeout_fields = [
        ("BROWSER_TIMEOUT_MS", config.BROWSER_TIMEOUT_MS),
        ("NAV_SETTLE_TIMEOUT_MS", config.NAV_SETTLE_TIMEOUT_MS),
        ("SELECTOR_TIMEOUT_MS", config.SELECTOR_TIMEOUT_MS),
        ("DOCUMENT_TIMEOUT_MS", config.DOCUMENT_TIMEOUT_MS),
        ("NEW_TAB_TIMEOUT_SECONDS", config.NEW_TAB_TIMEOUT_SECONDS),
    ]

    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
                mode=mode,
            )


__all__ = ["validate_runtime_config", "Entrypoint"]

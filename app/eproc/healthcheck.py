from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from . import config, db
from .config_validation import Entrypoint, validate_runtime_config
from .logging_utils import _scraper_event
from .utils import ensure_dirs, log_line


@dataclass
class HealthResult:
    ok: bool
    checks: dict[str, dict[str, Any]]


def run_health_checks(entrypoint: Entrypoint = "cli") -> HealthResult:
    checks: dict[str, dict[str, Any]] = {}

    try:
        validate_runtime_config(entrypoint, mode="health")
        checks["config"] = {"ok": True}
    except ValueError as exc:
        checks["config"] = {"ok": False, "error": str(exc)}

    try:
        ensure_dirs()
        checks["filesystem"] = {
            "ok": config.STORAGE_DIR.is_dir(),
            "data_dir": str(config.DATA_DIR),
        }
    except OSError as exc:
        checks["filesystem"] = {"ok": False, "error": str(exc)}

    try:
        db.initialize_schema()
        latest = db.get_latest_run()
        checks["database"] = {
            "ok": True,
            "cases": db.count_rows("cases"),
            "last_run_status": latest.status.value if latest else None,
        }
    except Exception as exc:  # noqa: BLE001
        checks["database"] = {"ok": False, "error": str(exc)}

    overall_ok = all(check.get("ok", False) for check in checks.values())
    _scraper_event(
        "state" if overall_ok else "error",
        phase="health",
        context="healthcheck",
        ok=overall_ok,
    )
    return HealthResult(ok=overall_ok, checks=checks)


if __name__ == "__main__":  # pragma: no cover
    result = run_health_checks(entrypoint="cli")
    for name, info in result.checks.items():
        status = "OK" if info.get("ok") else "FAIL"
        log_line(f"[HEALTH] {name}: {status} {info}")
    raise SystemExit(0 if result.ok else 1)

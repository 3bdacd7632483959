"""Process entrypoint: the scheduler loop, a single cycle, or both plus the API."""
from __future__ import annotations

import argparse
import os
import signal
import threading
from typing import List, Optional

from . import config, db
from .config_validation import validate_runtime_config
from .cycle import run_cycle
from .models import RunStatus
from .scheduler import AdaptiveScheduler
from .utils import ensure_dirs, log_line


def _start_api_server(port: int) -> threading.Thread:
    from app.main import app

    thread = threading.Thread(
        target=lambda: app.run(host="0.0.0.0", port=port, use_reloader=False),
        name="eproc-api",
        daemon=True,
    )
    thread.start()
    log_line(f"[RUN] API listening on port {port}")
    return thread


def run_forever(*, serve: bool = False, port: int = 8080) -> None:
    """Run cycles on the adaptive schedule until SIGINT/SIGTERM."""

    stop_event = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        log_line(f"[RUN] Received signal {signum}; shutting down.")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    if serve:
        _start_api_server(port)

    scheduler = AdaptiveScheduler(
        run_cycle,
        interval_seconds=config.active_interval_seconds(),
        dormant_seconds=config.recess_delay_seconds(),
    )
    scheduler.start()
    stop_event.wait()
    scheduler.shutdown(config.SHUTDOWN_WAIT_SECONDS)


def _cli_entrypoint(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Monitor open deadlines on eproc")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("--serve", action="store_true", help="Also serve the HTTP API")
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", 8080)))
    args = parser.parse_args(argv)

    ensure_dirs()
    validate_runtime_config("cli" if args.once else "scheduler", mode="once" if args.once else "loop")
    db.initialize_schema()

    if args.once:
        result = run_cycle()
        log_line(f"[RUN] Cycle finished with status {result.status.value}")
        return 1 if result.status is RunStatus.ERROR else 0

    run_forever(serve=args.serve, port=args.port)
    return 0


__all__ = ["run_forever", "_cli_entrypoint"]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(_cli_entrypoint())

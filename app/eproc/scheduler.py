"""Adaptive scheduling: short interval while work remains, long recess when drained."""
from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional

from .logging_utils import _scraper_event
from .utils import log_line

ACTIVE = "active"
DORMANT = "dormant"

TimerFactory = Callable[[float, Callable[[], None]], Any]


class AdaptiveScheduler:
    """Owns the mode, the pending timer and the in-progress flag.

    Active mode re-arms the trigger every ``interval_seconds`` counted from the
    start of the previous cycle. A drained cycle switches to dormant mode: a
    single timer ``dormant_seconds`` after completion, after which the
    scheduler is active again.
    """

    def __init__(
        self,
        cycle_fn: Callable[[], Any],
        *,
        interval_seconds: float,
        dormant_seconds: float,
        timer_factory: TimerFactory = threading.Timer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cycle_fn = cycle_fn
        self.interval_seconds = float(interval_seconds)
        self.dormant_seconds = float(dormant_seconds)
        self.mode = ACTIVE
        self._timer_factory = timer_factory
        self._clock = clock
        self._timer: Optional[Any] = None
        self._lock = threading.Lock()
        self._in_progress = False
        self._idle = threading.Event()
        self._idle.set()
        self._stopped = False
        self.cycles_run = 0

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def pending_delay(self) -> Optional[float]:
        timer = self._timer
        return getattr(timer, "interval", None) if timer is not None else None

    def start(self) -> None:
        """Run the first cycle straight away (on a timer thread)."""

        _scraper_event(
            "scheduler",
            step="start",
            interval_seconds=self.interval_seconds,
            dormant_seconds=self.dormant_seconds,
        )
        self._schedule(0.0)

    def _schedule(self, delay: float) -> None:
        with self._lock:
            if self._stopped:
                return
            self._cancel_timer_locked()
            timer = self._timer_factory(delay, self._fire)
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer
        timer.start()

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self.run_now()

    def run_now(self) -> bool:
        """Run a cycle unless one is already running. Returns whether it ran."""

        with self._lock:
            if self._stopped:
                return False
            if self._in_progress:
                log_line("[SCHEDULER] Cycle already in progress; trigger skipped.")
                _scraper_event("scheduler", step="skip_overlap", mode=self.mode)
                return False
            self._in_progress = True
            self._idle.clear()

        started = self._clock()
        drained = False
        try:
            result = self.cycle_fn()
            drained = bool(getattr(result, "fully_drained", False))
        except Exception as exc:  # noqa: BLE001
            log_line(f"[SCHEDULER] Cycle raised {type(exc).__name__}: {exc}")
            _scraper_event("error", phase="scheduler", error=str(exc))
        finally:
            with self._lock:
                self._in_progress = False
                self.cycles_run += 1
            self._idle.set()

        self.on_cycle_complete(drained, elapsed=self._clock() - started)
        return True

    def on_cycle_complete(self, drained: bool, *, elapsed: float = 0.0) -> None:
        """Switch mode after a cycle and arm the next trigger."""

        if drained:
            self.mode = DORMANT
            delay = self.dormant_seconds
        else:
            self.mode = ACTIVE
            delay = max(0.0, self.interval_seconds - max(0.0, elapsed))

        _scraper_event("scheduler", step="next", mode=self.mode, drained=drained, delay_seconds=round(delay, 1))
        log_line(f"[SCHEDULER] Mode {self.mode}; next cycle in {delay / 60:.1f} min")
        self._schedule(delay)

    def shutdown(self, wait_seconds: float | None = None) -> bool:
        """Cancel timers and wait for a running cycle. Returns ``True`` if idle."""

        with self._lock:
            self._stopped = True
            self._cancel_timer_locked()
        idle = self._idle.wait(timeout=wait_seconds)
        _scraper_event("scheduler", step="shutdown", idle=idle)
        if not idle:
            log_line(f"[SCHEDULER] Cycle still running after {wait_seconds}s; exiting anyway.")
        return idle


__all__ = ["ACTIVE", "DORMANT", "AdaptiveScheduler"]

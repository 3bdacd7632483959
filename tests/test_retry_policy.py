from __future__ import annotations

import pytest

from app.eproc import retry_policy


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_phase: str, **fields: object) -> None:
        events.append((event_phase, fields))

    monkeypatch.setattr(retry_policy, "_scraper_event", _record)
    return events


@pytest.mark.parametrize(
    "attempt, expected",
    [(1, 2.0), (2, 4.0), (3, 8.0), (6, 30.0)],
)
def test_compute_backoff_seconds(attempt: int, expected: float) -> None:
    assert retry_policy.compute_backoff_seconds(attempt, initial_delay=2.0, multiplier=2.0, max_delay=30.0) == expected


def test_with_retry_succeeds_after_failure(event_recorder: list[tuple[str, dict]]) -> None:
    attempts: list[int] = []
    sleeps: list[float] = []

    def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 2:
            raise RuntimeError("transient")
        return "ok"

    result = retry_policy.with_retry(flaky, max_retries=1, initial_delay=5, multiplier=1.0, label="login", sleep=sleeps.append)

    assert result == "ok"
    assert len(attempts) == 2
    assert sleeps == [5.0]
    phase, fields = event_recorder[0]
    assert phase == "state"
    assert fields["phase"] == "retry_decision"
    assert fields["kind"] == "retryable"
    assert fields["will_retry"] is True
    assert fields["label"] == "login"


def test_with_retry_reraises_when_exhausted(event_recorder: list[tuple[str, dict]]) -> None:
    sleeps: list[float] = []

    def always_fails() -> None:
        raise RuntimeError("down")

    with pytest.raises(RuntimeError, match="down"):
        retry_policy.with_retry(always_fails, max_retries=2, initial_delay=1, sleep=sleeps.append)

    assert sleeps == [1.0, 2.0]
    assert [fields["kind"] for _, fields in event_recorder] == ["retryable", "retryable", "exhausted"]
    assert event_recorder[-1][0] == "error"
    assert event_recorder[-1][1]["will_retry"] is False

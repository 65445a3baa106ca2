from __future__ import annotations

import threading
from datetime import datetime, timedelta

import pytest

from ledger_service.app.models.results import RecoverySummary
from ledger_service.app.scheduler import recovery_scheduler


class FakeRecoveryService:
    def __init__(self, *, raise_error: Exception | None = None) -> None:
        self.raise_error = raise_error
        self.calls: list[datetime] = []
        self.called = threading.Event()

    def tick_all(self, *, now: datetime) -> RecoverySummary:
        self.calls.append(now)
        self.called.set()
        if self.raise_error is not None:
            raise self.raise_error
        return RecoverySummary(processed=2, recovered_users=1, recovered_total=500)


def test_run_recovery_once_passes_utc_now() -> None:
    service = FakeRecoveryService()

    recovery_scheduler.run_recovery_once(service, "manual")

    [now] = service.calls
    assert now.utcoffset() == timedelta(0)


def test_run_recovery_once_swallows_crash(caplog: pytest.LogCaptureFixture) -> None:
    service = FakeRecoveryService(raise_error=RuntimeError("mongo down"))

    with caplog.at_level("ERROR"):
        recovery_scheduler.run_recovery_once(service, "scheduled")

    assert "auto recovery failed (scheduled run)" in caplog.text


def test_scheduler_runs_initial_pass_and_stops() -> None:
    service = FakeRecoveryService()

    recovery_scheduler.start_recovery_scheduler(service, interval=3600.0)
    try:
        assert service.called.wait(timeout=5.0)
    finally:
        recovery_scheduler.stop_recovery_scheduler()

    assert len(service.calls) == 1
    assert recovery_scheduler._RECOVERY_SCHEDULER_THREAD is None

from __future__ import annotations

import logging
import threading

from common.types.datetime import utc_now

from ..services.recovery_service import RecoveryService


logger = logging.getLogger(__name__)


_RECOVERY_SCHEDULER_THREAD: threading.Thread | None = None
_RECOVERY_SCHEDULER_STOP_EVENT: threading.Event | None = None


def run_recovery_once(service: RecoveryService, label: str) -> None:
    logger.info("auto recovery starting (%s run)", label)
    try:
        summary = service.tick_all(now=utc_now())
        logger.info(
            "auto recovery completed (%s run) processed=%d recovered_total=%d",
            label,
            summary.processed,
            summary.recovered_total,
        )
    except Exception:  # noqa: BLE001
        logger.exception("auto recovery failed (%s run)", label)


def _run_scheduler_loop(
    stop_event: threading.Event, service: RecoveryService, interval: float
) -> None:
    logger.info(
        "recovery scheduler thread started (interval=%.0f seconds)",
        interval,
    )

    try:
        # 최초 실행
        run_recovery_once(service, "initial")

        # 주기적 실행
        while not stop_event.wait(interval):
            run_recovery_once(service, "scheduled")
    finally:
        logger.info("recovery scheduler thread stopped")


def start_recovery_scheduler(service: RecoveryService, interval: float) -> None:
    """자동 회복 스케줄러 스레드를 시작한다.

    main 에서 컨슈머 구독 전에 호출된다.
    """

    global _RECOVERY_SCHEDULER_THREAD, _RECOVERY_SCHEDULER_STOP_EVENT

    if _RECOVERY_SCHEDULER_THREAD and _RECOVERY_SCHEDULER_THREAD.is_alive():
        return

    stop_event = threading.Event()
    thread = threading.Thread(
        target=_run_scheduler_loop,
        args=(stop_event, service, interval),
        name="recovery-scheduler",
        daemon=True,
    )

    _RECOVERY_SCHEDULER_STOP_EVENT = stop_event
    _RECOVERY_SCHEDULER_THREAD = thread

    thread.start()
    logger.info("recovery scheduler thread launched")


def stop_recovery_scheduler() -> None:
    """자동 회복 스케줄러 스레드를 정지한다."""

    global _RECOVERY_SCHEDULER_THREAD, _RECOVERY_SCHEDULER_STOP_EVENT

    if _RECOVERY_SCHEDULER_THREAD is None or _RECOVERY_SCHEDULER_STOP_EVENT is None:
        return

    _RECOVERY_SCHEDULER_STOP_EVENT.set()
    _RECOVERY_SCHEDULER_THREAD.join(timeout=10.0)

    _RECOVERY_SCHEDULER_THREAD = None
    _RECOVERY_SCHEDULER_STOP_EVENT = None

    logger.info("recovery scheduler thread stopped by shutdown")

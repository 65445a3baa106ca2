from __future__ import annotations

import logging
import signal

from common.logger import setup_logger
from common.mongo.client import get_client, get_database

from .bootstrap import build_services
from .config import load_config
from .event_handlers import run_order_consumer
from .scheduler.recovery_scheduler import (
    start_recovery_scheduler,
    stop_recovery_scheduler,
)


logger = logging.getLogger(__name__)


def main() -> None:
    setup_logger(name="ledger-service")
    logger.info("ledger-service starting up")

    app_cfg = load_config()
    client = get_client()
    database = get_database()
    services = build_services(client, database, app_cfg.ledger)

    stop_flag = [False]

    def _signal_handler(signum, frame) -> None:  # type: ignore[unused-argument]
        logger.info("received signal %s, shutting down ledger-service...", signum)
        stop_flag[0] = True

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    start_recovery_scheduler(
        services.recovery, app_cfg.ledger.recovery_interval_seconds
    )
    try:
        run_order_consumer(stop_flag, services.order_fulfillment)
    finally:
        stop_recovery_scheduler()
        client.close()
        logger.info("ledger-service stopped")


if __name__ == "__main__":  # pragma: no cover
    main()

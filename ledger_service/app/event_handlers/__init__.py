"""이벤트 핸들러 패키지."""

from .order_handler import handle_order_event, run_order_consumer

__all__ = ["handle_order_event", "run_order_consumer"]

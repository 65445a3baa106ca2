"""주문 이벤트 핸들러.

Kafka에서 결제 확정/환불 주문 이벤트를 소비하여 크레딧/패키지 효과를 원장에 반영한다.
충돌처럼 재시도로 해결될 수 있는 실패는 예외를 던져 이벤트 버스의 retry/DLQ 에 맡긴다.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from common.eventbus.config import get_brokers, get_order_group_id
from common.eventbus.core import Event
from common.eventbus.kafka import KafkaEventBus
from common.eventbus.topics import TOPIC_ORDER
from common.events.order import OrderEventType, OrderPaidEvent, OrderRefundedEvent
from common.types.datetime import utc_now

from ..errors import ErrorCode, LedgerError
from ..services.order_fulfillment import OrderFulfillmentService


logger = logging.getLogger(__name__)

# 재전달하면 성공할 수 있는 실패. 나머지(잘못된 주문 등)는 로그만 남기고 커밋한다.
RETRYABLE_ERRORS = frozenset({ErrorCode.CONFLICT})


def handle_order_event(
    evt: Event,
    *,
    fulfillment: OrderFulfillmentService,
    clock: Callable[[], datetime] = utc_now,
) -> None:
    """주문 이벤트 하나를 처리한다."""
    payload = evt.payload
    if not isinstance(payload, dict):
        logger.error("unexpected payload type for event %s: %r", evt.id, type(payload))
        return

    event_type = str(payload.get("type", ""))

    if event_type == OrderEventType.ORDER_PAID:
        _handle_order_paid(payload, fulfillment, clock())
    elif event_type == OrderEventType.ORDER_REFUNDED:
        _handle_order_refunded(payload, fulfillment, clock())
    else:
        logger.debug("ignoring unknown order event type=%s id=%s", event_type, evt.id)


def _handle_order_paid(
    payload: dict, fulfillment: OrderFulfillmentService, now: datetime
) -> None:
    try:
        event = OrderPaidEvent.from_dict(payload)
    except Exception:
        logger.exception("failed to decode OrderPaidEvent payload=%r", payload)
        raise

    logger.info(
        "handling order.paid event id=%s order_ref=%s user_id=%s order_type=%s",
        event.id,
        event.order_ref,
        event.user_id,
        event.order_type,
        extra={"event_id": event.id, "order_ref": event.order_ref, "user_id": event.user_id},
    )

    result = fulfillment.fulfill_paid(event, now=now)
    _raise_if_retryable(result.success, result.error, event.order_ref)


def _handle_order_refunded(
    payload: dict, fulfillment: OrderFulfillmentService, now: datetime
) -> None:
    try:
        event = OrderRefundedEvent.from_dict(payload)
    except Exception:
        logger.exception("failed to decode OrderRefundedEvent payload=%r", payload)
        raise

    logger.info(
        "handling order.refunded event id=%s order_ref=%s user_id=%s bucket=%s",
        event.id,
        event.order_ref,
        event.user_id,
        event.bucket,
        extra={"event_id": event.id, "order_ref": event.order_ref, "user_id": event.user_id},
    )

    result = fulfillment.fulfill_refunded(event, now=now)
    _raise_if_retryable(result.success, result.error, event.order_ref)


def _raise_if_retryable(success: bool, error: ErrorCode | None, order_ref: str) -> None:
    if success:
        return
    if error in RETRYABLE_ERRORS:
        raise LedgerError(error, f"retryable failure for order_ref={order_ref}")
    logger.error(
        "order effect rejected order_ref=%s error=%s",
        order_ref,
        error,
        extra={"order_ref": order_ref, "error_code": str(error)},
    )


def run_order_consumer(
    stop_flag: list[bool], fulfillment: OrderFulfillmentService
) -> None:
    """주문 이벤트를 소비하는 구독 루프를 실행한다."""
    logger.info("order-consumer starting up")

    brokers = get_brokers()
    group_id = get_order_group_id()

    bus = KafkaEventBus(brokers)

    try:
        logger.info("subscribing to topic=%s group_id=%s", TOPIC_ORDER.base, group_id)
        bus.subscribe(
            group_id=group_id,
            topic=TOPIC_ORDER,
            handler=lambda evt: handle_order_event(evt, fulfillment=fulfillment),
            stop_flag=stop_flag,
        )
    finally:
        bus.close()
        logger.info("order-consumer stopped")

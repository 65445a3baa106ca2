from __future__ import annotations

import os


KAFKA_BOOTSTRAP_SERVERS_ENV = "KAFKA_BOOTSTRAP_SERVERS"
KAFKA_GROUP_ID_ENV = "KAFKA_GROUP_ID"
KAFKA_MESSAGE_MAX_BYTES_ENV = "KAFKA_MESSAGE_MAX_BYTES"

ORDER_GROUP_SUFFIX = "-order"


def get_brokers() -> str:
    value = os.getenv(KAFKA_BOOTSTRAP_SERVERS_ENV)
    if not value:
        raise RuntimeError(f"{KAFKA_BOOTSTRAP_SERVERS_ENV} environment variable is required")
    return value


def get_group_id() -> str:
    value = os.getenv(KAFKA_GROUP_ID_ENV)
    if not value:
        raise RuntimeError(f"{KAFKA_GROUP_ID_ENV} environment variable is required")
    return value


def get_order_group_id() -> str:
    """주문 이벤트 컨슈머 그룹 id. 서비스 그룹 id 에 -order 를 붙인다."""
    return get_group_id() + ORDER_GROUP_SUFFIX


def get_message_max_bytes() -> int | None:
    """producer 의 message.max.bytes. 비어 있거나 0 이하이면 라이브러리 기본값(None).

    정수가 아닌 값은 설정 실수이므로 RuntimeError 를 던진다.
    """

    raw_value = os.getenv(KAFKA_MESSAGE_MAX_BYTES_ENV, "").strip()
    if not raw_value:
        return None

    try:
        value = int(raw_value)
    except ValueError as exc:  # noqa: TRY003
        raise RuntimeError(
            f"{KAFKA_MESSAGE_MAX_BYTES_ENV} must be an integer value, got: {raw_value!r}"
        ) from exc

    return value if value > 0 else None

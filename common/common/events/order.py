"""주문 확정/환불 이벤트 정의.

결제 webhook 검증이 끝난 주문 서비스가 발행하고, 원장 서비스가 소비해
크레딧/패키지 효과를 정확히 한 번 반영한다. order_ref 가 멱등성 키다.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class OrderEventType:
    """주문 이벤트 타입 상수."""

    ORDER_PAID = "order.paid"
    ORDER_REFUNDED = "order.refunded"


class OrderType:
    """주문이 부여하는 효과의 종류."""

    CREDITS = "credits"
    PACKAGE = "package"


@dataclass(slots=True)
class OrderPaidEvent:
    """결제가 확정된 주문.

    - order_type=credits 이면 credits 만큼 독립 크레딧을 부여한다.
    - order_type=package 이면 package_id 패키지를 구매(또는 renew=True 면 연장)한다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    order_ref: str
    user_id: str
    order_type: str
    credits: int
    package_id: str | None
    renew: bool
    renew_months: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        package_id = data.get("package_id")
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            order_ref=str(data["order_ref"]),
            user_id=str(data["user_id"]),
            order_type=str(data["order_type"]),
            credits=int(data.get("credits") or 0),
            package_id=str(package_id) if package_id else None,
            renew=bool(data.get("renew", False)),
            renew_months=int(data.get("renew_months") or 1),
        )


@dataclass(slots=True)
class OrderRefundedEvent:
    """환불된 주문. bucket 에 해당하는 풀에서 amount 를 회수한다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    order_ref: str
    user_id: str
    bucket: str
    amount: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            order_ref=str(data["order_ref"]),
            user_id=str(data["user_id"]),
            bucket=str(data["bucket"]),
            amount=int(data["amount"]),
        )

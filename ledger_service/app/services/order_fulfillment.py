"""결제 확정/환불 주문 이벤트를 원장 효과로 옮긴다.

결제 서명 검증은 주문 서비스가 끝낸 상태로 이벤트가 들어온다. 모든 효과는 order_ref 로
멱등하게 적용되므로 같은 이벤트가 재전달돼도 한 번만 반영된다.
"""

from __future__ import annotations

import logging
from datetime import datetime

from common.events.order import OrderPaidEvent, OrderRefundedEvent, OrderType

from ..errors import ErrorCode
from ..models.credit import CreditBucket
from ..models.results import GrantResult, PackageResult
from .credit_usage_service import CreditUsageService
from .package_lifecycle import PackageLifecycleManager


logger = logging.getLogger(__name__)


class OrderFulfillmentService:
    def __init__(
        self,
        credit_usage: CreditUsageService,
        lifecycle: PackageLifecycleManager,
    ) -> None:
        self._credit_usage = credit_usage
        self._lifecycle = lifecycle

    def fulfill_paid(
        self, event: OrderPaidEvent, *, now: datetime
    ) -> GrantResult | PackageResult:
        if event.order_type == OrderType.CREDITS:
            return self._credit_usage.grant_independent_credits(
                event.user_id,
                event.credits,
                now=now,
                order_ref=event.order_ref,
                reason="credit purchase",
                meta={"source": "order", "event_id": event.id},
            )

        if event.order_type == OrderType.PACKAGE:
            if not event.package_id:
                return PackageResult.fail(ErrorCode.INVALID_PARAMS)
            return self._lifecycle.purchase_package(
                event.user_id,
                event.package_id,
                event.order_ref,
                now=now,
                renew=event.renew,
                renew_months=event.renew_months,
            )

        logger.warning(
            "unsupported order_type=%s order_ref=%s",
            event.order_type,
            event.order_ref,
            extra={"order_ref": event.order_ref},
        )
        return GrantResult.fail(ErrorCode.INVALID_PARAMS)

    def fulfill_refunded(self, event: OrderRefundedEvent, *, now: datetime) -> GrantResult:
        try:
            bucket = CreditBucket(event.bucket)
        except ValueError:
            return GrantResult.fail(ErrorCode.INVALID_PARAMS)

        return self._credit_usage.refund_credits(
            event.user_id,
            event.amount,
            now=now,
            order_ref=event.order_ref,
            bucket=bucket,
        )

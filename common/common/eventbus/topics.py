from __future__ import annotations

from .core import Topic


# 결제 확정/환불 주문 이벤트 (주문 서비스 -> 원장 서비스)
# retry 토픽: credit-ledger.order.retry.{1..5}, DLQ: credit-ledger.order.dlq
TOPIC_ORDER = Topic("credit-ledger.order")

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


# 재시도 단계별 지연(초). 길이가 곧 최대 재시도 횟수다.
# 원장 컨슈머의 재시도 사유는 대부분 지갑 버전 충돌이라 짧게 시작해서 늘린다.
RetryDelays: list[float] = [
    1.0,
    5.0,
    30.0,
    120.0,
    600.0,
]


class MaxRetryExceededError(Exception):
    """최대 재시도 횟수를 초과한 경우 사용되는 예외."""


@dataclass(slots=True)
class Event:
    """Kafka 메시지 봉투.

    payload 는 JSON 으로 직렬화되는 dict 이다. retry 토픽으로 재발행된 이벤트는
    not_before(epoch seconds) 이전에는 처리하지 않는다.
    """

    id: str
    payload: Any
    retry: int = 0
    max_retry: int = 0
    last_error: str | None = None
    not_before: float | None = None

    def __post_init__(self) -> None:
        if self.max_retry <= 0 or self.max_retry > len(RetryDelays):
            self.max_retry = len(RetryDelays)

    def is_due(self, now: float) -> bool:
        return self.not_before is None or self.not_before <= now


@dataclass(frozen=True, slots=True)
class Topic:
    base: str

    def dlq(self) -> str:
        return f"{self.base}.dlq"

    def get_retry_topics(self) -> list[str]:
        return [
            f"{self.base}.retry.{index}" for index in range(1, len(RetryDelays) + 1)
        ]

    def get_retry_topic(self, retry_count: int) -> str:
        if retry_count <= 0 or retry_count > len(RetryDelays):
            raise MaxRetryExceededError()
        return f"{self.base}.retry.{retry_count}"

    def subscription(self) -> list[str]:
        """컨슈머가 구독할 토픽 목록. 재시도 이벤트도 같은 핸들러가 처리한다."""
        return [self.base, *self.get_retry_topics()]

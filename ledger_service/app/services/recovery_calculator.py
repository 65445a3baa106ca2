from __future__ import annotations

from datetime import datetime
from fractions import Fraction

from common.types.datetime import to_utc

from ..models.package import PackageConfig


MICROS_PER_HOUR = 3_600 * 1_000_000


def elapsed_microseconds(start: datetime, end: datetime) -> int:
    delta = to_utc(end) - to_utc(start)
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def hours_between(start: datetime, end: datetime) -> float:
    return elapsed_microseconds(start, end) / MICROS_PER_HOUR


def exact_rate(rate: float) -> Fraction:
    # 62.5 같은 설정값을 이진 부동소수 오차 없이 분수로 다룬다.
    return Fraction(str(rate))


def calculate_recoverable_credits(
    last_recovery_at: datetime,
    current_balance: int,
    config: PackageConfig,
    now: datetime,
) -> int:
    """last_recovery_at 이후 회복 가능한 패키지 크레딧 양을 계산한다.

    - 경과 시간이 0 이하이면 0.
    - floor(경과 시간(h) * recovery_rate) 를 정수 마이크로초와 분수 연산으로 정확히 구한다.
    - 이미 상한 이상이면 0, 상한을 넘으면 상한까지만 채운다.
    """

    elapsed = elapsed_microseconds(last_recovery_at, now)
    if elapsed <= 0:
        return 0

    if current_balance >= config.credit_cap:
        return 0

    rate = exact_rate(config.recovery_rate)
    raw = (elapsed * rate.numerator) // (MICROS_PER_HOUR * rate.denominator)
    if raw <= 0:
        return 0

    return min(raw, config.credit_cap - current_balance)

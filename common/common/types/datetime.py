from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """현재 UTC 시각. 스케줄러/컨슈머 같은 진입점에서만 호출한다."""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """naive datetime 은 UTC 로 간주하고, aware datetime 은 UTC 로 변환한다."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_same_utc_date(a: datetime | None, b: datetime | None) -> bool:
    """두 시각이 같은 UTC 달력 날짜인지 비교한다.

    연/월/일만 비교하므로 23:59 와 다음날 00:01 은 서로 다른 날이다.
    """
    if a is None or b is None:
        return False
    return to_utc(a).date() == to_utc(b).date()

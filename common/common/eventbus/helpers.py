from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Mapping

from .core import Event


def event_to_dict(event: Event) -> dict[str, Any]:
    return asdict(event)


def encode_event(event: Event) -> bytes:
    return json.dumps(event_to_dict(event), ensure_ascii=False).encode("utf-8")


def decode_event(raw: Mapping[str, Any]) -> Event:
    """Kafka 메시지 JSON 을 Event 로 복원한다. 없는 필드는 기본값을 쓴다."""
    not_before = raw.get("not_before")
    return Event(
        id=str(raw.get("id", "")),
        payload=raw.get("payload"),
        retry=int(raw.get("retry", 0)),
        max_retry=int(raw.get("max_retry", 0)),
        last_error=raw.get("last_error"),
        not_before=float(not_before) if not_before is not None else None,
    )

"""지갑 도메인 모델.

유저당 하나의 잔액 레코드. 패키지 풀(구독, 회복/상한 있음)과 독립 풀(구매, 만료 없음)로
나뉘며, 모든 쓰기는 (user_id, version) 조건부 업데이트 한 번으로만 이루어진다.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Wallet(BaseModel):
    """유저 지갑 도메인 모델."""

    id: str | None = None
    user_id: str
    package_daily_quota_tokens: int = Field(default=0, ge=0)  # 활성 패키지 상한 스냅샷
    package_tokens_remaining: int = Field(default=0, ge=0)
    independent_tokens: int = Field(default=0, ge=0)
    locked_tokens: int = Field(default=0, ge=0)
    last_recovery_at: datetime | None = None
    package_reset_at: datetime | None = None
    manual_reset_at: datetime | None = None
    manual_reset_count: int = Field(default=0, ge=0)
    daily_usage_count: int = Field(default=0, ge=0)  # 패키지 풀 사용량 (UTC 일 단위)
    daily_usage_reset_at: datetime | None = None
    version: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime

    @property
    def total_available(self) -> int:
        return self.package_tokens_remaining + self.independent_tokens

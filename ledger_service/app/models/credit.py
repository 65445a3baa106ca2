"""크레딧 원장(트랜잭션 로그) 도메인 모델.

append-only 감사 기록. 한 행은 정확히 하나의 풀(bucket)만 다루며,
다루지 않는 풀의 before/after 쌍은 None 이다.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class TransactionType(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"
    RESET = "reset"


class CreditBucket(StrEnum):
    PACKAGE = "package"
    INDEPENDENT = "independent"


class CreditTransaction(BaseModel):
    """크레딧 트랜잭션 로그 도메인 모델."""

    id: str | None = None
    user_id: str
    type: TransactionType
    bucket: CreditBucket
    tokens: int  # 해당 풀의 부호 있는 변화량
    before_package_tokens: int | None = None
    after_package_tokens: int | None = None
    before_independent_tokens: int | None = None
    after_independent_tokens: int | None = None
    order_ref: str | None = None  # 멱등성/출처 키 (주문, 코드 등)
    request_id: str | None = None  # charge 멱등성 키
    reason: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_snapshot(self) -> "CreditTransaction":
        if self.bucket == CreditBucket.PACKAGE:
            touched = (self.before_package_tokens, self.after_package_tokens)
            other = (self.before_independent_tokens, self.after_independent_tokens)
        else:
            touched = (self.before_independent_tokens, self.after_independent_tokens)
            other = (self.before_package_tokens, self.after_package_tokens)

        before, after = touched
        if before is None or after is None:
            raise ValueError(f"{self.bucket} bucket requires before/after snapshot")
        if other != (None, None):
            raise ValueError("untouched bucket snapshot must be null")
        if after != before + self.tokens:
            raise ValueError(
                f"ledger mismatch: before={before} tokens={self.tokens} after={after}"
            )
        if after < 0:
            raise ValueError("ledger after balance must not be negative")
        return self

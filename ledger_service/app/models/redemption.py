from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel


class CodeStatus(StrEnum):
    ACTIVE = "active"
    USED = "used"
    CANCELLED = "cancelled"  # 관리자 프로세스가 설정


class CodeType(StrEnum):
    CREDITS = "credits"
    PLAN = "plan"


class RedemptionCode(BaseModel):
    """1회용 교환 코드 도메인 모델.

    code_value 는 credits 코드면 지급할 크레딧 수, plan 코드면 대상 플랜 타입이다.
    """

    id: str | None = None
    code: str
    status: CodeStatus = CodeStatus.ACTIVE
    code_type: CodeType
    code_value: str
    valid_days: int | None = None
    expires_at: datetime | None = None
    used_at: datetime | None = None
    used_by: str | None = None
    created_at: datetime
    updated_at: datetime

"""패키지(구독 플랜) 도메인 모델.

- Package: 판매 카탈로그 항목. 이후 수정될 수 있다.
- PackageSnapshot: 할당 시점의 카탈로그 조건을 얼린 사본.
- UserPackage: 유저에게 할당된 패키지. 유저당 활성 행은 최대 1개.
- PackageConfig: 스냅샷 -> 카탈로그 -> 기본값 순으로 해석된 운영 파라미터.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PlanType(StrEnum):
    NONE = "none"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @property
    def level(self) -> int:
        return _PLAN_LEVELS[self]

    @classmethod
    def from_str(cls, value: str | None) -> "PlanType":
        """카탈로그 별칭(plus, professional, max)까지 받아 PlanType 으로 변환한다.

        알 수 없는 값은 NONE 으로 취급한다.
        """

        key = (value or "").strip().lower()
        key = _PLAN_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return cls.NONE


_PLAN_LEVELS: dict[PlanType, int] = {
    PlanType.NONE: 0,
    PlanType.BASIC: 1,
    PlanType.PRO: 2,
    PlanType.ENTERPRISE: 3,
}

_PLAN_ALIASES: dict[str, str] = {
    "plus": "basic",
    "professional": "pro",
    "max": "enterprise",
}


class PackageFeatures(BaseModel):
    """패키지 features 블록. 설정되지 않은 항목은 None 으로 남겨 하위 티어로 넘긴다."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    credit_cap: int | None = Field(
        default=None, validation_alias=AliasChoices("credit_cap", "creditCap")
    )
    recovery_rate: float | None = Field(
        default=None, validation_alias=AliasChoices("recovery_rate", "recoveryRate")
    )
    daily_usage_limit: int | None = Field(
        default=None,
        validation_alias=AliasChoices("daily_usage_limit", "dailyUsageLimit"),
    )
    manual_reset_per_day: int | None = Field(
        default=None,
        validation_alias=AliasChoices("manual_reset_per_day", "manualResetPerDay"),
    )


class Package(BaseModel):
    """패키지 카탈로그 도메인 모델."""

    id: str | None = None
    name: str
    version: str = "1"
    plan_type: PlanType = PlanType.NONE
    daily_points: int = Field(default=0, ge=0)
    valid_days: int = Field(default=30, gt=0)
    price_cents: int = Field(default=0, ge=0)
    features: PackageFeatures = Field(default_factory=PackageFeatures)
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class PackageSnapshot(BaseModel):
    """할당 시점에 고정된 패키지 조건."""

    package_id: str
    name: str
    version: str
    plan_type: PlanType
    daily_points: int
    valid_days: int
    price_cents: int
    features: PackageFeatures = Field(default_factory=PackageFeatures)

    @classmethod
    def from_package(cls, package: Package) -> "PackageSnapshot":
        return cls(
            package_id=package.id or "",
            name=package.name,
            version=package.version,
            plan_type=package.plan_type,
            daily_points=package.daily_points,
            valid_days=package.valid_days,
            price_cents=package.price_cents,
            features=package.features.model_copy(),
        )


class UserPackage(BaseModel):
    """유저에게 할당된 패키지 도메인 모델."""

    id: str | None = None
    user_id: str
    package_id: str
    order_ref: str | None = None
    start_at: datetime
    end_at: datetime
    daily_points: int = Field(default=0, ge=0)
    is_active: bool = True
    package_snapshot: PackageSnapshot | None = None
    renewal_order_refs: list[str] = Field(default_factory=list)  # 연장에 쓰인 주문 키
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True, slots=True)
class PackageConfig:
    credit_cap: int
    recovery_rate: float  # credits / hour, 소수 허용
    daily_usage_limit: int
    manual_reset_per_day: int

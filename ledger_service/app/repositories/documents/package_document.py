from __future__ import annotations

from typing import Any

from pydantic import Field

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.package import (
    Package,
    PackageFeatures,
    PackageSnapshot,
    PlanType,
    UserPackage,
)


class PackageDocument(BaseDocument):
    """MongoDB packages 컬렉션 도큐먼트 모델 (카탈로그)."""

    name: str
    version: str = "1"
    plan_type: str = PlanType.NONE.value
    daily_points: int = 0
    valid_days: int = 30
    price_cents: int = 0
    features: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True

    @classmethod
    def from_domain(cls, package: Package) -> "PackageDocument":
        data = build_document_data_from_domain(package)
        return cls.model_validate(data)

    def to_domain(self) -> Package:
        return Package(
            id=from_object_id(self.id),
            name=self.name,
            version=self.version,
            plan_type=PlanType.from_str(self.plan_type),
            daily_points=self.daily_points,
            valid_days=self.valid_days,
            price_cents=self.price_cents,
            features=PackageFeatures.model_validate(self.features or {}),
            is_active=self.is_active,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class UserPackageDocument(BaseDocument):
    """MongoDB user_packages 컬렉션 도큐먼트 모델.

    package_snapshot 은 할당 시점의 카탈로그 조건을 그대로 보관한다.
    """

    user_id: str
    package_id: str
    order_ref: str | None = None
    start_at: MongoDateTime
    end_at: MongoDateTime
    daily_points: int = 0
    is_active: bool = True
    package_snapshot: dict[str, Any] | None = None
    renewal_order_refs: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, user_package: UserPackage) -> "UserPackageDocument":
        data = build_document_data_from_domain(user_package)
        return cls.model_validate(data)

    def to_domain(self) -> UserPackage:
        snapshot = None
        if self.package_snapshot:
            raw = dict(self.package_snapshot)
            raw["plan_type"] = PlanType.from_str(raw.get("plan_type"))
            snapshot = PackageSnapshot.model_validate(raw)

        return UserPackage(
            id=from_object_id(self.id),
            user_id=self.user_id,
            package_id=self.package_id,
            order_ref=self.order_ref,
            start_at=self.start_at,
            end_at=self.end_at,
            daily_points=self.daily_points,
            is_active=self.is_active,
            package_snapshot=snapshot,
            renewal_order_refs=list(self.renewal_order_refs),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

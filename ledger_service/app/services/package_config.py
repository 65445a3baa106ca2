"""패키지 운영 파라미터(PackageConfig) 해석.

항목별로 스냅샷 features -> 카탈로그 features -> 기본값 순서로 첫 번째로 설정된 값을 쓴다.
credit_cap 은 어느 티어에도 없으면 유저 패키지의 daily_points 를 상한으로 쓴다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from ..config import PackageDefaults
from ..models.package import (
    Package,
    PackageConfig,
    PackageFeatures,
    PlanType,
    UserPackage,
)
from ..repositories.interfaces import (
    PackageRepositoryInterface,
    Session,
    UserPackageRepositoryInterface,
)


logger = logging.getLogger(__name__)


def resolve_package_config(
    user_package: UserPackage,
    catalog_package: Package | None,
    defaults: PackageDefaults,
) -> PackageConfig:
    tiers: list[PackageFeatures] = []
    if user_package.package_snapshot is not None:
        tiers.append(user_package.package_snapshot.features)
    if catalog_package is not None:
        tiers.append(catalog_package.features)

    def pick(name: str, fallback: Any, cast: Callable[[Any], Any] = int) -> Any:
        for features in tiers:
            value = getattr(features, name)
            if value is not None:
                return cast(value)
        return fallback

    cap_fallback = (
        defaults.credit_cap
        if defaults.credit_cap is not None
        else user_package.daily_points
    )

    return PackageConfig(
        credit_cap=pick("credit_cap", cap_fallback),
        recovery_rate=pick("recovery_rate", defaults.recovery_rate, float),
        daily_usage_limit=pick("daily_usage_limit", defaults.daily_usage_limit),
        manual_reset_per_day=pick("manual_reset_per_day", defaults.manual_reset_per_day),
    )


@dataclass(slots=True)
class ActivePackage:
    user_package: UserPackage
    catalog_package: Package | None
    config: PackageConfig

    @property
    def plan_type(self) -> PlanType:
        snapshot = self.user_package.package_snapshot
        if snapshot is not None and snapshot.plan_type != PlanType.NONE:
            return snapshot.plan_type
        if self.catalog_package is not None:
            return self.catalog_package.plan_type
        return PlanType.NONE


class ActivePackageResolver:
    """유저의 활성 패키지와 해석된 PackageConfig 를 함께 돌려준다."""

    def __init__(
        self,
        user_package_repo: UserPackageRepositoryInterface,
        package_repo: PackageRepositoryInterface,
        defaults: PackageDefaults,
    ) -> None:
        self._user_package_repo = user_package_repo
        self._package_repo = package_repo
        self._defaults = defaults

    def resolve(
        self, user_id: str, now: datetime, *, session: Session | None = None
    ) -> ActivePackage | None:
        user_package = self._user_package_repo.find_active(
            user_id, now, session=session
        )
        if user_package is None:
            return None

        catalog_package = self._package_repo.find_by_id(
            user_package.package_id, session=session
        )
        if catalog_package is None:
            logger.debug(
                "catalog package missing for user package id=%s package_id=%s",
                user_package.id,
                user_package.package_id,
            )

        config = resolve_package_config(user_package, catalog_package, self._defaults)
        return ActivePackage(
            user_package=user_package,
            catalog_package=catalog_package,
            config=config,
        )

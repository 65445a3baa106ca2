"""유저 패키지 생성/업그레이드/연장과 패키지 크레딧 리셋.

플랜 레벨(none < basic < pro < enterprise)을 비교해 전환을 결정한다.
- 활성 패키지 없음: CREATE (새 할당 + 크레딧 리셋)
- 상위 플랜: UPGRADE (기존 할당 비활성화 후 새 할당 + 크레딧 리셋, 남은 크레딧은 이월하지 않음)
- 같은 플랜: RENEW (현재 end_at 에서 연장, 크레딧은 그대로)
- 하위 플랜: DOWNGRADE (거절, 아무것도 바꾸지 않음)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import StrEnum

from common.types.datetime import to_utc

from ..errors import ErrorCode, LedgerError
from ..models.credit import CreditBucket, TransactionType
from ..models.package import Package, PackageSnapshot, PlanType, UserPackage
from ..models.results import GrantResult, PackageResult
from ..repositories.interfaces import (
    PackageRepositoryInterface,
    Session,
    UnitOfWorkInterface,
    UserPackageRepositoryInterface,
)
from .credit_usage_service import balance_of
from .ledger_recorder import LedgerRecorder
from .package_config import ActivePackageResolver
from .wallet_store import WalletStore


logger = logging.getLogger(__name__)


class PlanTransition(StrEnum):
    CREATE = "create"
    UPGRADE = "upgrade"
    RENEW = "renew"
    DOWNGRADE = "downgrade"


def decide_transition(
    current_level: int, target_level: int, *, has_current: bool
) -> PlanTransition:
    if not has_current:
        return PlanTransition.CREATE
    if target_level > current_level:
        return PlanTransition.UPGRADE
    if target_level < current_level:
        return PlanTransition.DOWNGRADE
    return PlanTransition.RENEW


class PackageLifecycleManager:
    def __init__(
        self,
        uow: UnitOfWorkInterface,
        wallet_store: WalletStore,
        recorder: LedgerRecorder,
        package_repo: PackageRepositoryInterface,
        user_package_repo: UserPackageRepositoryInterface,
        package_resolver: ActivePackageResolver,
    ) -> None:
        self._uow = uow
        self._wallet_store = wallet_store
        self._recorder = recorder
        self._package_repo = package_repo
        self._user_package_repo = user_package_repo
        self._package_resolver = package_resolver

    # 할당 -----------------------------------------------------------------
    def create_user_package(
        self,
        user_id: str,
        package: Package,
        *,
        valid_days: int,
        order_ref: str | None,
        now: datetime,
        session: Session | None = None,
    ) -> UserPackage:
        """기존 활성 할당을 비활성화하고 새 활성 할당을 만든다. 지갑은 건드리지 않는다."""
        now = to_utc(now)
        with self._uow.transaction(session) as tx_session:
            deactivated = self._user_package_repo.deactivate_active(
                user_id, now=now, session=tx_session
            )
            user_package = self._user_package_repo.insert(
                UserPackage(
                    user_id=user_id,
                    package_id=package.id or "",
                    order_ref=order_ref,
                    start_at=now,
                    end_at=now + timedelta(days=valid_days),
                    daily_points=package.daily_points,
                    is_active=True,
                    package_snapshot=PackageSnapshot.from_package(package),
                    created_at=now,
                    updated_at=now,
                ),
                session=tx_session,
            )

        logger.info(
            "user package created user_id=%s package_id=%s deactivated=%d",
            user_id,
            package.id,
            deactivated,
            extra={"user_id": user_id, "order_ref": order_ref},
        )
        return user_package

    def renew_user_package(
        self,
        current: UserPackage,
        *,
        valid_days: int,
        order_ref: str | None,
        now: datetime,
        session: Session | None = None,
    ) -> UserPackage:
        """현재 end_at 을 기준으로 valid_days 만큼 연장한다. 지갑은 건드리지 않는다."""
        if current.id is None:
            raise LedgerError(ErrorCode.NOT_FOUND, "user package has no id")

        with self._uow.transaction(session) as tx_session:
            renewed = self._user_package_repo.update_end_at(
                current.id,
                current.end_at + timedelta(days=valid_days),
                now=now,
                order_ref=order_ref,
                session=tx_session,
            )
        if renewed is None:
            raise LedgerError(ErrorCode.NOT_FOUND, f"user package {current.id} not active")

        logger.info(
            "user package renewed user_id=%s end_at=%s",
            current.user_id,
            renewed.end_at.isoformat(),
            extra={"user_id": current.user_id, "order_ref": order_ref},
        )
        return renewed

    # 지갑 -----------------------------------------------------------------
    def reset_package_credits_for_new_package(
        self,
        user_id: str,
        daily_points: int,
        order_ref: str | None,
        *,
        now: datetime,
        session: Session | None = None,
    ) -> GrantResult:
        """새 패키지 기준으로 패키지 풀을 daily_points 로 맞춘다.

        create/upgrade 와 항상 함께 호출되고 renew 에서는 호출되지 않는다.
        회복 시계도 now 로 맞춰 이전 패키지 기준의 회복이 붙지 않게 한다.
        """
        now = to_utc(now)
        if not user_id or daily_points < 0:
            return GrantResult.fail(ErrorCode.INVALID_PARAMS)

        try:
            with self._uow.transaction(session) as tx_session:
                change = self._wallet_store.apply_delta(
                    user_id,
                    lambda wallet: {
                        "package_tokens_remaining": daily_points,
                        "package_daily_quota_tokens": daily_points,
                        "package_reset_at": now,
                        "last_recovery_at": now,
                    },
                    now=now,
                    session=tx_session,
                )
                self._recorder.record(
                    user_id=user_id,
                    tx_type=TransactionType.RESET,
                    bucket=CreditBucket.PACKAGE,
                    before=change.before.package_tokens_remaining,
                    after=change.after.package_tokens_remaining,
                    now=now,
                    order_ref=order_ref,
                    reason="package reset",
                    meta={"source": "package_reset", "daily_points": daily_points},
                    session=tx_session,
                )
        except LedgerError as exc:
            logger.warning(
                "package credit reset failed user_id=%s order_ref=%s error=%s",
                user_id,
                order_ref,
                exc.code,
                extra={"user_id": user_id, "order_ref": order_ref, "error_code": str(exc.code)},
            )
            return GrantResult.fail(exc.code)

        return GrantResult(
            success=True,
            amount=daily_points,
            balance=balance_of(change.after),
        )

    # 전환 -----------------------------------------------------------------
    def apply_plan(
        self,
        user_id: str,
        target: Package,
        *,
        valid_days: int,
        order_ref: str | None,
        now: datetime,
        session: Session | None = None,
    ) -> PlanTransition:
        """현재 활성 패키지와 target 의 플랜 레벨을 비교해 전환을 실행한다.

        DOWNGRADE 는 아무것도 바꾸지 않고 그대로 반환한다. 그 외 실패는 LedgerError 로 던진다.
        """
        now = to_utc(now)
        with self._uow.transaction(session) as tx_session:
            active = self._package_resolver.resolve(user_id, now, session=tx_session)
            current_level = active.plan_type.level if active else 0
            transition = decide_transition(
                current_level, target.plan_type.level, has_current=active is not None
            )

            if transition == PlanTransition.DOWNGRADE:
                return transition

            if transition == PlanTransition.RENEW:
                assert active is not None
                self.renew_user_package(
                    active.user_package,
                    valid_days=valid_days,
                    order_ref=order_ref,
                    now=now,
                    session=tx_session,
                )
                return transition

            self.create_user_package(
                user_id,
                target,
                valid_days=valid_days,
                order_ref=order_ref,
                now=now,
                session=tx_session,
            )
            reset = self.reset_package_credits_for_new_package(
                user_id, target.daily_points, order_ref, now=now, session=tx_session
            )
            if not reset.success:
                raise LedgerError(reset.error or ErrorCode.CONFLICT)

        logger.info(
            "plan %s applied user_id=%s plan=%s",
            transition,
            user_id,
            target.plan_type,
            extra={"user_id": user_id, "order_ref": order_ref},
        )
        return transition

    # 주문 -----------------------------------------------------------------
    def purchase_package(
        self,
        user_id: str,
        package_id: str,
        order_ref: str,
        *,
        now: datetime,
        renew: bool = False,
        renew_months: int = 1,
    ) -> PackageResult:
        """결제 확정된 패키지 주문을 반영한다. order_ref 기준으로 한 번만 적용된다.

        - renew=True: 같은 패키지의 활성 할당을 valid_days * renew_months 만큼 연장한다.
          활성 할당이 없거나 다른 패키지면 새로 할당한다.
        - renew=False: 새로 할당하고 패키지 크레딧을 리셋한다.
        """
        now = to_utc(now)
        if not user_id or not package_id or not order_ref or renew_months <= 0:
            return PackageResult.fail(ErrorCode.INVALID_PARAMS)

        try:
            with self._uow.transaction() as session:
                existing = self._user_package_repo.find_by_order_ref(
                    order_ref, session=session
                )
                if existing is not None:
                    return PackageResult(
                        success=True,
                        user_package_id=existing.id,
                        duplicate=True,
                    )

                package = self._package_repo.find_by_id(package_id, session=session)
                if package is None:
                    return PackageResult.fail(ErrorCode.PACKAGE_NOT_FOUND)

                if renew:
                    active = self._package_resolver.resolve(user_id, now, session=session)
                    if active is not None and active.user_package.package_id == package.id:
                        renewed = self.renew_user_package(
                            active.user_package,
                            valid_days=package.valid_days * renew_months,
                            order_ref=order_ref,
                            now=now,
                            session=session,
                        )
                        return PackageResult(
                            success=True,
                            user_package_id=renewed.id,
                            transition=PlanTransition.RENEW.value,
                        )

                user_package = self.create_user_package(
                    user_id,
                    package,
                    valid_days=package.valid_days * (renew_months if renew else 1),
                    order_ref=order_ref,
                    now=now,
                    session=session,
                )
                reset = self.reset_package_credits_for_new_package(
                    user_id, package.daily_points, order_ref, now=now, session=session
                )
                if not reset.success:
                    raise LedgerError(reset.error or ErrorCode.CONFLICT)
        except LedgerError as exc:
            logger.warning(
                "package purchase failed user_id=%s order_ref=%s error=%s",
                user_id,
                order_ref,
                exc.code,
                extra={"user_id": user_id, "order_ref": order_ref, "error_code": str(exc.code)},
            )
            return PackageResult.fail(exc.code)

        return PackageResult(
            success=True,
            user_package_id=user_package.id,
            transition=PlanTransition.CREATE.value,
        )

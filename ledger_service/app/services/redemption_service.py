"""1회용 교환 코드 처리.

조회 -> 상태/만료 확인 -> 조건부 claim -> 코드 타입별 효과 적용을 하나의 트랜잭션으로 묶는다.
claim 이후 실패하면 claim 까지 함께 롤백된다. 단, 하위 플랜으로의 교환은 코드를 소진한 채
거절한다 (claim 은 커밋되고 패키지/지갑은 그대로).
"""

from __future__ import annotations

import logging
from datetime import datetime

from common.types.datetime import to_utc

from ..errors import ErrorCode, LedgerError
from ..models.package import PlanType
from ..models.redemption import CodeStatus, CodeType, RedemptionCode
from ..models.results import RedeemResult
from ..repositories.interfaces import (
    PackageRepositoryInterface,
    RedemptionCodeRepositoryInterface,
    Session,
    UnitOfWorkInterface,
)
from .credit_usage_service import CreditUsageService
from .package_lifecycle import PackageLifecycleManager, PlanTransition


logger = logging.getLogger(__name__)

_TRANSITION_MESSAGES: dict[PlanTransition, str] = {
    PlanTransition.CREATE: "Plan activated",
    PlanTransition.UPGRADE: "Plan upgraded",
    PlanTransition.RENEW: "Plan renewed",
}


def normalize_code(raw_code: str | None) -> str:
    return (raw_code or "").strip().upper()


def parse_credit_amount(code_value: str) -> int:
    try:
        amount = int(str(code_value).strip())
    except (TypeError, ValueError) as exc:
        raise LedgerError(ErrorCode.INVALID_CODE_VALUE) from exc
    if amount <= 0:
        raise LedgerError(ErrorCode.INVALID_CODE_VALUE)
    return amount


class RedemptionService:
    def __init__(
        self,
        uow: UnitOfWorkInterface,
        code_repo: RedemptionCodeRepositoryInterface,
        package_repo: PackageRepositoryInterface,
        credit_usage: CreditUsageService,
        lifecycle: PackageLifecycleManager,
    ) -> None:
        self._uow = uow
        self._code_repo = code_repo
        self._package_repo = package_repo
        self._credit_usage = credit_usage
        self._lifecycle = lifecycle

    def redeem(self, user_id: str, raw_code: str | None, *, now: datetime) -> RedeemResult:
        now = to_utc(now)
        code = normalize_code(raw_code)
        if not user_id or not code:
            return RedeemResult.fail(ErrorCode.INVALID_PARAMS)

        try:
            with self._uow.transaction() as session:
                row = self._code_repo.find_by_code(code, session=session)
                if row is None:
                    return RedeemResult.fail(ErrorCode.CODE_NOT_FOUND)
                if row.status == CodeStatus.USED:
                    return RedeemResult.fail(ErrorCode.CODE_ALREADY_USED)
                if row.status != CodeStatus.ACTIVE:
                    return RedeemResult.fail(ErrorCode.CODE_NOT_ACTIVE)
                if row.expires_at is not None and to_utc(row.expires_at) < now:
                    return RedeemResult.fail(ErrorCode.CODE_EXPIRED)

                # 이중 사용 방지: 효과 적용 전에 먼저 코드를 가져온다.
                if not self._code_repo.claim(code, user_id, now=now, session=session):
                    raise LedgerError(ErrorCode.CODE_ALREADY_USED)

                if row.code_type == CodeType.CREDITS:
                    result = self._redeem_credits(user_id, row, now=now, session=session)
                else:
                    result = self._redeem_plan(user_id, row, now=now, session=session)
        except LedgerError as exc:
            # 동시 claim 에서 진 경우 트랜잭션 자체가 충돌로 끝날 수 있다.
            code_error = (
                ErrorCode.CODE_ALREADY_USED if exc.code == ErrorCode.CONFLICT else exc.code
            )
            logger.info(
                "redemption rejected user_id=%s code=%s error=%s",
                user_id,
                code,
                code_error,
                extra={"user_id": user_id, "error_code": str(code_error)},
            )
            return RedeemResult.fail(code_error)

        if result.success:
            logger.info(
                "code redeemed user_id=%s code=%s message=%s",
                user_id,
                code,
                result.message,
                extra={"user_id": user_id},
            )
        return result

    def _redeem_credits(
        self, user_id: str, row: RedemptionCode, *, now: datetime, session: Session
    ) -> RedeemResult:
        amount = parse_credit_amount(row.code_value)
        granted = self._credit_usage.grant_independent_credits(
            user_id,
            amount,
            now=now,
            order_ref=f"redeem-{row.code}",
            reason="redemption code",
            meta={"source": "redemption", "code": row.code},
            session=session,
        )
        if not granted.success:
            raise LedgerError(ErrorCode.REDEEM_FAILED)
        return RedeemResult.ok("Credits added")

    def _redeem_plan(
        self, user_id: str, row: RedemptionCode, *, now: datetime, session: Session
    ) -> RedeemResult:
        target_plan = PlanType.from_str(row.code_value)
        target = (
            self._package_repo.find_active_by_plan_type(target_plan, session=session)
            if target_plan != PlanType.NONE
            else None
        )
        if target is None:
            raise LedgerError(ErrorCode.PLAN_NOT_FOUND)

        valid_days = row.valid_days if row.valid_days and row.valid_days > 0 else target.valid_days
        try:
            transition = self._lifecycle.apply_plan(
                user_id,
                target,
                valid_days=valid_days,
                order_ref=f"redeem-{row.code}",
                now=now,
                session=session,
            )
        except LedgerError as exc:
            raise LedgerError(ErrorCode.REDEEM_FAILED) from exc

        if transition == PlanTransition.DOWNGRADE:
            # claim 은 그대로 커밋된다. (하위 플랜 교환 시 코드 소진)
            return RedeemResult.fail(ErrorCode.DOWNGRADE_NOT_ALLOWED)
        return RedeemResult.ok(_TRANSITION_MESSAGES[transition])

"""패키지 크레딧 자동 회복 서비스.

스케줄러가 활성 패키지 보유 유저마다 tick 을 호출한다. 회복량 계산, 지갑 조건부 쓰기,
원장 기록은 하나의 트랜잭션이며, 충돌은 재시도하지 않고 다음 tick 에 맡긴다.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from common.types.datetime import to_utc

from ..errors import ErrorCode, LedgerError
from ..models.credit import CreditBucket, TransactionType
from ..models.results import RecoveryResult, RecoverySummary
from ..models.wallet import Wallet
from ..repositories.interfaces import (
    UnitOfWorkInterface,
    UserPackageRepositoryInterface,
)
from .ledger_recorder import LedgerRecorder
from .package_config import ActivePackageResolver
from .recovery_calculator import calculate_recoverable_credits, hours_between
from .wallet_store import WalletStore


logger = logging.getLogger(__name__)

RECOVERY_SOURCE = "auto_recovery"


def recovery_base(wallet: Wallet, now: datetime) -> datetime:
    """회복 경과 시간의 기준 시각. 한 번도 회복된 적 없으면 지갑의 마지막 변경 시각."""
    return wallet.last_recovery_at or wallet.updated_at or wallet.created_at or now


class RecoveryService:
    def __init__(
        self,
        uow: UnitOfWorkInterface,
        wallet_store: WalletStore,
        recorder: LedgerRecorder,
        package_resolver: ActivePackageResolver,
        user_package_repo: UserPackageRepositoryInterface,
    ) -> None:
        self._uow = uow
        self._wallet_store = wallet_store
        self._recorder = recorder
        self._package_resolver = package_resolver
        self._user_package_repo = user_package_repo

    def tick(self, user_id: str, *, now: datetime) -> RecoveryResult:
        """유저 한 명의 패키지 크레딧을 경과 시간만큼 회복한다.

        회복량이 0이면 지갑/원장에 아무것도 쓰지 않는다.
        """
        now = to_utc(now)
        if not user_id:
            return RecoveryResult.fail(ErrorCode.INVALID_PARAMS)

        try:
            with self._uow.transaction() as session:
                active = self._package_resolver.resolve(user_id, now, session=session)
                if active is None:
                    return RecoveryResult.fail(ErrorCode.NO_ACTIVE_PACKAGE)

                config = active.config
                computed: dict[str, Any] = {}

                def mutate(wallet: Wallet) -> dict[str, Any] | None:
                    base = recovery_base(wallet, now)
                    amount = calculate_recoverable_credits(
                        base, wallet.package_tokens_remaining, config, now
                    )
                    computed["base"] = base
                    if amount <= 0:
                        return None
                    return {
                        "package_tokens_remaining": wallet.package_tokens_remaining
                        + amount,
                        "last_recovery_at": now,
                    }

                change = self._wallet_store.apply_delta(
                    user_id, mutate, now=now, session=session
                )
                if not change.changed:
                    return RecoveryResult(
                        success=True,
                        recovered=0,
                        new_balance=change.after.package_tokens_remaining,
                    )

                base: datetime = computed["base"]
                self._recorder.record(
                    user_id=user_id,
                    tx_type=TransactionType.INCOME,
                    bucket=CreditBucket.PACKAGE,
                    before=change.before.package_tokens_remaining,
                    after=change.after.package_tokens_remaining,
                    now=now,
                    reason="auto recovery",
                    meta={
                        "source": RECOVERY_SOURCE,
                        "recovery_rate": config.recovery_rate,
                        "credit_cap": config.credit_cap,
                        "hours_passed": round(hours_between(base, now), 6),
                        "last_recovery_base": base.isoformat(),
                    },
                    session=session,
                )
        except LedgerError as exc:
            logger.warning(
                "auto recovery failed user_id=%s error=%s",
                user_id,
                exc.code,
                extra={"user_id": user_id, "error_code": str(exc.code)},
            )
            return RecoveryResult.fail(exc.code)

        recovered = (
            change.after.package_tokens_remaining
            - change.before.package_tokens_remaining
        )
        logger.info(
            "recovered %d package credits user_id=%s balance=%d",
            recovered,
            user_id,
            change.after.package_tokens_remaining,
            extra={"user_id": user_id, "version": change.after.version},
        )
        return RecoveryResult(
            success=True,
            recovered=recovered,
            new_balance=change.after.package_tokens_remaining,
        )

    def tick_all(self, *, now: datetime) -> RecoverySummary:
        """활성 패키지를 가진 모든 유저에 대해 tick 을 한 번씩 실행한다.

        유저별 실패는 격리된다. 충돌난 유저는 다음 주기에 다시 처리된다.
        """
        now = to_utc(now)
        summary = RecoverySummary()
        for user_id in self._user_package_repo.list_active_user_ids(now):
            summary.processed += 1
            try:
                result = self.tick(user_id, now=now)
            except Exception:  # noqa: BLE001
                logger.exception("auto recovery crashed user_id=%s", user_id)
                summary.errors.append(user_id)
                continue

            if not result.success:
                if result.error is not None:
                    summary.failures[user_id] = result.error
                continue
            if result.recovered > 0:
                summary.recovered_users += 1
                summary.recovered_total += result.recovered

        logger.info(
            "auto recovery finished processed=%d recovered_users=%d recovered_total=%d failures=%d errors=%d",
            summary.processed,
            summary.recovered_users,
            summary.recovered_total,
            len(summary.failures),
            len(summary.errors),
        )
        return summary

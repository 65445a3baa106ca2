"""수동 리셋: 유저가 직접 패키지 크레딧을 상한까지 채운다.

UTC 달력 날짜 단위로 manual_reset_per_day 회까지 허용한다. 카운터는 별도 작업으로
초기화하지 않고, manual_reset_at 이 오늘이 아니면 0회로 간주한다.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from common.types.datetime import is_same_utc_date, to_utc

from ..errors import ErrorCode, LedgerError
from ..models.credit import CreditBucket, TransactionType
from ..models.results import ManualResetResult
from ..models.wallet import Wallet
from ..repositories.interfaces import UnitOfWorkInterface
from .ledger_recorder import LedgerRecorder
from .package_config import ActivePackageResolver
from .wallet_store import WalletStore


logger = logging.getLogger(__name__)


def resets_today(wallet: Wallet, now: datetime) -> int:
    if is_same_utc_date(wallet.manual_reset_at, now):
        return wallet.manual_reset_count
    return 0


class ManualResetService:
    def __init__(
        self,
        uow: UnitOfWorkInterface,
        wallet_store: WalletStore,
        recorder: LedgerRecorder,
        package_resolver: ActivePackageResolver,
    ) -> None:
        self._uow = uow
        self._wallet_store = wallet_store
        self._recorder = recorder
        self._package_resolver = package_resolver

    def manual_reset(self, user_id: str, *, now: datetime) -> ManualResetResult:
        now = to_utc(now)
        if not user_id:
            return ManualResetResult.fail(ErrorCode.INVALID_PARAMS)

        observed: dict[str, Any] = {"balance": 0}

        try:
            with self._uow.transaction() as session:
                active = self._package_resolver.resolve(user_id, now, session=session)
                if active is None:
                    return ManualResetResult.fail(ErrorCode.NO_ACTIVE_PACKAGE)

                config = active.config
                if config.manual_reset_per_day <= 0:
                    return ManualResetResult.fail(ErrorCode.LIMIT_REACHED)

                def mutate(wallet: Wallet) -> dict[str, Any] | None:
                    observed["balance"] = wallet.package_tokens_remaining
                    used = resets_today(wallet, now)
                    observed["resets_today"] = used
                    if used >= config.manual_reset_per_day:
                        raise LedgerError(ErrorCode.LIMIT_REACHED)

                    increment = max(0, config.credit_cap - wallet.package_tokens_remaining)
                    if increment == 0:
                        raise LedgerError(ErrorCode.ALREADY_AT_CAP)

                    return {
                        "package_tokens_remaining": config.credit_cap,
                        "manual_reset_count": used + 1,
                        "manual_reset_at": now,
                        # 회복 시계도 함께 리셋해 다음 tick 이 중복 지급하지 않게 한다.
                        "last_recovery_at": now,
                    }

                change = self._wallet_store.apply_delta(
                    user_id, mutate, now=now, session=session
                )
                self._recorder.record(
                    user_id=user_id,
                    tx_type=TransactionType.RESET,
                    bucket=CreditBucket.PACKAGE,
                    before=change.before.package_tokens_remaining,
                    after=change.after.package_tokens_remaining,
                    now=now,
                    reason="manual reset",
                    meta={
                        "source": "manual_reset",
                        "credit_cap": config.credit_cap,
                        "manual_reset_per_day": config.manual_reset_per_day,
                        "resets_today": observed["resets_today"] + 1,
                    },
                    session=session,
                )
        except LedgerError as exc:
            # 충돌은 재시도하면 중복 지급될 수 있으므로 이번 호출은 한도 도달로 끝낸다.
            code = (
                ErrorCode.LIMIT_REACHED if exc.code == ErrorCode.CONFLICT else exc.code
            )
            logger.info(
                "manual reset rejected user_id=%s error=%s",
                user_id,
                exc.code,
                extra={"user_id": user_id, "error_code": str(exc.code)},
            )
            return ManualResetResult.fail(code, new_balance=observed["balance"])

        reset_amount = (
            change.after.package_tokens_remaining
            - change.before.package_tokens_remaining
        )
        logger.info(
            "manual reset applied user_id=%s amount=%d",
            user_id,
            reset_amount,
            extra={"user_id": user_id, "version": change.after.version},
        )
        return ManualResetResult(
            success=True,
            reset_amount=reset_amount,
            new_balance=change.after.package_tokens_remaining,
        )

"""크레딧 사용/지급/회수 서비스.

- charge: 패키지 크레딧을 먼저, 부족분은 독립 크레딧에서 차감한다.
- grant_independent_credits: 구매/코드 교환으로 독립 크레딧을 지급한다.
- refund_credits: 환불된 주문의 효과를 회수한다.
모든 쓰기는 WalletStore 의 조건부 쓰기 한 번과 원장 행으로 이루어진다.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from common.types.datetime import is_same_utc_date, to_utc

from ..errors import ErrorCode, LedgerError
from ..models.credit import CreditBucket, CreditTransaction, TransactionType
from ..models.results import Balance, ChargeResult, GrantResult
from ..models.wallet import Wallet
from ..repositories.interfaces import (
    CreditTransactionRepositoryInterface,
    Session,
    UnitOfWorkInterface,
)
from .ledger_recorder import LedgerRecorder
from .package_config import ActivePackageResolver
from .wallet_store import WalletStore


logger = logging.getLogger(__name__)


def balance_of(wallet: Wallet | None) -> Balance:
    if wallet is None:
        return Balance()
    return Balance(
        package_tokens=wallet.package_tokens_remaining,
        independent_tokens=wallet.independent_tokens,
    )


class CreditUsageService:
    def __init__(
        self,
        uow: UnitOfWorkInterface,
        wallet_store: WalletStore,
        recorder: LedgerRecorder,
        transaction_repo: CreditTransactionRepositoryInterface,
        package_resolver: ActivePackageResolver,
    ) -> None:
        self._uow = uow
        self._wallet_store = wallet_store
        self._recorder = recorder
        self._transaction_repo = transaction_repo
        self._package_resolver = package_resolver

    # 차감 -----------------------------------------------------------------
    def charge(
        self,
        user_id: str,
        amount: int,
        *,
        now: datetime,
        service: str = "api",
        request_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ChargeResult:
        """사용량만큼 크레딧을 차감한다.

        - request_id 가 이미 처리된 요청이면 차감 없이 현재 잔액과 duplicate=True 를 반환한다.
        - 활성 패키지가 있으면 패키지 풀 사용량은 UTC 하루 daily_usage_limit 까지만 허용하고,
          초과분은 독립 크레딧으로 넘긴다. 그것도 부족하면 DAILY_LIMIT_REACHED.
        - 충돌은 재시도하지 않고 CONFLICT 로 돌려준다.
        """
        now = to_utc(now)
        if not user_id or amount <= 0:
            return ChargeResult.fail(ErrorCode.INVALID_PARAMS)

        observed: dict[str, Any] = {}

        try:
            with self._uow.transaction() as session:
                if request_id:
                    existing = self._transaction_repo.find_by_request_id(
                        user_id, request_id, session=session
                    )
                    if existing is not None:
                        wallet = self._wallet_store.find(user_id, session=session)
                        logger.info(
                            "duplicate charge ignored user_id=%s request_id=%s",
                            user_id,
                            request_id,
                            extra={"user_id": user_id, "request_id": request_id},
                        )
                        return ChargeResult(
                            success=True, balance=balance_of(wallet), duplicate=True
                        )

                active = self._package_resolver.resolve(user_id, now, session=session)
                daily_limit = active.config.daily_usage_limit if active else None

                def mutate(wallet: Wallet) -> dict[str, Any] | None:
                    if wallet.total_available < amount:
                        raise LedgerError(ErrorCode.INSUFFICIENT_BALANCE)

                    same_day = is_same_utc_date(wallet.daily_usage_reset_at, now)
                    used_today = wallet.daily_usage_count if same_day else 0

                    allowed_package = wallet.package_tokens_remaining
                    if daily_limit is not None:
                        allowed_package = min(
                            allowed_package, max(0, daily_limit - used_today)
                        )

                    package_use = min(amount, allowed_package)
                    independent_use = amount - package_use
                    if independent_use > wallet.independent_tokens:
                        observed["remaining_today"] = max(0, (daily_limit or 0) - used_today)
                        raise LedgerError(ErrorCode.DAILY_LIMIT_REACHED)

                    observed["package_use"] = package_use
                    observed["independent_use"] = independent_use

                    changes: dict[str, Any] = {
                        "package_tokens_remaining": wallet.package_tokens_remaining
                        - package_use,
                        "independent_tokens": wallet.independent_tokens
                        - independent_use,
                    }
                    if daily_limit is not None:
                        observed["used_today"] = used_today + package_use
                        changes["daily_usage_count"] = used_today + package_use
                        if not same_day:
                            changes["daily_usage_reset_at"] = now
                    return changes

                change = self._wallet_store.apply_delta(
                    user_id, mutate, now=now, session=session
                )

                meta: dict[str, Any] = dict(metadata or {})
                meta.update(
                    {
                        "service": service,
                        "package_used": observed["package_use"],
                        "independent_used": observed["independent_use"],
                    }
                )
                self._recorder.record_wallet_change(
                    change,
                    tx_type=TransactionType.EXPENSE,
                    now=now,
                    request_id=request_id,
                    reason=service,
                    meta=meta,
                    session=session,
                )
        except LedgerError as exc:
            logger.info(
                "charge rejected user_id=%s amount=%d error=%s",
                user_id,
                amount,
                exc.code,
                extra={"user_id": user_id, "error_code": str(exc.code)},
            )
            return ChargeResult.fail(
                exc.code, remaining_today=observed.get("remaining_today")
            )

        remaining_today = None
        if daily_limit is not None:
            remaining_today = max(0, daily_limit - observed["used_today"])

        return ChargeResult(
            success=True,
            balance=balance_of(change.after),
            package_used=observed["package_use"],
            independent_used=observed["independent_use"],
            remaining_today=remaining_today,
        )

    # 지급 -----------------------------------------------------------------
    def grant_independent_credits(
        self,
        user_id: str,
        amount: int,
        *,
        now: datetime,
        order_ref: str | None = None,
        reason: str = "purchase",
        meta: dict[str, Any] | None = None,
        session: Session | None = None,
    ) -> GrantResult:
        """독립 크레딧 지급. 같은 order_ref 로 이미 지급됐으면 duplicate=True.

        session 이 주어지면 호출자의 트랜잭션에 합류한다. 이때 실패 결과를 받은 호출자는
        예외를 던져 바깥 트랜잭션을 롤백해야 한다.
        """
        now = to_utc(now)
        if not user_id or amount <= 0:
            return GrantResult.fail(ErrorCode.INVALID_PARAMS)

        try:
            with self._uow.transaction(session) as tx_session:
                if order_ref and self._transaction_repo.exists_for_order(
                    user_id, order_ref, TransactionType.INCOME, session=tx_session
                ):
                    wallet = self._wallet_store.find(user_id, session=tx_session)
                    return GrantResult(
                        success=True, balance=balance_of(wallet), duplicate=True
                    )

                change = self._wallet_store.apply_delta(
                    user_id,
                    lambda wallet: {"independent_tokens": wallet.independent_tokens + amount},
                    now=now,
                    session=tx_session,
                )
                self._recorder.record(
                    user_id=user_id,
                    tx_type=TransactionType.INCOME,
                    bucket=CreditBucket.INDEPENDENT,
                    before=change.before.independent_tokens,
                    after=change.after.independent_tokens,
                    now=now,
                    order_ref=order_ref,
                    reason=reason,
                    meta=meta,
                    session=tx_session,
                )
        except LedgerError as exc:
            logger.warning(
                "independent credit grant failed user_id=%s order_ref=%s error=%s",
                user_id,
                order_ref,
                exc.code,
                extra={
                    "user_id": user_id,
                    "order_ref": order_ref,
                    "error_code": str(exc.code),
                },
            )
            return GrantResult.fail(exc.code)

        logger.info(
            "granted %d independent credits user_id=%s order_ref=%s",
            amount,
            user_id,
            order_ref,
            extra={"user_id": user_id, "order_ref": order_ref},
        )
        return GrantResult(success=True, amount=amount, balance=balance_of(change.after))

    # 회수 -----------------------------------------------------------------
    def refund_credits(
        self,
        user_id: str,
        amount: int,
        *,
        now: datetime,
        order_ref: str,
        bucket: CreditBucket,
        reason: str = "refund",
    ) -> GrantResult:
        """환불된 주문의 크레딧을 회수한다.

        - package: 패키지 풀을 비운다. (amount 는 기록용)
        - independent: amount 만큼 차감하고, 잔액이 모자라면 INSUFFICIENT_BALANCE.
        같은 order_ref 의 회수 행이 이미 있으면 duplicate=True.
        """
        now = to_utc(now)
        if not user_id or not order_ref or amount < 0:
            return GrantResult.fail(ErrorCode.INVALID_PARAMS)

        try:
            with self._uow.transaction() as session:
                if self._transaction_repo.exists_for_order(
                    user_id, order_ref, TransactionType.EXPENSE, session=session
                ):
                    wallet = self._wallet_store.find(user_id, session=session)
                    return GrantResult(
                        success=True, balance=balance_of(wallet), duplicate=True
                    )

                def mutate(wallet: Wallet) -> dict[str, Any] | None:
                    if bucket == CreditBucket.PACKAGE:
                        if wallet.package_tokens_remaining == 0:
                            return None
                        return {"package_tokens_remaining": 0}
                    if wallet.independent_tokens < amount:
                        raise LedgerError(ErrorCode.INSUFFICIENT_BALANCE)
                    if amount == 0:
                        return None
                    return {"independent_tokens": wallet.independent_tokens - amount}

                change = self._wallet_store.apply_delta(
                    user_id, mutate, now=now, session=session
                )
                if change.changed:
                    self._recorder.record_wallet_change(
                        change,
                        tx_type=TransactionType.EXPENSE,
                        now=now,
                        order_ref=order_ref,
                        reason=reason,
                        meta={"source": "order_refund", "refund_amount": amount},
                        session=session,
                    )
        except LedgerError as exc:
            logger.warning(
                "refund failed user_id=%s order_ref=%s error=%s",
                user_id,
                order_ref,
                exc.code,
                extra={
                    "user_id": user_id,
                    "order_ref": order_ref,
                    "error_code": str(exc.code),
                },
            )
            return GrantResult.fail(exc.code)

        if bucket == CreditBucket.PACKAGE:
            revoked = change.before.package_tokens_remaining - change.after.package_tokens_remaining
        else:
            revoked = change.before.independent_tokens - change.after.independent_tokens
        logger.info(
            "refunded order_ref=%s user_id=%s bucket=%s revoked=%d",
            order_ref,
            user_id,
            bucket,
            revoked,
            extra={"user_id": user_id, "order_ref": order_ref},
        )
        return GrantResult(success=True, amount=revoked, balance=balance_of(change.after))

    # 조회 -----------------------------------------------------------------
    def get_balance(self, user_id: str) -> Balance:
        return balance_of(self._wallet_store.find(user_id))

    def get_history(
        self, user_id: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[CreditTransaction], int]:
        """크레딧 원장 이력 조회."""
        return self._transaction_repo.list_by_user(user_id, page, page_size)

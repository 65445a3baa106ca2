from __future__ import annotations

from datetime import datetime
from typing import Any

from ..models.credit import CreditBucket, CreditTransaction, TransactionType
from ..repositories.interfaces import CreditTransactionRepositoryInterface, Session
from .wallet_store import WalletChange


_BUCKET_FIELDS: tuple[tuple[CreditBucket, str], ...] = (
    (CreditBucket.PACKAGE, "package_tokens_remaining"),
    (CreditBucket.INDEPENDENT, "independent_tokens"),
)


class LedgerRecorder:
    """잔액 변경마다 before/after 스냅샷을 담은 원장 행을 append 한다."""

    def __init__(self, transaction_repo: CreditTransactionRepositoryInterface) -> None:
        self._transaction_repo = transaction_repo

    def record(
        self,
        *,
        user_id: str,
        tx_type: TransactionType,
        bucket: CreditBucket,
        before: int,
        after: int,
        now: datetime,
        order_ref: str | None = None,
        request_id: str | None = None,
        reason: str = "",
        meta: dict[str, Any] | None = None,
        session: Session | None = None,
    ) -> CreditTransaction:
        snapshot: dict[str, int | None]
        if bucket == CreditBucket.PACKAGE:
            snapshot = {"before_package_tokens": before, "after_package_tokens": after}
        else:
            snapshot = {
                "before_independent_tokens": before,
                "after_independent_tokens": after,
            }

        tx = CreditTransaction(
            user_id=user_id,
            type=tx_type,
            bucket=bucket,
            tokens=after - before,
            order_ref=order_ref,
            request_id=request_id,
            reason=reason,
            meta=dict(meta or {}),
            created_at=now,
            updated_at=now,
            **snapshot,
        )
        return self._transaction_repo.create(tx, session=session)

    def record_wallet_change(
        self,
        change: WalletChange,
        *,
        tx_type: TransactionType,
        now: datetime,
        order_ref: str | None = None,
        request_id: str | None = None,
        reason: str = "",
        meta: dict[str, Any] | None = None,
        session: Session | None = None,
    ) -> list[CreditTransaction]:
        """실제로 움직인 풀마다 한 행씩 기록한다."""
        rows: list[CreditTransaction] = []
        for bucket, field_name in _BUCKET_FIELDS:
            before = getattr(change.before, field_name)
            after = getattr(change.after, field_name)
            if before == after:
                continue
            rows.append(
                self.record(
                    user_id=change.after.user_id,
                    tx_type=tx_type,
                    bucket=bucket,
                    before=before,
                    after=after,
                    now=now,
                    order_ref=order_ref,
                    request_id=request_id,
                    reason=reason,
                    meta=meta,
                    session=session,
                )
            )
        return rows

"""지갑 레포지토리 구현체.

모든 잔액 변경은 update_if_version 의 조건부 find_one_and_update 한 번으로 반영된다.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from bson import Int64
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, OperationFailure

from common.mongo.types import as_int64

from ..errors import WalletConflictError
from ..models.wallet import Wallet
from .documents.wallet_document import WALLET_INT64_FIELDS, WalletDocument
from .interfaces import Session, WalletRepositoryInterface


logger = logging.getLogger(__name__)

TRANSIENT_TRANSACTION_ERROR = "TransientTransactionError"


def _zeroed_wallet_fields(user_id: str, now: datetime) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "package_daily_quota_tokens": 0,
        "package_tokens_remaining": 0,
        "independent_tokens": 0,
        "locked_tokens": 0,
        "last_recovery_at": None,
        "package_reset_at": None,
        "manual_reset_at": None,
        "manual_reset_count": 0,
        "daily_usage_count": 0,
        "daily_usage_reset_at": None,
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }


class WalletRepository(WalletRepositoryInterface):
    """wallets 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["wallets"]

    def find_by_user(
        self, user_id: str, *, session: Session | None = None
    ) -> Wallet | None:
        doc = self._col.find_one({"user_id": user_id}, session=session)
        if not doc:
            return None
        return WalletDocument.model_validate(doc).to_domain()

    def get_or_create(
        self, user_id: str, *, now: datetime, session: Session | None = None
    ) -> Wallet:
        try:
            doc = self._col.find_one_and_update(
                {"user_id": user_id},
                {
                    "$setOnInsert": as_int64(
                        _zeroed_wallet_fields(user_id, now), WALLET_INT64_FIELDS
                    )
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
                session=session,
            )
        except DuplicateKeyError:
            # 동시에 같은 유저 지갑을 만든 경우: 이미 생성된 지갑을 다시 읽는다.
            doc = self._col.find_one({"user_id": user_id}, session=session)
        except OperationFailure as exc:
            if exc.has_error_label(TRANSIENT_TRANSACTION_ERROR):
                raise WalletConflictError(user_id, 0) from exc
            raise

        if not doc:
            raise RuntimeError(f"wallet upsert returned no document for user_id={user_id}")
        return WalletDocument.model_validate(doc).to_domain()

    def update_if_version(
        self,
        user_id: str,
        expected_version: int,
        changes: dict[str, Any],
        *,
        now: datetime,
        session: Session | None = None,
    ) -> Wallet | None:
        set_fields = dict(changes)
        set_fields.pop("version", None)
        set_fields.pop("user_id", None)
        set_fields["updated_at"] = now

        try:
            doc = self._col.find_one_and_update(
                {"user_id": user_id, "version": expected_version},
                {
                    "$set": as_int64(set_fields, WALLET_INT64_FIELDS),
                    "$inc": {"version": Int64(1)},
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
        except OperationFailure as exc:
            # 트랜잭션 내 write conflict 도 버전 불일치와 같은 충돌로 취급한다.
            if exc.has_error_label(TRANSIENT_TRANSACTION_ERROR):
                logger.warning(
                    "wallet write conflict user_id=%s version=%d: %s",
                    user_id,
                    expected_version,
                    exc,
                )
                return None
            raise

        if doc is None:
            return None
        return WalletDocument.model_validate(doc).to_domain()

from __future__ import annotations

from typing import ClassVar, Optional

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.wallet import Wallet


WALLET_INT64_FIELDS = frozenset(
    {
        "package_daily_quota_tokens",
        "package_tokens_remaining",
        "independent_tokens",
        "locked_tokens",
        "manual_reset_count",
        "daily_usage_count",
        "version",
    }
)


class WalletDocument(BaseDocument):
    """MongoDB wallets 컬렉션 도큐먼트 모델.

    카운터는 BSON int64 로 저장된다.
    """

    int64_fields: ClassVar[frozenset[str]] = WALLET_INT64_FIELDS

    user_id: str
    package_daily_quota_tokens: int = 0
    package_tokens_remaining: int = 0
    independent_tokens: int = 0
    locked_tokens: int = 0
    last_recovery_at: Optional[MongoDateTime] = None
    package_reset_at: Optional[MongoDateTime] = None
    manual_reset_at: Optional[MongoDateTime] = None
    manual_reset_count: int = 0
    daily_usage_count: int = 0
    daily_usage_reset_at: Optional[MongoDateTime] = None
    version: int = 0

    @classmethod
    def from_domain(cls, wallet: Wallet) -> "WalletDocument":
        data = build_document_data_from_domain(wallet)
        return cls.model_validate(data)

    def to_domain(self) -> Wallet:
        return Wallet(
            id=from_object_id(self.id),
            user_id=self.user_id,
            package_daily_quota_tokens=self.package_daily_quota_tokens,
            package_tokens_remaining=self.package_tokens_remaining,
            independent_tokens=self.independent_tokens,
            locked_tokens=self.locked_tokens,
            last_recovery_at=self.last_recovery_at,
            package_reset_at=self.package_reset_at,
            manual_reset_at=self.manual_reset_at,
            manual_reset_count=self.manual_reset_count,
            daily_usage_count=self.daily_usage_count,
            daily_usage_reset_at=self.daily_usage_reset_at,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

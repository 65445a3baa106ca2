"""크레딧 원장 MongoDB 도큐먼트.

credit_transactions 는 insert 전용이며, 한 번 기록된 행은 수정/삭제하지 않는다.
"""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import Field

from common.mongo.types import BaseDocument, build_document_data_from_domain, from_object_id

from ...models.credit import CreditBucket, CreditTransaction, TransactionType


class CreditTransactionDocument(BaseDocument):
    """MongoDB credit_transactions 컬렉션 도큐먼트 모델."""

    int64_fields: ClassVar[frozenset[str]] = frozenset(
        {
            "tokens",
            "before_package_tokens",
            "after_package_tokens",
            "before_independent_tokens",
            "after_independent_tokens",
        }
    )

    user_id: str
    type: TransactionType
    bucket: CreditBucket
    tokens: int
    before_package_tokens: int | None = None
    after_package_tokens: int | None = None
    before_independent_tokens: int | None = None
    after_independent_tokens: int | None = None
    order_ref: str | None = None
    request_id: str | None = None
    reason: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, tx: CreditTransaction) -> "CreditTransactionDocument":
        data = build_document_data_from_domain(tx)
        return cls.model_validate(data)

    def to_domain(self) -> CreditTransaction:
        return CreditTransaction(
            id=from_object_id(self.id),
            user_id=self.user_id,
            type=TransactionType(self.type),
            bucket=CreditBucket(self.bucket),
            tokens=self.tokens,
            before_package_tokens=self.before_package_tokens,
            after_package_tokens=self.after_package_tokens,
            before_independent_tokens=self.before_independent_tokens,
            after_independent_tokens=self.after_independent_tokens,
            order_ref=self.order_ref,
            request_id=self.request_id,
            reason=self.reason,
            meta=self.meta,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

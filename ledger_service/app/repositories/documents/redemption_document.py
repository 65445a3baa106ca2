from __future__ import annotations

from typing import Optional

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.redemption import CodeStatus, CodeType, RedemptionCode


class RedemptionCodeDocument(BaseDocument):
    """MongoDB redemption_codes 컬렉션 도큐먼트 모델."""

    code: str
    status: CodeStatus
    code_type: CodeType
    code_value: str | int
    valid_days: int | None = None
    expires_at: Optional[MongoDateTime] = None
    used_at: Optional[MongoDateTime] = None
    used_by: str | None = None

    @classmethod
    def from_domain(cls, code: RedemptionCode) -> "RedemptionCodeDocument":
        data = build_document_data_from_domain(code)
        return cls.model_validate(data)

    def to_domain(self) -> RedemptionCode:
        return RedemptionCode(
            id=from_object_id(self.id),
            code=self.code,
            status=CodeStatus(self.status),
            code_type=CodeType(self.code_type),
            code_value=str(self.code_value),
            valid_days=self.valid_days,
            expires_at=self.expires_at,
            used_at=self.used_at,
            used_by=self.used_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Iterable, Optional

from bson import Int64, ObjectId
from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

from common.types.datetime import to_utc


def _utc_or_passthrough(value: Any) -> Any:
    # datetime 이 아니면(None 등) pydantic 이 판단하게 넘긴다.
    return to_utc(value) if isinstance(value, datetime) else value


def to_object_id(value: Any) -> ObjectId:
    """str/ObjectId 를 MongoDB ObjectId 로 변환한다. 형식이 틀리면 bson.errors.InvalidId."""

    if isinstance(value, ObjectId):
        return value
    if value is None:
        raise TypeError("ObjectId cannot be None")
    return ObjectId(str(value))


def from_object_id(value: Optional[ObjectId]) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def as_int64(record: dict[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    """record 에서 fields 에 해당하는 정수 값을 bson Int64 로 감싼 사본을 반환한다.

    pymongo 는 작은 int 를 int32 로 저장하므로 잔액/카운터는 명시적으로 int64 로 쓴다.
    """

    wrapped = dict(record)
    for name in fields:
        value = wrapped.get(name)
        if isinstance(value, int) and not isinstance(value, bool):
            wrapped[name] = Int64(value)
    return wrapped


PyObjectId = Annotated[ObjectId, BeforeValidator(to_object_id)]
MongoDateTime = Annotated[datetime, BeforeValidator(_utc_or_passthrough)]


class BaseDocument(BaseModel):
    """MongoDB 도큐먼트 공통 베이스.

    - _id <-> id alias, UTC created_at/updated_at
    - enum 필드는 값(str)으로 저장한다.
    - int64_fields 에 선언한 필드는 저장 시 Int64 로 감싼다.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
        use_enum_values=True,
    )

    int64_fields: ClassVar[frozenset[str]] = frozenset()

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    created_at: MongoDateTime
    updated_at: MongoDateTime

    def to_mongo_record(self) -> dict[str, Any]:
        """insert 용 레코드. _id 가 없으면 빼서 Mongo 가 생성하게 한다.

        나머지 None 필드는 유지한다. (원장 before/after 스냅샷의 null 은 의미가 있다)
        """

        record = self.model_dump(by_alias=True, mode="python")
        if record.get("_id") is None:
            record.pop("_id", None)
        return as_int64(record, self.int64_fields)


def build_document_data_from_domain(domain_model: BaseModel) -> dict[str, Any]:
    """도메인 모델을 도큐먼트 검증용 dict 로 바꾼다. (id 는 alias 로 _id 에 채워진다)"""

    return domain_model.model_dump(by_alias=True)

"""패키지 카탈로그 / 유저 패키지 레포지토리 구현체."""

from __future__ import annotations

from datetime import datetime

from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.database import Database

from common.mongo.types import to_object_id

from ..models.package import Package, PlanType, UserPackage
from .documents.package_document import PackageDocument, UserPackageDocument
from .interfaces import (
    PackageRepositoryInterface,
    Session,
    UserPackageRepositoryInterface,
)


class PackageRepository(PackageRepositoryInterface):
    """packages 컬렉션(카탈로그)에 대한 읽기 전용 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["packages"]

    def find_by_id(
        self, package_id: str, *, session: Session | None = None
    ) -> Package | None:
        try:
            object_id = to_object_id(package_id)
        except (InvalidId, TypeError):
            return None

        doc = self._col.find_one({"_id": object_id}, session=session)
        if not doc:
            return None
        return PackageDocument.model_validate(doc).to_domain()

    def find_active_by_plan_type(
        self, plan_type: PlanType, *, session: Session | None = None
    ) -> Package | None:
        # 카탈로그에는 plus/professional/max 같은 별칭이 섞여 있으므로 정규화 후 비교한다.
        cursor = self._col.find(
            {"is_active": True},
            sort=[("created_at", 1), ("_id", 1)],
            session=session,
        )
        for raw in cursor:
            package = PackageDocument.model_validate(raw).to_domain()
            if package.plan_type == plan_type:
                return package
        return None


class UserPackageRepository(UserPackageRepositoryInterface):
    """user_packages 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["user_packages"]

    def find_active(
        self, user_id: str, now: datetime, *, session: Session | None = None
    ) -> UserPackage | None:
        doc = self._col.find_one(
            {"user_id": user_id, "is_active": True, "end_at": {"$gte": now}},
            sort=[("end_at", -1)],
            session=session,
        )
        if not doc:
            return None
        return UserPackageDocument.model_validate(doc).to_domain()

    def deactivate_active(
        self, user_id: str, *, now: datetime, session: Session | None = None
    ) -> int:
        result = self._col.update_many(
            {"user_id": user_id, "is_active": True},
            {"$set": {"is_active": False, "updated_at": now}},
            session=session,
        )
        return result.modified_count

    def insert(
        self, user_package: UserPackage, *, session: Session | None = None
    ) -> UserPackage:
        doc = UserPackageDocument.from_domain(user_package)
        payload = doc.to_mongo_record()
        result = self._col.insert_one(payload, session=session)
        return user_package.model_copy(update={"id": str(result.inserted_id)})

    def update_end_at(
        self,
        user_package_id: str,
        end_at: datetime,
        *,
        now: datetime,
        order_ref: str | None = None,
        session: Session | None = None,
    ) -> UserPackage | None:
        update: dict = {"$set": {"end_at": end_at, "updated_at": now}}
        if order_ref:
            update["$addToSet"] = {"renewal_order_refs": order_ref}

        doc = self._col.find_one_and_update(
            {"_id": to_object_id(user_package_id), "is_active": True},
            update,
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not doc:
            return None
        return UserPackageDocument.model_validate(doc).to_domain()

    def find_by_order_ref(
        self, order_ref: str, *, session: Session | None = None
    ) -> UserPackage | None:
        doc = self._col.find_one(
            {"$or": [{"order_ref": order_ref}, {"renewal_order_refs": order_ref}]},
            session=session,
        )
        if not doc:
            return None
        return UserPackageDocument.model_validate(doc).to_domain()

    def list_active_user_ids(self, now: datetime) -> list[str]:
        """회복 대상(활성 패키지 보유) 유저 ID 목록."""
        user_ids = self._col.distinct(
            "user_id", {"is_active": True, "end_at": {"$gte": now}}
        )
        return sorted(str(user_id) for user_id in user_ids)

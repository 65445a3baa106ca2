"""크레딧 원장 레포지토리 구현체.

credit_transactions 는 append-only 이며 order_ref / request_id 로 멱등성을 조회한다.
"""

from __future__ import annotations

from pymongo.database import Database

from ..models.credit import CreditTransaction, TransactionType
from .documents.credit_document import CreditTransactionDocument
from .interfaces import CreditTransactionRepositoryInterface, Session


class CreditTransactionRepository(CreditTransactionRepositoryInterface):
    """credit_transactions 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["credit_transactions"]

    def create(
        self, tx: CreditTransaction, *, session: Session | None = None
    ) -> CreditTransaction:
        """트랜잭션 로그 생성."""
        doc = CreditTransactionDocument.from_domain(tx)
        payload = doc.to_mongo_record()
        result = self._col.insert_one(payload, session=session)
        return tx.model_copy(update={"id": str(result.inserted_id)})

    def list_by_user(
        self, user_id: str, page: int, page_size: int
    ) -> tuple[list[CreditTransaction], int]:
        """사용자의 크레딧 트랜잭션 이력 조회 (최신순)."""
        if page <= 0:
            page = 1
        if page_size <= 0 or page_size > 100:
            page_size = 20

        skip = (page - 1) * page_size

        total = self._col.count_documents({"user_id": user_id})
        cursor = self._col.find(
            {"user_id": user_id},
            sort=[("created_at", -1), ("_id", -1)],
            skip=skip,
            limit=page_size,
        )

        items: list[CreditTransaction] = []
        for raw in cursor:
            items.append(CreditTransactionDocument.model_validate(raw).to_domain())

        return items, total

    def find_by_request_id(
        self, user_id: str, request_id: str, *, session: Session | None = None
    ) -> CreditTransaction | None:
        raw = self._col.find_one(
            {
                "user_id": user_id,
                "type": TransactionType.EXPENSE.value,
                "request_id": request_id,
            },
            sort=[("created_at", -1)],
            session=session,
        )
        if not raw:
            return None
        return CreditTransactionDocument.model_validate(raw).to_domain()

    def exists_for_order(
        self,
        user_id: str,
        order_ref: str,
        tx_type: TransactionType,
        *,
        session: Session | None = None,
    ) -> bool:
        raw = self._col.find_one(
            {"user_id": user_id, "order_ref": order_ref, "type": tx_type.value},
            projection={"_id": 1},
            session=session,
        )
        return raw is not None

from __future__ import annotations

import logging
from datetime import datetime

from pymongo.database import Database
from pymongo.errors import OperationFailure

from ..models.redemption import CodeStatus, RedemptionCode
from .documents.redemption_document import RedemptionCodeDocument
from .interfaces import RedemptionCodeRepositoryInterface, Session
from .wallet_repository import TRANSIENT_TRANSACTION_ERROR


logger = logging.getLogger(__name__)


class RedemptionCodeRepository(RedemptionCodeRepositoryInterface):
    """redemption_codes 컬렉션에 대한 MongoDB 접근 레이어.

    코드 행은 claim 의 조건부 업데이트로만 active -> used 로 바뀐다.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["redemption_codes"]

    def find_by_code(
        self, code: str, *, session: Session | None = None
    ) -> RedemptionCode | None:
        doc = self._col.find_one({"code": code}, session=session)
        if not doc:
            return None
        return RedemptionCodeDocument.model_validate(doc).to_domain()

    def claim(
        self,
        code: str,
        user_id: str,
        *,
        now: datetime,
        session: Session | None = None,
    ) -> bool:
        try:
            result = self._col.update_one(
                {"code": code, "status": CodeStatus.ACTIVE.value},
                {
                    "$set": {
                        "status": CodeStatus.USED.value,
                        "used_at": now,
                        "used_by": user_id,
                        "updated_at": now,
                    }
                },
                session=session,
            )
        except OperationFailure as exc:
            # 동시에 같은 코드를 잡은 다른 트랜잭션이 있으면 write conflict 로 나타난다.
            if exc.has_error_label(TRANSIENT_TRANSACTION_ERROR):
                logger.info("redemption claim lost to concurrent writer code=%s", code)
                return False
            raise

        return result.modified_count == 1

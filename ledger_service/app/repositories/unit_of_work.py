"""MongoDB multi-document 트랜잭션 기반 작업 단위.

원장 연산 하나(지갑 조건부 쓰기 + 원장 행 + 코드/패키지 쓰기)를 하나의 트랜잭션으로 묶는다.
replica set 으로 구동된 MongoDB 가 필요하다.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.errors import OperationFailure

from common.mongo.config import get_transaction_max_commit_ms

from ..errors import ErrorCode, LedgerError
from .interfaces import UnitOfWorkInterface
from .wallet_repository import TRANSIENT_TRANSACTION_ERROR


logger = logging.getLogger(__name__)


class MongoUnitOfWork(UnitOfWorkInterface):
    def __init__(
        self, client: MongoClient, *, max_commit_time_ms: int | None = None
    ) -> None:
        self._client = client
        self._max_commit_time_ms = (
            max_commit_time_ms
            if max_commit_time_ms is not None
            else get_transaction_max_commit_ms()
        )

    @contextmanager
    def transaction(
        self, session: ClientSession | None = None
    ) -> Iterator[ClientSession]:
        if session is not None:
            # 바깥 트랜잭션에 합류한다. 커밋/롤백은 바깥 블록이 결정한다.
            yield session
            return

        with self._client.start_session() as new_session:
            try:
                with new_session.start_transaction(
                    max_commit_time_ms=self._max_commit_time_ms
                ):
                    yield new_session
            except OperationFailure as exc:
                if exc.has_error_label(TRANSIENT_TRANSACTION_ERROR):
                    logger.warning("transaction aborted by write conflict: %s", exc)
                    raise LedgerError(ErrorCode.CONFLICT, str(exc)) from exc
                raise

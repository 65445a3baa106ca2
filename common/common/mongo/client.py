from __future__ import annotations

import logging
import threading
from typing import Optional, cast

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .config import get_mongo_db_name, get_mongo_uri


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def get_client() -> MongoClient:
    """전역 MongoClient 싱글톤을 반환한다.

    - MONGO_URI 에서 URI 를 읽어온다.
    - ping 으로 연결을 검증한다.
    - URI 에 기본 데이터베이스가 포함되어 있지 않으면 에러를 발생시킨다.
    - 원장 컬렉션에 필요한 인덱스를 한 번만 생성한다.

    원장 쓰기는 multi-document 트랜잭션을 사용하므로 MongoDB 는 replica set
    (단일 노드 replica set 포함)으로 구동되어야 한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    with _lock:
        if _client is not None:
            return _client

        uri = get_mongo_uri()
        client = MongoClient(uri, tz_aware=True)

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        # 사용할 DB 이름 결정: MONGO_DB_NAME 우선, 없으면 URI의 기본 DB 사용
        db_name = get_mongo_db_name()
        try:
            if db_name:
                db = client[db_name]
            else:
                db = client.get_default_database()
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        _client = client
        _db = db

        try:
            _ensure_indexes(_db)
        except Exception as exc:  # noqa: BLE001
            # 인덱스 생성 실패는 치명적 오류로 간주한다.
            logger.error("failed to ensure MongoDB indexes: %s", exc)
            raise

        safe_db = cast(Database, _db)
        logger.info("MongoDB connected and indexes ensured (db=%s)", safe_db.name)
        return _client


def get_database() -> Database:
    """전역 기본 Database 객체를 반환한다."""

    global _db

    if _db is None:
        get_client()
    assert (
        _db is not None
    )  # get_client 에서 _db 를 초기화하지 못했다면 예외가 이미 발생했어야 한다.
    return _db


def _ensure_indexes(db: Database) -> None:
    """원장 컬렉션의 필수 인덱스를 생성한다.

    트랜잭션 안에서는 컬렉션/인덱스를 만들 수 없으므로 기동 시점에 미리 만든다.
    중복 생성해도 MongoDB 가 처리하므로 idempotent 하다.
    """

    wallets = db["wallets"]

    # 유저당 지갑 1개 (조건부 업데이트의 키)
    wallets.create_index(
        [("user_id", ASCENDING)],
        name="uniq_user_id",
        unique=True,
    )

    transactions = db["credit_transactions"]

    transactions.create_index(
        [("user_id", ASCENDING), ("created_at", DESCENDING), ("_id", DESCENDING)],
        name="idx_user_created_at",
    )

    # 주문/요청 단위 멱등성 조회
    transactions.create_index(
        [("user_id", ASCENDING), ("order_ref", ASCENDING), ("type", ASCENDING)],
        name="idx_user_order_ref_type",
        sparse=True,
    )
    transactions.create_index(
        [("user_id", ASCENDING), ("request_id", ASCENDING)],
        name="idx_user_request_id",
        sparse=True,
    )

    user_packages = db["user_packages"]

    user_packages.create_index(
        [("user_id", ASCENDING), ("is_active", ASCENDING), ("end_at", DESCENDING)],
        name="idx_user_active_end_at",
    )
    user_packages.create_index(
        [("order_ref", ASCENDING)],
        name="idx_order_ref",
        sparse=True,
    )
    user_packages.create_index(
        [("renewal_order_refs", ASCENDING)],
        name="idx_renewal_order_refs",
        sparse=True,
    )

    packages = db["packages"]

    packages.create_index(
        [("plan_type", ASCENDING), ("is_active", ASCENDING)],
        name="idx_plan_type_active",
    )

    redemption_codes = db["redemption_codes"]

    redemption_codes.create_index(
        [("code", ASCENDING)],
        name="uniq_code",
        unique=True,
    )

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Protocol

from ..models.credit import CreditTransaction, TransactionType
from ..models.package import Package, PlanType, UserPackage
from ..models.redemption import RedemptionCode
from ..models.wallet import Wallet


# pymongo.client_session.ClientSession 또는 테스트용 가짜 세션
Session = Any


class WalletRepositoryInterface(Protocol):
    """WalletRepository가 따라야 할 최소한의 계약.

    - 유저당 지갑은 1개이며, 쓰기는 (user_id, version) 조건부 업데이트로만 한다.
    """

    def find_by_user(
        self, user_id: str, *, session: Session | None = None
    ) -> Wallet | None:  # pragma: no cover - Protocol
        ...

    def get_or_create(
        self, user_id: str, *, now: datetime, session: Session | None = None
    ) -> Wallet:  # pragma: no cover - Protocol
        """지갑을 조회하고, 없으면 0으로 초기화된 지갑을 원자적으로 만든다."""
        ...

    def update_if_version(
        self,
        user_id: str,
        expected_version: int,
        changes: dict[str, Any],
        *,
        now: datetime,
        session: Session | None = None,
    ) -> Wallet | None:  # pragma: no cover - Protocol
        """version 이 일치할 때만 changes 를 반영하고 version 을 1 올린다.

        매칭되는 행이 없으면(다른 쓰기가 먼저 반영됨) None 을 반환한다.
        """
        ...


class CreditTransactionRepositoryInterface(Protocol):
    """CreditTransactionRepository가 따라야 할 최소한의 계약.

    - insert 전용 원장. 수정/삭제 연산은 제공하지 않는다.
    """

    def create(
        self, tx: CreditTransaction, *, session: Session | None = None
    ) -> CreditTransaction:  # pragma: no cover - Protocol
        ...

    def list_by_user(
        self, user_id: str, page: int, page_size: int
    ) -> tuple[list[CreditTransaction], int]:  # pragma: no cover - Protocol
        ...

    def find_by_request_id(
        self, user_id: str, request_id: str, *, session: Session | None = None
    ) -> CreditTransaction | None:  # pragma: no cover - Protocol
        ...

    def exists_for_order(
        self,
        user_id: str,
        order_ref: str,
        tx_type: TransactionType,
        *,
        session: Session | None = None,
    ) -> bool:  # pragma: no cover - Protocol
        ...


class PackageRepositoryInterface(Protocol):
    def find_by_id(
        self, package_id: str, *, session: Session | None = None
    ) -> Package | None:  # pragma: no cover - Protocol
        ...

    def find_active_by_plan_type(
        self, plan_type: PlanType, *, session: Session | None = None
    ) -> Package | None:  # pragma: no cover - Protocol
        ...


class UserPackageRepositoryInterface(Protocol):
    """UserPackageRepository가 따라야 할 최소한의 계약.

    - 유저당 활성 행은 최대 1개. 새 행 삽입 전에 deactivate_active 를 같은 트랜잭션에서 호출한다.
    """

    def find_active(
        self, user_id: str, now: datetime, *, session: Session | None = None
    ) -> UserPackage | None:  # pragma: no cover - Protocol
        ...

    def deactivate_active(
        self, user_id: str, *, now: datetime, session: Session | None = None
    ) -> int:  # pragma: no cover - Protocol
        ...

    def insert(
        self, user_package: UserPackage, *, session: Session | None = None
    ) -> UserPackage:  # pragma: no cover - Protocol
        ...

    def update_end_at(
        self,
        user_package_id: str,
        end_at: datetime,
        *,
        now: datetime,
        order_ref: str | None = None,
        session: Session | None = None,
    ) -> UserPackage | None:  # pragma: no cover - Protocol
        ...

    def find_by_order_ref(
        self, order_ref: str, *, session: Session | None = None
    ) -> UserPackage | None:  # pragma: no cover - Protocol
        """order_ref 로 생성됐거나 연장된 유저 패키지를 찾는다."""
        ...

    def list_active_user_ids(
        self, now: datetime
    ) -> list[str]:  # pragma: no cover - Protocol
        ...


class RedemptionCodeRepositoryInterface(Protocol):
    def find_by_code(
        self, code: str, *, session: Session | None = None
    ) -> RedemptionCode | None:  # pragma: no cover - Protocol
        ...

    def claim(
        self,
        code: str,
        user_id: str,
        *,
        now: datetime,
        session: Session | None = None,
    ) -> bool:  # pragma: no cover - Protocol
        """status=active 인 코드만 used 로 바꾼다. 다른 호출자가 먼저 가져갔으면 False."""
        ...


class UnitOfWorkInterface(Protocol):
    def transaction(
        self, session: Session | None = None
    ) -> AbstractContextManager[Session]:  # pragma: no cover - Protocol
        """하나의 원자적 작업 단위를 연다.

        session 이 주어지면 호출자의 트랜잭션에 합류하고, 커밋/롤백은 바깥에 맡긴다.
        블록 안에서 예외가 나면 그 호출에서 한 모든 쓰기가 롤백된다.
        """
        ...

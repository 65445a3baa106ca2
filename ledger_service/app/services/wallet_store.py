"""지갑 낙관적 동시성 제어(OCC) 코어.

apply_delta 는 읽기 -> mutate -> (user_id, version) 조건부 쓰기 한 번으로 끝난다.
쓰기가 어떤 행과도 매칭되지 않으면 WalletConflictError 를 던지며, 재시도는 하지 않는다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from ..errors import WalletConflictError
from ..models.wallet import Wallet
from ..repositories.interfaces import Session, WalletRepositoryInterface


logger = logging.getLogger(__name__)

# 변경할 필드 dict 를 반환하거나, 변경이 없으면 None.
# 업무 조건 위반은 LedgerError 를 던져 거절한다.
WalletMutation = Callable[[Wallet], Optional[dict[str, Any]]]

_PROTECTED_FIELDS = frozenset({"id", "user_id", "version", "created_at", "updated_at"})


@dataclass(frozen=True, slots=True)
class WalletChange:
    before: Wallet
    after: Wallet

    @property
    def changed(self) -> bool:
        return self.after.version != self.before.version


class WalletStore:
    def __init__(self, wallet_repo: WalletRepositoryInterface) -> None:
        self._wallet_repo = wallet_repo

    def find(self, user_id: str, *, session: Session | None = None) -> Wallet | None:
        return self._wallet_repo.find_by_user(user_id, session=session)

    def get(
        self, user_id: str, *, now: datetime, session: Session | None = None
    ) -> Wallet:
        """지갑을 반환한다. 없으면 0으로 초기화된 지갑을 만든다."""
        return self._wallet_repo.get_or_create(user_id, now=now, session=session)

    def apply_delta(
        self,
        user_id: str,
        mutate: WalletMutation,
        *,
        now: datetime,
        session: Session | None = None,
    ) -> WalletChange:
        before = self._wallet_repo.get_or_create(user_id, now=now, session=session)

        changes = mutate(before)
        if not changes:
            return WalletChange(before=before, after=before)

        illegal = (set(changes) - set(Wallet.model_fields)) | (
            set(changes) & _PROTECTED_FIELDS
        )
        if illegal:
            raise ValueError(f"wallet mutation touches illegal fields: {sorted(illegal)}")

        # 음수 카운터 같은 잘못된 상태는 쓰기 전에 모델 검증으로 막는다.
        Wallet.model_validate({**before.model_dump(), **changes})

        after = self._wallet_repo.update_if_version(
            user_id, before.version, changes, now=now, session=session
        )
        if after is None:
            logger.warning(
                "wallet version conflict user_id=%s expected_version=%d",
                user_id,
                before.version,
                extra={"user_id": user_id, "version": before.version},
            )
            raise WalletConflictError(user_id, before.version)

        return WalletChange(before=before, after=after)

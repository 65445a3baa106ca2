from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    """호출자가 메시지 파싱 없이 분기할 수 있는 안정적인 실패 코드."""

    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    CODE_NOT_FOUND = "CODE_NOT_FOUND"
    CODE_NOT_ACTIVE = "CODE_NOT_ACTIVE"
    CODE_EXPIRED = "CODE_EXPIRED"
    CODE_ALREADY_USED = "CODE_ALREADY_USED"
    NO_ACTIVE_PACKAGE = "NO_ACTIVE_PACKAGE"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    PACKAGE_NOT_FOUND = "PACKAGE_NOT_FOUND"
    DOWNGRADE_NOT_ALLOWED = "DOWNGRADE_NOT_ALLOWED"
    LIMIT_REACHED = "LIMIT_REACHED"
    ALREADY_AT_CAP = "ALREADY_AT_CAP"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"
    INVALID_PARAMS = "INVALID_PARAMS"
    INVALID_CODE_VALUE = "INVALID_CODE_VALUE"
    REDEEM_FAILED = "REDEEM_FAILED"


class LedgerError(Exception):
    """Base exception for all ledger business failures."""

    def __init__(self, code: ErrorCode, message: str | None = None) -> None:
        super().__init__(message or code.value)
        self.code = code


class WalletConflictError(LedgerError):
    """Conditional wallet write matched no row (version moved underneath us)."""

    def __init__(self, user_id: str, expected_version: int) -> None:
        super().__init__(
            ErrorCode.CONFLICT,
            f"wallet version conflict user_id={user_id} expected_version={expected_version}",
        )
        self.user_id = user_id
        self.expected_version = expected_version

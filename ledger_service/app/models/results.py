"""서비스 공개 연산의 결과 타입.

모든 공개 연산은 업무상 실패(잔액 부족, 한도 도달, 이미 사용된 코드 등)에 대해
예외를 던지지 않고 success=False 와 ErrorCode 를 담은 결과를 반환한다.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..errors import ErrorCode


@dataclass(slots=True)
class Balance:
    package_tokens: int = 0
    independent_tokens: int = 0

    @property
    def total_available(self) -> int:
        return self.package_tokens + self.independent_tokens


@dataclass(slots=True)
class RecoveryResult:
    success: bool
    recovered: int = 0
    new_balance: int = 0
    error: ErrorCode | None = None

    @classmethod
    def fail(cls, error: ErrorCode) -> "RecoveryResult":
        return cls(success=False, error=error)


@dataclass(slots=True)
class RecoverySummary:
    """tick_all 한 바퀴의 집계."""

    processed: int = 0
    recovered_users: int = 0
    recovered_total: int = 0
    failures: dict[str, ErrorCode] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)  # 예외로 끝난 유저


@dataclass(slots=True)
class ManualResetResult:
    success: bool
    reset_amount: int = 0
    new_balance: int = 0
    error: ErrorCode | None = None

    @classmethod
    def fail(cls, error: ErrorCode, new_balance: int = 0) -> "ManualResetResult":
        return cls(success=False, new_balance=new_balance, error=error)


@dataclass(slots=True)
class RedeemResult:
    success: bool
    message: str | None = None
    error: ErrorCode | None = None

    @classmethod
    def ok(cls, message: str) -> "RedeemResult":
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, error: ErrorCode) -> "RedeemResult":
        return cls(success=False, error=error)


@dataclass(slots=True)
class ChargeResult:
    success: bool
    balance: Balance = field(default_factory=Balance)
    package_used: int = 0
    independent_used: int = 0
    duplicate: bool = False
    remaining_today: int | None = None
    error: ErrorCode | None = None

    @classmethod
    def fail(
        cls, error: ErrorCode, *, remaining_today: int | None = None
    ) -> "ChargeResult":
        return cls(success=False, error=error, remaining_today=remaining_today)


@dataclass(slots=True)
class GrantResult:
    """지급/회수/리셋처럼 한 풀을 움직이는 연산의 결과."""

    success: bool
    amount: int = 0
    balance: Balance = field(default_factory=Balance)
    duplicate: bool = False
    error: ErrorCode | None = None

    @classmethod
    def fail(cls, error: ErrorCode) -> "GrantResult":
        return cls(success=False, error=error)


@dataclass(slots=True)
class PackageResult:
    success: bool
    user_package_id: str | None = None
    transition: str | None = None
    duplicate: bool = False
    error: ErrorCode | None = None

    @classmethod
    def fail(cls, error: ErrorCode) -> "PackageResult":
        return cls(success=False, error=error)

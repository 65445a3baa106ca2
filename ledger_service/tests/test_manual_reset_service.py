from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ledger_service.app.errors import ErrorCode
from ledger_service.app.models.credit import CreditBucket, TransactionType
from ledger_service.app.models.package import PackageFeatures, PlanType

from ledger_service.tests.fakes import (
    LedgerFixture,
    assert_ledger_consistent,
    build_fixture,
    make_package,
)


DAY_ONE = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _build(*, per_day: int, balance: int) -> LedgerFixture:
    fixture = build_fixture()
    package = fixture.package_repo.add(
        make_package(
            "pkg-basic",
            PlanType.BASIC,
            daily_points=1000,
            features=PackageFeatures(credit_cap=1000, manual_reset_per_day=per_day),
            now=DAY_ONE,
        )
    )
    fixture.assign_package("user-1", package, DAY_ONE - timedelta(days=1))
    fixture.seed_wallet(
        "user-1",
        DAY_ONE,
        package_tokens_remaining=balance,
        last_recovery_at=DAY_ONE - timedelta(hours=3),
    )
    return fixture


def test_manual_reset_fills_pool_to_cap() -> None:
    fixture = _build(per_day=1, balance=100)

    result = fixture.services.manual_reset.manual_reset("user-1", now=DAY_ONE)

    assert result.success
    assert result.reset_amount == 900
    assert result.new_balance == 1000

    wallet = fixture.wallet("user-1")
    assert wallet.manual_reset_count == 1
    assert wallet.manual_reset_at == DAY_ONE
    assert wallet.last_recovery_at == DAY_ONE

    rows = fixture.db.rows_for("user-1")
    assert [(tx.type, tx.bucket, tx.tokens) for tx in rows] == [
        (TransactionType.RESET, CreditBucket.PACKAGE, 900)
    ]
    assert rows[0].meta["source"] == "manual_reset"
    assert_ledger_consistent(rows)


def test_reset_limit_is_per_utc_day() -> None:
    fixture = _build(per_day=2, balance=100)
    service = fixture.services.manual_reset
    usage = fixture.services.credit_usage

    assert service.manual_reset("user-1", now=DAY_ONE).success
    assert usage.charge("user-1", 300, now=DAY_ONE + timedelta(hours=1)).success
    second = service.manual_reset("user-1", now=DAY_ONE + timedelta(hours=2))
    assert second.success
    assert second.reset_amount == 300
    assert usage.charge("user-1", 50, now=DAY_ONE + timedelta(hours=3)).success

    third = service.manual_reset("user-1", now=DAY_ONE + timedelta(hours=4))

    assert not third.success
    assert third.error == ErrorCode.LIMIT_REACHED
    assert third.new_balance == 950
    assert fixture.wallet("user-1").manual_reset_count == 2

    next_day = service.manual_reset("user-1", now=datetime(2025, 3, 2, 0, 1, tzinfo=timezone.utc))
    assert next_day.success
    assert next_day.reset_amount == 50
    assert fixture.wallet("user-1").manual_reset_count == 1


def test_reset_just_before_and_after_midnight() -> None:
    fixture = _build(per_day=1, balance=0)
    service = fixture.services.manual_reset
    before_midnight = datetime(2025, 3, 1, 23, 59, tzinfo=timezone.utc)

    assert service.manual_reset("user-1", now=before_midnight).success
    assert fixture.services.credit_usage.charge(
        "user-1", 10, now=before_midnight + timedelta(seconds=30)
    ).success

    after_midnight = datetime(2025, 3, 2, 0, 1, tzinfo=timezone.utc)
    result = service.manual_reset("user-1", now=after_midnight)

    assert result.success
    assert result.reset_amount == 10


def test_reset_at_cap_is_rejected_without_consuming_a_reset() -> None:
    fixture = _build(per_day=1, balance=1000)

    result = fixture.services.manual_reset.manual_reset("user-1", now=DAY_ONE)

    assert result.error == ErrorCode.ALREADY_AT_CAP
    assert result.new_balance == 1000
    assert fixture.wallet("user-1").manual_reset_count == 0
    assert fixture.db.rows_for("user-1") == []


def test_reset_disabled_for_package() -> None:
    fixture = _build(per_day=0, balance=10)

    result = fixture.services.manual_reset.manual_reset("user-1", now=DAY_ONE)

    assert result.error == ErrorCode.LIMIT_REACHED
    assert fixture.wallet("user-1").version == 0


def test_reset_without_package() -> None:
    fixture = build_fixture()

    result = fixture.services.manual_reset.manual_reset("user-1", now=DAY_ONE)

    assert result.error == ErrorCode.NO_ACTIVE_PACKAGE


def test_conflict_is_reported_as_limit_reached() -> None:
    fixture = _build(per_day=3, balance=100)

    def racing_reset(user_id: str) -> None:
        current = fixture.db.wallets[user_id]
        fixture.db.wallets[user_id] = current.model_copy(
            update={"version": current.version + 1}
        )

    fixture.wallet_repo.before_update = racing_reset

    result = fixture.services.manual_reset.manual_reset("user-1", now=DAY_ONE)

    assert result.error == ErrorCode.LIMIT_REACHED
    assert result.new_balance == 100
    assert fixture.db.rows_for("user-1") == []

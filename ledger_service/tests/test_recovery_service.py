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


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _with_pro_package(fixture: LedgerFixture, user_id: str = "user-1") -> None:
    package = fixture.package_repo.add(
        make_package(
            "pkg-pro",
            PlanType.PRO,
            daily_points=6000,
            features=PackageFeatures(credit_cap=6000, recovery_rate=500),
            now=NOW,
        )
    )
    fixture.assign_package(user_id, package, NOW - timedelta(days=1))


def test_tick_recovers_one_hour_of_credits() -> None:
    fixture = build_fixture()
    _with_pro_package(fixture)
    fixture.seed_wallet(
        "user-1",
        NOW - timedelta(hours=1),
        package_tokens_remaining=5000,
        last_recovery_at=NOW - timedelta(hours=1),
    )

    result = fixture.services.recovery.tick("user-1", now=NOW)

    assert result.success
    assert result.recovered == 500
    assert result.new_balance == 5500
    wallet = fixture.wallet("user-1")
    assert wallet.last_recovery_at == NOW
    assert wallet.version == 1

    rows = fixture.db.rows_for("user-1")
    assert len(rows) == 1
    tx = rows[0]
    assert tx.type == TransactionType.INCOME
    assert tx.bucket == CreditBucket.PACKAGE
    assert tx.tokens == 500
    assert tx.meta["source"] == "auto_recovery"
    assert tx.meta["recovery_rate"] == 500
    assert tx.meta["credit_cap"] == 6000
    assert tx.meta["hours_passed"] == 1.0
    assert_ledger_consistent(rows)


def test_tick_clamps_to_cap() -> None:
    fixture = build_fixture()
    _with_pro_package(fixture)
    fixture.seed_wallet(
        "user-1",
        NOW,
        package_tokens_remaining=5000,
        last_recovery_at=NOW - timedelta(hours=5),
    )

    result = fixture.services.recovery.tick("user-1", now=NOW)

    assert result.recovered == 1000
    assert fixture.wallet("user-1").package_tokens_remaining == 6000


def test_repeated_tick_at_same_instant_recovers_once() -> None:
    fixture = build_fixture()
    _with_pro_package(fixture)
    fixture.seed_wallet(
        "user-1",
        NOW,
        package_tokens_remaining=0,
        last_recovery_at=NOW - timedelta(hours=2),
    )

    first = fixture.services.recovery.tick("user-1", now=NOW)
    second = fixture.services.recovery.tick("user-1", now=NOW)

    assert first.recovered == 1000
    assert second.success
    assert second.recovered == 0
    assert fixture.wallet("user-1").version == 1
    assert len(fixture.db.rows_for("user-1")) == 1


def test_zero_recovery_writes_nothing() -> None:
    fixture = build_fixture()
    _with_pro_package(fixture)
    fixture.seed_wallet(
        "user-1", NOW, package_tokens_remaining=6000, last_recovery_at=NOW - timedelta(hours=3)
    )

    result = fixture.services.recovery.tick("user-1", now=NOW)

    assert result.success
    assert result.recovered == 0
    assert result.new_balance == 6000
    assert fixture.wallet_repo.update_calls == 0
    assert fixture.db.rows_for("user-1") == []


def test_tick_without_active_package() -> None:
    fixture = build_fixture()
    fixture.seed_wallet("user-1", NOW - timedelta(hours=5))

    result = fixture.services.recovery.tick("user-1", now=NOW)

    assert not result.success
    assert result.error == ErrorCode.NO_ACTIVE_PACKAGE
    assert fixture.wallet("user-1").version == 0


def test_expired_package_is_not_active() -> None:
    fixture = build_fixture()
    package = fixture.package_repo.add(make_package("pkg-basic", PlanType.BASIC, now=NOW))
    fixture.assign_package("user-1", package, NOW - timedelta(days=31), days=30)

    result = fixture.services.recovery.tick("user-1", now=NOW)

    assert result.error == ErrorCode.NO_ACTIVE_PACKAGE


def test_conflict_leaves_no_ledger_row() -> None:
    fixture = build_fixture()
    _with_pro_package(fixture)
    fixture.seed_wallet(
        "user-1", NOW, package_tokens_remaining=100, last_recovery_at=NOW - timedelta(hours=1)
    )

    def racing_charge(user_id: str) -> None:
        current = fixture.db.wallets[user_id]
        fixture.db.wallets[user_id] = current.model_copy(
            update={"package_tokens_remaining": 90, "version": current.version + 1}
        )
        fixture.wallet_repo.before_update = None

    fixture.wallet_repo.before_update = racing_charge

    result = fixture.services.recovery.tick("user-1", now=NOW)

    assert not result.success
    assert result.error == ErrorCode.CONFLICT
    assert fixture.db.rows_for("user-1") == []
    assert fixture.wallet("user-1").package_tokens_remaining == 90
    assert fixture.uow.rolled_back == 1

    # 다음 tick 이 경과 시간을 그대로 회복한다.
    retry = fixture.services.recovery.tick("user-1", now=NOW)
    assert retry.recovered == 500
    assert fixture.wallet("user-1").package_tokens_remaining == 590


def test_tick_all_isolates_users() -> None:
    fixture = build_fixture()
    _with_pro_package(fixture, "user-1")
    _with_pro_package(fixture, "user-2")
    _with_pro_package(fixture, "user-3")
    fixture.seed_wallet(
        "user-1", NOW, package_tokens_remaining=0, last_recovery_at=NOW - timedelta(hours=1)
    )
    fixture.seed_wallet(
        "user-2", NOW, package_tokens_remaining=6000, last_recovery_at=NOW - timedelta(hours=1)
    )
    fixture.seed_wallet(
        "user-3", NOW, package_tokens_remaining=0, last_recovery_at=NOW - timedelta(hours=2)
    )
    fixture.seed_wallet("user-4", NOW - timedelta(hours=10))

    def conflict_for_user_3(user_id: str) -> None:
        if user_id != "user-3":
            return
        current = fixture.db.wallets[user_id]
        fixture.db.wallets[user_id] = current.model_copy(
            update={"version": current.version + 1}
        )

    fixture.wallet_repo.before_update = conflict_for_user_3

    summary = fixture.services.recovery.tick_all(now=NOW)

    assert summary.processed == 3
    assert summary.recovered_users == 1
    assert summary.recovered_total == 500
    assert summary.failures == {"user-3": ErrorCode.CONFLICT}
    assert summary.errors == []
    assert fixture.wallet("user-4").version == 0


def test_tick_accepts_naive_now_as_utc() -> None:
    fixture = build_fixture()
    _with_pro_package(fixture)
    fixture.seed_wallet(
        "user-1",
        NOW - timedelta(hours=2),
        package_tokens_remaining=5000,
        last_recovery_at=NOW - timedelta(hours=1),
    )

    result = fixture.services.recovery.tick("user-1", now=NOW.replace(tzinfo=None))

    assert result.success
    assert result.recovered == 500
    assert fixture.wallet("user-1").last_recovery_at == NOW


def test_tick_with_fractional_recovery_rate() -> None:
    fixture = build_fixture()
    package = fixture.package_repo.add(
        make_package(
            "pkg-basic",
            PlanType.BASIC,
            daily_points=1000,
            features=PackageFeatures.model_validate({"creditCap": 1000, "recoveryRate": 62.5}),
            now=NOW,
        )
    )
    fixture.assign_package("user-1", package, NOW - timedelta(days=1))
    fixture.seed_wallet(
        "user-1",
        NOW - timedelta(hours=3),
        package_tokens_remaining=0,
        last_recovery_at=NOW - timedelta(hours=3),
    )

    result = fixture.services.recovery.tick("user-1", now=NOW)

    assert result.success
    assert result.recovered == 187
    assert fixture.db.rows_for("user-1")[0].meta["recovery_rate"] == 62.5

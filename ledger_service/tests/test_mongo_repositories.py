from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

from bson import Int64, ObjectId
from pymongo.errors import OperationFailure

from ledger_service.app.models.credit import CreditBucket, CreditTransaction, TransactionType
from ledger_service.app.repositories.credit_repository import CreditTransactionRepository
from ledger_service.app.repositories.package_repository import PackageRepository
from ledger_service.app.repositories.redemption_repository import RedemptionCodeRepository
from ledger_service.app.repositories.wallet_repository import WalletRepository


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _wallet_doc(**fields) -> dict:
    doc = {
        "_id": ObjectId(),
        "user_id": "user-1",
        "package_tokens_remaining": 0,
        "independent_tokens": 0,
        "version": 0,
        "created_at": NOW,
        "updated_at": NOW,
    }
    doc.update(fields)
    return doc


class FakeCollection:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple, dict]] = []
        self.next_result: object = None
        self.raise_error: Exception | None = None

    def _record(self, name: str, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if self.raise_error is not None:
            raise self.raise_error
        return self.next_result

    def find_one_and_update(self, *args, **kwargs):
        return self._record("find_one_and_update", *args, **kwargs)

    def find_one(self, *args, **kwargs):
        return self._record("find_one", *args, **kwargs)

    def update_one(self, *args, **kwargs):
        return self._record("update_one", *args, **kwargs)

    def insert_one(self, *args, **kwargs):
        return self._record("insert_one", *args, **kwargs)


class FakeDatabase(dict):
    def __missing__(self, name: str) -> FakeCollection:
        collection = FakeCollection()
        self[name] = collection
        return collection


def _transient_error() -> OperationFailure:
    return OperationFailure(
        "WriteConflict", code=112, details={"errorLabels": ["TransientTransactionError"]}
    )


def test_update_if_version_is_conditional_on_version() -> None:
    db = FakeDatabase()
    repo = WalletRepository(db)  # type: ignore[arg-type]
    col = db["wallets"]
    col.next_result = _wallet_doc(independent_tokens=30, version=4)

    wallet = repo.update_if_version(
        "user-1", 3, {"independent_tokens": 30, "version": 99}, now=NOW
    )

    assert wallet is not None and wallet.version == 4
    [(name, (query, update), _)] = col.calls
    assert name == "find_one_and_update"
    assert query == {"user_id": "user-1", "version": 3}
    assert update["$inc"] == {"version": 1}
    assert "version" not in update["$set"]
    assert isinstance(update["$set"]["independent_tokens"], Int64)
    assert update["$set"]["updated_at"] == NOW


def test_update_if_version_maps_write_conflict_to_none() -> None:
    db = FakeDatabase()
    repo = WalletRepository(db)  # type: ignore[arg-type]
    db["wallets"].raise_error = _transient_error()

    assert repo.update_if_version("user-1", 0, {"independent_tokens": 1}, now=NOW) is None


def test_get_or_create_upserts_zeroed_wallet() -> None:
    db = FakeDatabase()
    repo = WalletRepository(db)  # type: ignore[arg-type]
    col = db["wallets"]
    col.next_result = _wallet_doc()

    wallet = repo.get_or_create("user-1", now=NOW)

    assert wallet.total_available == 0
    [(_, (query, update), kwargs)] = col.calls
    assert query == {"user_id": "user-1"}
    assert kwargs["upsert"] is True
    assert isinstance(update["$setOnInsert"]["version"], Int64)


def test_claim_only_matches_active_code() -> None:
    db = FakeDatabase()
    repo = RedemptionCodeRepository(db)  # type: ignore[arg-type]
    col = db["redemption_codes"]
    col.next_result = SimpleNamespace(modified_count=0)

    assert repo.claim("GIFT-1", "user-1", now=NOW) is False
    [(_, (query, update), _)] = col.calls
    assert query == {"code": "GIFT-1", "status": "active"}
    assert update["$set"]["used_by"] == "user-1"

    col.raise_error = _transient_error()
    assert repo.claim("GIFT-1", "user-2", now=NOW) is False


def test_transaction_insert_keeps_null_snapshot_of_other_pool() -> None:
    db = FakeDatabase()
    repo = CreditTransactionRepository(db)  # type: ignore[arg-type]
    col = db["credit_transactions"]
    inserted_id = ObjectId()
    col.next_result = SimpleNamespace(inserted_id=inserted_id)

    stored = repo.create(
        CreditTransaction(
            user_id="user-1",
            type=TransactionType.EXPENSE,
            bucket=CreditBucket.INDEPENDENT,
            tokens=-10,
            before_independent_tokens=50,
            after_independent_tokens=40,
            created_at=NOW,
            updated_at=NOW,
        )
    )

    assert stored.id == str(inserted_id)
    [(_, (payload,), _)] = col.calls
    assert "_id" not in payload
    assert payload["type"] == "expense"
    assert payload["before_package_tokens"] is None
    assert isinstance(payload["tokens"], Int64)


def test_find_package_with_malformed_id_returns_none() -> None:
    db = FakeDatabase()
    repo = PackageRepository(db)  # type: ignore[arg-type]

    assert repo.find_by_id("not-an-object-id") is None
    assert db["packages"].calls == []

from __future__ import annotations

from dataclasses import dataclass

from pymongo import MongoClient
from pymongo.database import Database

from .config import LedgerConfig
from .repositories.credit_repository import CreditTransactionRepository
from .repositories.interfaces import (
    CreditTransactionRepositoryInterface,
    PackageRepositoryInterface,
    RedemptionCodeRepositoryInterface,
    UnitOfWorkInterface,
    UserPackageRepositoryInterface,
    WalletRepositoryInterface,
)
from .repositories.package_repository import PackageRepository, UserPackageRepository
from .repositories.redemption_repository import RedemptionCodeRepository
from .repositories.unit_of_work import MongoUnitOfWork
from .repositories.wallet_repository import WalletRepository
from .services.credit_usage_service import CreditUsageService
from .services.ledger_recorder import LedgerRecorder
from .services.manual_reset_service import ManualResetService
from .services.order_fulfillment import OrderFulfillmentService
from .services.package_config import ActivePackageResolver
from .services.package_lifecycle import PackageLifecycleManager
from .services.recovery_service import RecoveryService
from .services.redemption_service import RedemptionService
from .services.wallet_store import WalletStore


@dataclass(slots=True)
class LedgerServices:
    wallet_store: WalletStore
    recovery: RecoveryService
    manual_reset: ManualResetService
    credit_usage: CreditUsageService
    lifecycle: PackageLifecycleManager
    redemption: RedemptionService
    order_fulfillment: OrderFulfillmentService


def wire_services(
    *,
    uow: UnitOfWorkInterface,
    wallet_repo: WalletRepositoryInterface,
    transaction_repo: CreditTransactionRepositoryInterface,
    package_repo: PackageRepositoryInterface,
    user_package_repo: UserPackageRepositoryInterface,
    code_repo: RedemptionCodeRepositoryInterface,
    config: LedgerConfig,
) -> LedgerServices:
    """레포지토리 구현체와 무관하게 서비스 그래프를 조립한다. (테스트는 fake 를 넘긴다)"""

    wallet_store = WalletStore(wallet_repo)
    recorder = LedgerRecorder(transaction_repo)
    resolver = ActivePackageResolver(
        user_package_repo, package_repo, config.package_defaults
    )

    credit_usage = CreditUsageService(
        uow, wallet_store, recorder, transaction_repo, resolver
    )
    lifecycle = PackageLifecycleManager(
        uow, wallet_store, recorder, package_repo, user_package_repo, resolver
    )

    return LedgerServices(
        wallet_store=wallet_store,
        recovery=RecoveryService(
            uow, wallet_store, recorder, resolver, user_package_repo
        ),
        manual_reset=ManualResetService(uow, wallet_store, recorder, resolver),
        credit_usage=credit_usage,
        lifecycle=lifecycle,
        redemption=RedemptionService(
            uow, code_repo, package_repo, credit_usage, lifecycle
        ),
        order_fulfillment=OrderFulfillmentService(credit_usage, lifecycle),
    )


def build_services(
    client: MongoClient, database: Database, config: LedgerConfig
) -> LedgerServices:
    """MongoDB 구현체로 서비스 그래프를 만든다."""

    return wire_services(
        uow=MongoUnitOfWork(client),
        wallet_repo=WalletRepository(database),
        transaction_repo=CreditTransactionRepository(database),
        package_repo=PackageRepository(database),
        user_package_repo=UserPackageRepository(database),
        code_repo=RedemptionCodeRepository(database),
        config=config,
    )

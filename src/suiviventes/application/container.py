from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from suiviventes.config import RemoteSettings
from suiviventes.repositories.local_repo import LocalStore
from suiviventes.repositories.remote_repo import RemoteRepository
from suiviventes.repositories.storage import StorageFacade
from suiviventes.services.auth_service import AuthService
from suiviventes.services.excel_service import ExcelService
from suiviventes.services.inventory_service import InventoryService
from suiviventes.services.reporting_service import ReportingService
from suiviventes.services.sales_service import SalesService
from suiviventes.services.stock_reconciler import StockReconciler


@dataclass(frozen=True)
class AppContainer:
    local: LocalStore
    auth: AuthService
    storage: StorageFacade
    reconciler: StockReconciler
    sales: SalesService
    inventory: InventoryService
    excel: ExcelService
    reporting: ReportingService


def build_container(db_path: Path | str, settings: RemoteSettings | None = None, http=None) -> AppContainer:
    settings = settings or RemoteSettings()
    local = LocalStore(db_path)
    local.init_db()

    auth = AuthService(settings, store=local, http=http)
    remote = RemoteRepository(settings, auth, http=http) if settings.enabled else None
    storage = StorageFacade(local, remote=remote, auth=auth, write_fallback=settings.write_fallback)
    reconciler = StockReconciler(storage)

    return AppContainer(
        local=local,
        auth=auth,
        storage=storage,
        reconciler=reconciler,
        sales=SalesService(storage, reconciler),
        inventory=InventoryService(storage),
        excel=ExcelService(storage, reconciler),
        reporting=ReportingService(storage),
    )

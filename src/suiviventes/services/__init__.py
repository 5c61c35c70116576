from .auth_service import AuthService
from .inventory_service import InventoryService
from .sales_service import SalesService
from .excel_service import ExcelService, ImportOutcome
from .reporting_service import ReportingService
from .stock_reconciler import StockReconciler

__all__ = [
    "AuthService",
    "InventoryService",
    "SalesService",
    "ExcelService",
    "ImportOutcome",
    "ReportingService",
    "StockReconciler",
]

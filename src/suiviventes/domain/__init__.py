from .models import Sale, StockItem, StockMovement, RowError, DuplicateInfo, ImportPreview
from .errors import (
    AppError,
    ValidationError,
    NotFoundError,
    ReadOnlyModeError,
    AuthenticationError,
    RemoteBackendError,
)

__all__ = [
    "Sale",
    "StockItem",
    "StockMovement",
    "RowError",
    "DuplicateInfo",
    "ImportPreview",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "ReadOnlyModeError",
    "AuthenticationError",
    "RemoteBackendError",
]

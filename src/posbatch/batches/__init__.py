"""バッチ取得と FEFO 選択ポリシー"""

from .policy import (
    ExpiryRisk,
    QtyValidationError,
    ValidationCode,
    expiry_risk,
    get_best_batch,
    sort_batches,
    validate_qty,
)
from .repository import BatchRepository

__all__ = [
    "BatchRepository",
    "ExpiryRisk",
    "QtyValidationError",
    "ValidationCode",
    "expiry_risk",
    "get_best_batch",
    "sort_batches",
    "validate_qty",
]

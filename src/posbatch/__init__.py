"""posbatch - POS batch allocation (FEFO) and stock allocate/commit client toolkit"""

__version__ = "0.1.0"

from posbatch.batches import BatchRepository, get_best_batch, validate_qty
from posbatch.client import BatchFetchError, InventoryAPIError, InventoryClient
from posbatch.pos import BatchAllocator, PosEngine

__all__ = [
    "BatchAllocator",
    "BatchFetchError",
    "BatchRepository",
    "InventoryAPIError",
    "InventoryClient",
    "PosEngine",
    "get_best_batch",
    "validate_qty",
]

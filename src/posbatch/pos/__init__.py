"""POS 引当・確定プロトコル"""

from .allocator import (
    AllocateResult,
    AllocationFailure,
    AllocationStrategy,
    AllocationSuccess,
    BatchAllocator,
    CommitResult,
    commit_idempotency_key,
)
from .cart import Cart, CartLine, CheckoutReport, LineOutcome, LineState
from .engine import PosEngine
from .reservations import Reservation, ReservationClient, ReservationError

__all__ = [
    "AllocateResult",
    "AllocationFailure",
    "AllocationStrategy",
    "AllocationSuccess",
    "BatchAllocator",
    "Cart",
    "CartLine",
    "CheckoutReport",
    "CommitResult",
    "LineOutcome",
    "LineState",
    "PosEngine",
    "Reservation",
    "ReservationClient",
    "ReservationError",
    "commit_idempotency_key",
]

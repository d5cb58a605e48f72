"""
引当 / 確定プロトコル

2段階のやり取り:
1. POST /api/stock/allocate  (商品, 数量, 戦略) → バッチ内訳を仮押さえ
2. POST /api/stock/commit    (商品, 内訳, 伝票番号) → 在庫を確定減算

どのバッチから出すかの最終決定はサーバー側。クライアントは結果をそのまま使う。
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence, Union

from posbatch.client import InventoryAPIError, InventoryClient, error_message
from posbatch.models import AllocationLine, format_qty, qty_to_json, to_decimal

logger = logging.getLogger(__name__)

ALLOCATE_PATH = "/api/stock/allocate"
COMMIT_PATH = "/api/stock/commit"


class AllocationStrategy(str, Enum):
    FEFO = "FEFO"
    LIFO = "LIFO"
    MANUAL = "MANUAL"


@dataclass(frozen=True)
class AllocationSuccess:
    """引当成功。lines の数量合計 = 要求数量。"""
    product_id: str
    quantity: Decimal
    strategy: AllocationStrategy
    lines: tuple[AllocationLine, ...] = ()

    ok = True
    error = None


@dataclass(frozen=True)
class AllocationFailure:
    """引当失敗。error はオペレーターにそのまま表示する。"""
    product_id: str
    quantity: Decimal
    error: str
    status: Optional[int] = None

    ok = False


AllocateResult = Union[AllocationSuccess, AllocationFailure]


@dataclass(frozen=True)
class CommitResult:
    ok: bool
    payload: dict = field(default_factory=dict)
    error: Optional[str] = None
    status: Optional[int] = None


def commit_idempotency_key(product_id: str, allocation: Sequence[AllocationLine], reference: str) -> str:
    """(商品, 内訳, 伝票番号) から決まる Idempotency-Key。同じ組み合わせの再送は同じキーになる。"""
    canonical = json.dumps(
        {
            "product_id": product_id,
            "allocation": [[a.batch_id, format_qty(a.qty)] for a in allocation],
            "reference": reference,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return "commit|" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class BatchAllocator:
    """在庫サービスの allocate / commit を呼ぶ。自動リトライはしない。"""

    def __init__(self, client: InventoryClient):
        self.client = client

    def allocate(
        self,
        product_id: str,
        qty,
        strategy: AllocationStrategy = AllocationStrategy.FEFO,
    ) -> AllocateResult:
        """バッチ内訳を仮押さえする。

        Args:
            product_id: 商品ID
            qty: 要求数量
            strategy: 引当戦略 (このクライアントは FEFO のみ使用)

        Returns:
            AllocationSuccess または AllocationFailure
        """
        quantity = to_decimal(qty)
        strategy = AllocationStrategy(strategy)

        if quantity <= 0:
            return AllocationFailure(product_id, quantity, "Quantity must be at least 1")

        try:
            status, payload = self.client.post_json(
                ALLOCATE_PATH,
                {
                    "product_id": product_id,
                    "quantity": qty_to_json(quantity),
                    "strategy": strategy.value,
                },
            )
        except InventoryAPIError as e:
            logger.warning("allocate %s x%s failed: %s", product_id, format_qty(quantity), e)
            return AllocationFailure(product_id, quantity, str(e))

        if not 200 <= status < 300 or not payload.get("ok"):
            msg = error_message(payload, f"Allocation failed (HTTP {status})")
            logger.warning("allocate %s x%s rejected: %s", product_id, format_qty(quantity), msg)
            return AllocationFailure(product_id, quantity, msg, status)

        lines = tuple(
            AllocationLine.from_dict(a) for a in payload.get("allocation") or [] if isinstance(a, dict)
        )
        total = sum((a.qty for a in lines), Decimal("0"))
        if total != quantity:
            msg = f"Allocation total {format_qty(total)} does not match requested {format_qty(quantity)}"
            logger.warning("allocate %s: %s", product_id, msg)
            return AllocationFailure(product_id, quantity, msg, status)

        logger.info(
            "allocated %s x%s (%s): %s",
            product_id, format_qty(quantity), strategy.value,
            ", ".join(f"{a.batch_id}:{format_qty(a.qty)}" for a in lines),
        )
        return AllocationSuccess(product_id, quantity, strategy, lines)

    def commit(
        self,
        product_id: str,
        allocation: Sequence[AllocationLine],
        reference: str,
        idempotency_key: Optional[str] = None,
    ) -> CommitResult:
        """引当内訳を伝票番号に対して確定する (在庫の本減算)。"""
        key = idempotency_key or commit_idempotency_key(product_id, allocation, reference)
        try:
            status, payload = self.client.post_json(
                COMMIT_PATH,
                {
                    "product_id": product_id,
                    "allocation": [a.to_payload() for a in allocation],
                    "reference": reference,
                },
                headers={"Idempotency-Key": key},
            )
        except InventoryAPIError as e:
            logger.warning("commit %s (%s) failed: %s", product_id, reference, e)
            return CommitResult(ok=False, error=str(e))

        if not 200 <= status < 300 or payload.get("ok") is False:
            msg = error_message(payload, f"Commit failed (HTTP {status})")
            logger.warning("commit %s (%s) rejected: %s", product_id, reference, msg)
            return CommitResult(ok=False, payload=payload, error=msg, status=status)

        logger.info("committed %s against %s", product_id, reference)
        return CommitResult(ok=True, payload=payload, status=status)

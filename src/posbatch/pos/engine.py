"""POS エンジン: 商品追加 (allocate) と会計 (commit) の流れを管理する"""

import logging
import uuid
from typing import Callable, Optional

from posbatch.batches.policy import QtyValidationError, get_best_batch, validate_qty
from posbatch.batches.repository import BatchRepository
from posbatch.models import Product, format_qty, to_decimal

from .allocator import AllocateResult, AllocationStrategy, BatchAllocator
from .cart import Cart, CartLine, CheckoutReport, LineOutcome, LineState

logger = logging.getLogger(__name__)


def _log_notify(message: str) -> None:
    logger.warning("POS: %s", message)


class PosEngine:
    """1会計セッション分のカートを持つ POS エンジン"""

    def __init__(
        self,
        allocator: BatchAllocator,
        repository: Optional[BatchRepository] = None,
        notify: Optional[Callable[[str], None]] = None,
        allow_expired_fallback: bool = True,
    ):
        """
        Args:
            allocator: allocate / commit を行う BatchAllocator
            repository: preflight で使うバッチ取得 (省略時は allocator のクライアントから作成)
            notify: オペレーター向けエラー通知 (省略時はログ出力)
            allow_expired_fallback: preflight で期限切れバッチへのフォールバックを許すか
        """
        self.allocator = allocator
        self.repository = repository or BatchRepository(allocator.client)
        self.notify = notify or _log_notify
        self.allow_expired_fallback = allow_expired_fallback
        self.cart = Cart()
        self.last_error: Optional[str] = None

    def preflight(self, product_id: str, qty=1) -> Optional[QtyValidationError]:
        """追加前の簡易チェック。サーバーの allocate の代わりにはならない。"""
        batches = self.repository.fetch_batches(product_id)
        best = get_best_batch(batches, allow_expired_fallback=self.allow_expired_fallback)
        return validate_qty(qty, best)

    def add_product(self, product: Product, qty=1) -> AllocateResult:
        """FEFO で引当し、成功したらカートに行を追加する。

        失敗時はカートを変更せず、エラーを notify にそのまま渡す。
        """
        quantity = to_decimal(qty)
        result = self.allocator.allocate(product.id, quantity, AllocationStrategy.FEFO)

        if not result.ok:
            self.last_error = result.error
            self.notify(result.error)
            return result

        self.last_error = None
        line = CartLine(
            id=str(uuid.uuid4()),
            product=product,
            qty=quantity,
            allocation=result.lines,
        )
        self.cart.add(line)
        logger.info("cart += %s x%s (line %s)", product.id, format_qty(quantity), line.id)
        return result

    def remove_line(self, line_id: str) -> CartLine:
        return self.cart.remove_line(line_id)

    def checkout(self, reference: str) -> CheckoutReport:
        """全行を追加順に1件ずつ確定する。

        途中の失敗で止めずに最後まで進め、行ごとの結果を返す。
        全行が COMMITTED になった場合のみカートを空にする。
        失敗した行は ALLOCATED のまま残るので、同じ伝票番号で再度 checkout すれば
        未確定の行だけが再送される。
        """
        if not reference or not str(reference).strip():
            raise ValueError("checkout reference is required")

        # 一部確定済みのカートは同じ伝票番号でしか再送できない
        previous = {l.reference for l in self.cart if l.state == LineState.COMMITTED}
        if previous and previous != {reference}:
            raise ValueError(
                f"cart is partially committed under {', '.join(sorted(previous))}; "
                f"retry checkout with the same reference"
            )

        report = CheckoutReport(reference=reference)

        for line in self.cart:
            if line.state == LineState.COMMITTED:
                report.outcomes.append(LineOutcome(line.id, line.product_id, LineState.COMMITTED))
                continue

            res = self.allocator.commit(line.product_id, line.allocation, reference)
            if res.ok:
                line.state = LineState.COMMITTED
                line.reference = reference
                line.last_error = None
                report.outcomes.append(LineOutcome(line.id, line.product_id, LineState.COMMITTED))
            else:
                line.last_error = res.error
                report.outcomes.append(LineOutcome(line.id, line.product_id, LineState.FAILED, res.error))

        if report.complete:
            self.cart.clear()
            self.last_error = None
            logger.info("checkout %s complete (%d lines)", reference, len(report.outcomes))
        else:
            failed = ", ".join(o.line_id for o in report.failed)
            self.last_error = f"{len(report.failed)} line(s) not committed: {failed}"
            self.notify(self.last_error)
        return report

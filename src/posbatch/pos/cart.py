"""POS カート (1会計セッション分)"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterator, Optional

from posbatch.models import AllocationLine, Product

CENT = Decimal("0.01")


class LineState(str, Enum):
    ALLOCATED = "allocated"
    COMMITTED = "committed"
    FAILED = "failed"      # LineOutcome 用。カート行は commit 失敗後も ALLOCATED のまま


@dataclass
class CartLine:
    """カートの1行。allocate 成功後にのみ作られる。"""
    id: str
    product: Product
    qty: Decimal
    allocation: tuple[AllocationLine, ...] = ()
    state: LineState = LineState.ALLOCATED
    last_error: Optional[str] = None
    reference: Optional[str] = None    # 確定時の伝票番号

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def line_total(self) -> Decimal:
        return self.product.price * self.qty

    @property
    def line_tax(self) -> Decimal:
        return self.line_total * self.product.tax_rate / Decimal("100")


class Cart:
    """追加順を保持する行リスト"""

    def __init__(self):
        self._lines: list[CartLine] = []

    def __iter__(self) -> Iterator[CartLine]:
        return iter(list(self._lines))

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    def add(self, line: CartLine) -> None:
        self._lines.append(line)

    def get(self, line_id: str) -> Optional[CartLine]:
        for line in self._lines:
            if line.id == line_id:
                return line
        return None

    def remove_line(self, line_id: str) -> CartLine:
        """行を削除。確定済みの行は削除できない。"""
        line = self.get(line_id)
        if line is None:
            raise KeyError(line_id)
        if line.state == LineState.COMMITTED:
            raise ValueError(f"cart line {line_id} is already committed")
        self._lines.remove(line)
        return line

    def clear(self) -> None:
        self._lines = []

    def pending(self) -> list[CartLine]:
        """まだ確定していない行"""
        return [l for l in self._lines if l.state != LineState.COMMITTED]

    # ── 金額 ──

    @property
    def subtotal(self) -> Decimal:
        total = sum((l.line_total for l in self._lines), Decimal("0"))
        return total.quantize(CENT, rounding=ROUND_HALF_UP)

    @property
    def tax(self) -> Decimal:
        total = sum((l.line_tax for l in self._lines), Decimal("0"))
        return total.quantize(CENT, rounding=ROUND_HALF_UP)

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax


@dataclass(frozen=True)
class LineOutcome:
    line_id: str
    product_id: str
    state: LineState
    error: Optional[str] = None


@dataclass
class CheckoutReport:
    """checkout の結果。行ごとの確定 / 失敗を記録する。"""
    reference: str
    outcomes: list[LineOutcome] = field(default_factory=list)

    @property
    def committed(self) -> list[LineOutcome]:
        return [o for o in self.outcomes if o.state == LineState.COMMITTED]

    @property
    def failed(self) -> list[LineOutcome]:
        return [o for o in self.outcomes if o.state == LineState.FAILED]

    @property
    def complete(self) -> bool:
        return not self.failed

    @property
    def ok(self) -> bool:
        return self.complete

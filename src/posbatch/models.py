"""在庫バッチ・引当 データモデル定義"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def to_decimal(value: Any) -> Decimal:
    """数量・金額を Decimal に変換。変換できない値・NaN・無限大は 0。"""
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            s = str(value if value is not None else "").strip()
            if not s:
                return Decimal("0")
            d = Decimal(s)
        except (InvalidOperation, ValueError):
            return Decimal("0")
    if not d.is_finite():
        return Decimal("0")
    return d


def format_qty(qty: Decimal) -> str:
    """表示用の数量文字列。整数値は小数点なし (3.0 -> "3")。"""
    qty = to_decimal(qty)
    if qty == qty.to_integral_value():
        return str(int(qty))
    return format(qty.normalize(), "f")


def qty_to_json(qty: Decimal):
    """JSON 送信用の数量 (整数値は int、それ以外は float)。"""
    qty = to_decimal(qty)
    if qty == qty.to_integral_value():
        return int(qty)
    return float(qty)


_SHORT_OFFSET = re.compile(r"(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)([+-]\d{2})(\d{2})?$")


def parse_expiry(value: Any) -> Optional[datetime]:
    """有効期限を UTC の datetime に変換。

    日付のみ ("2025-03-01") は UTC の 0 時とみなす。
    空文字・解釈できない値は None を返す。
    解釈できない値の区別は is_unparseable_expiry で行う。
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    # "+00" / "+0900" 形式のオフセット (Python 3.10 の fromisoformat は非対応)
    m = _SHORT_OFFSET.search(s)
    if m:
        s = s[:m.start()] + m.group(1) + m.group(2) + ":" + (m.group(3) or "00")
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_unparseable_expiry(value: Any) -> bool:
    """値はあるが日付として解釈できない有効期限か。"""
    if value is None or isinstance(value, (date, datetime)):
        return False
    return bool(str(value).strip()) and parse_expiry(value) is None


@dataclass(frozen=True)
class Product:
    """販売対象の商品"""
    id: str
    name: str = ""
    sku: Optional[str] = None
    price: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")     # パーセント (例: 5 = 5%)
    stock: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        stock = data.get("stock")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name") or ""),
            sku=data.get("sku") or None,
            price=to_decimal(data.get("price")),
            tax_rate=to_decimal(data.get("tax_rate")),
            stock=None if stock is None else to_decimal(stock),
        )


@dataclass(frozen=True)
class BatchRecord:
    """商品の入荷ロット 1件分"""
    id: str
    batch_number: str = ""
    expiry: Optional[datetime] = None    # None = 期限なし
    available_qty: Decimal = Decimal("0")
    expiry_invalid: bool = False         # 期限の値が解釈できない (期限切れ扱い)

    @classmethod
    def from_dict(cls, data: dict) -> "BatchRecord":
        qty = to_decimal(data.get("available_qty"))
        raw_expiry = data.get("expiry")
        return cls(
            id=str(data.get("id", "")),
            batch_number=str(data.get("batch_number") or ""),
            expiry=parse_expiry(raw_expiry),
            available_qty=max(qty, Decimal("0")),
            expiry_invalid=is_unparseable_expiry(raw_expiry),
        )

    @property
    def selectable(self) -> bool:
        return self.available_qty > 0


@dataclass(frozen=True)
class AllocationLine:
    """引当結果の (バッチ, 数量) 1行"""
    batch_id: str
    qty: Decimal
    expiry_date: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> "AllocationLine":
        expiry = data.get("expiry_date", data.get("expiry"))
        return cls(
            batch_id=str(data.get("batch_id", "")),
            qty=to_decimal(data.get("qty", data.get("quantity"))),
            expiry_date=str(expiry) if expiry else None,
            raw=dict(data),
        )

    def to_payload(self) -> dict:
        """commit 用のペイロード。サーバーから受け取った形をそのまま返す。"""
        if self.raw:
            return dict(self.raw)
        return {
            "batch_id": self.batch_id,
            "qty": qty_to_json(self.qty),
            "expiry_date": self.expiry_date,
        }

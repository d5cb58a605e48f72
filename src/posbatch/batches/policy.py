"""FEFO バッチ選択ポリシー

- sort_batches: 有効期限の早い順 (期限なしは末尾)、同一期限はサーバー順を維持
- get_best_batch: 自動追加用のバッチを1件選ぶ
- validate_qty: 数量とバッチの組み合わせを事前チェック (UI 向けの目安。最終判定はサーバー)
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from posbatch.models import BatchRecord, format_qty, is_unparseable_expiry, parse_expiry, to_decimal

logger = logging.getLogger(__name__)

EXPIRY_WARNING_DAYS = 30


class ValidationCode(str, Enum):
    NO_BATCH_SELECTED = "no_batch_selected"
    INVALID_QUANTITY = "invalid_quantity"
    OUT_OF_STOCK = "out_of_stock"
    INSUFFICIENT_STOCK = "insufficient_stock"


class QtyValidationError(Exception):
    """数量チェックのエラー。validate_qty は raise せずに返す。"""
    def __init__(self, code: ValidationCode, message: str, available: Optional[Decimal] = None):
        self.code = code
        self.message = message
        self.available = available
        super().__init__(message)


class ExpiryRisk(str, Enum):
    EXPIRED = "expired"
    NEAR = "near"
    OK = "ok"
    NONE = "none"


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


_MIN = datetime.min.replace(tzinfo=timezone.utc)


def sort_batches(batches: Iterable[BatchRecord]) -> list[BatchRecord]:
    """有効期限の昇順に並べ替えた新しいリストを返す。

    期限なしは末尾。期限が解釈できないバッチは期限切れ扱いで先頭側に並ぶ。
    """
    # sorted は安定ソートなので、同一期限はサーバー順のまま
    return sorted(batches, key=_sort_key)


def _sort_key(b: BatchRecord):
    if b.expiry_invalid:
        return (False, _MIN)
    return (b.expiry is None, b.expiry or _MIN)


def is_valid(batch: BatchRecord, now: Optional[datetime] = None) -> bool:
    """期限なし、または期限が現在時刻以降なら有効。期限が解釈できないバッチは無効。"""
    if batch.expiry_invalid:
        return False
    return batch.expiry is None or batch.expiry >= _now(now)


def get_best_batch(
    batches: list[BatchRecord],
    now: Optional[datetime] = None,
    allow_expired_fallback: bool = True,
) -> Optional[BatchRecord]:
    """自動追加用の「最適」バッチを選ぶ。

    1. 期限切れでないバッチの先頭 (入力は sort_batches 済みの前提 = FEFO)
    2. 全て期限切れなら、在庫数が最大のバッチ (同数なら先に出てきた方)
       allow_expired_fallback=False の場合は None

    Args:
        batches: sort_batches 済みのバッチリスト (変更しない)
        now: 判定時刻 (省略時は現在の UTC)
        allow_expired_fallback: 期限切れバッチへのフォールバックを許可するか

    Returns:
        選ばれた BatchRecord、候補がなければ None
    """
    if not batches:
        return None

    current = _now(now)
    valid = [b for b in batches if is_valid(b, current)]
    if valid:
        return valid[0]

    if not allow_expired_fallback:
        logger.info("all %d batches expired; fallback disabled", len(batches))
        return None

    best = max(batches, key=lambda b: b.available_qty)
    logger.warning(
        "all batches expired, falling back to batch %s (available %s)",
        best.id, format_qty(best.available_qty),
    )
    return best


def validate_qty(qty, batch: Optional[BatchRecord]) -> Optional[QtyValidationError]:
    """数量をバッチの在庫と照合。問題なければ None。"""
    if batch is None:
        return QtyValidationError(ValidationCode.NO_BATCH_SELECTED, "No batch selected")

    qty = to_decimal(qty)
    if qty <= 0:
        return QtyValidationError(ValidationCode.INVALID_QUANTITY, "Quantity must be at least 1")

    if batch.available_qty <= 0:
        return QtyValidationError(ValidationCode.OUT_OF_STOCK, "Batch out of stock", available=batch.available_qty)

    if qty > batch.available_qty:
        return QtyValidationError(
            ValidationCode.INSUFFICIENT_STOCK,
            f"Only {format_qty(batch.available_qty)} available in this batch",
            available=batch.available_qty,
        )

    return None


def expiry_risk(expiry, now: Optional[datetime] = None, warning_days: int = EXPIRY_WARNING_DAYS) -> ExpiryRisk:
    """引当済みバッチの表示色分け用。期限切れ / 期限間近 / 問題なし / 期限なし。"""
    if not isinstance(expiry, datetime):
        if is_unparseable_expiry(expiry):
            return ExpiryRisk.EXPIRED
        expiry = parse_expiry(expiry)
    if expiry is None:
        return ExpiryRisk.NONE

    remaining = expiry - _now(now)
    if remaining < timedelta(0):
        return ExpiryRisk.EXPIRED
    if remaining < timedelta(days=warning_days):
        return ExpiryRisk.NEAR
    return ExpiryRisk.OK

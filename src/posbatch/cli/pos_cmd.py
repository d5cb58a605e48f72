#!/usr/bin/env python3
"""
POS バッチ引当 CLI

Usage:
    posbatch batches PRODUCT_ID
    posbatch check PRODUCT_ID QTY
    posbatch sell --reference INV-100 PRODUCT_ID:QTY [PRODUCT_ID:QTY ...]
"""

import argparse
import logging
import sys

from dotenv import load_dotenv

from posbatch.batches import BatchRepository, expiry_risk, get_best_batch
from posbatch.batches.policy import ExpiryRisk
from posbatch.client import InventoryClient
from posbatch.config import Settings
from posbatch.models import Product, format_qty, to_decimal
from posbatch.pos import BatchAllocator, PosEngine

load_dotenv()

RISK_LABELS = {
    ExpiryRisk.EXPIRED: "期限切れ",
    ExpiryRisk.NEAR: "期限間近",
    ExpiryRisk.OK: "",
    ExpiryRisk.NONE: "期限なし",
}


def _build(settings: Settings) -> tuple[InventoryClient, BatchRepository]:
    client = InventoryClient(
        base_url=settings.api_base,
        session_cookie=settings.session_cookie,
        timeout=settings.timeout,
    )
    repo = BatchRepository(client, retries=settings.fetch_retries)
    return client, repo


def _parse_item(raw: str) -> tuple[str, str]:
    """「PRODUCT_ID:QTY」を分解。数量省略時は 1。"""
    product_id, sep, qty = raw.rpartition(":")
    if not sep:
        return raw, "1"
    return product_id, qty


def cmd_batches(args, settings: Settings) -> int:
    """バッチ一覧を FEFO 順に表示"""
    _, repo = _build(settings)
    batches = repo.fetch_batches(args.product_id)
    if repo.error:
        print(f"エラー: {repo.error}")
        return 1
    if not batches:
        print("バッチがありません。")
        return 0

    best = get_best_batch(batches, allow_expired_fallback=settings.allow_expired_fallback)

    print(f"=== バッチ一覧 ({args.product_id}, {len(batches)} 件) ===\n")
    for b in batches:
        mark = "*" if best is not None and b.id == best.id else " "
        exp = b.expiry.date().isoformat() if b.expiry else ("?" if b.expiry_invalid else "-")
        if b.expiry_invalid:
            risk = RISK_LABELS[ExpiryRisk.EXPIRED]
        else:
            risk = RISK_LABELS[expiry_risk(b.expiry, warning_days=settings.expiry_warning_days)]
        tag = f" [{risk}]" if risk else ""
        print(f" {mark} {b.batch_number or b.id}  期限: {exp}  在庫: {format_qty(b.available_qty)}{tag}")

    if best is None:
        print("\n選択可能なバッチがありません。")
    return 0


def cmd_check(args, settings: Settings) -> int:
    """数量を事前チェック"""
    client, repo = _build(settings)
    engine = PosEngine(
        BatchAllocator(client),
        repository=repo,
        allow_expired_fallback=settings.allow_expired_fallback,
    )
    err = engine.preflight(args.product_id, to_decimal(args.qty))
    if repo.error:
        print(f"エラー: {repo.error}")
        return 1
    if err is not None:
        print(f"NG: {err.message}")
        return 1
    print("OK")
    return 0


def cmd_sell(args, settings: Settings) -> int:
    """商品を追加して会計"""
    client, repo = _build(settings)
    engine = PosEngine(
        BatchAllocator(client),
        repository=repo,
        notify=lambda msg: print(f"  ! {msg}"),
        allow_expired_fallback=settings.allow_expired_fallback,
    )

    for raw in args.items:
        product_id, qty = _parse_item(raw)
        if not product_id:
            print(f"エラー: 不正な指定です: {raw}")
            return 1
        product = client.get_product(product_id) or Product(id=product_id)
        print(f"  [追加] {product.name or product_id} x{qty}")
        result = engine.add_product(product, to_decimal(qty))
        if not result.ok:
            print("中断しました。カートは確定されていません。")
            return 1
        for a in result.lines:
            exp = a.expiry_date or "-"
            print(f"      バッチ {a.batch_id}  数量 {format_qty(a.qty)}  期限 {exp}")

    cart = engine.cart
    print(f"\n小計: {cart.subtotal}  税: {cart.tax}  合計: {cart.total}")

    report = engine.checkout(args.reference)
    for o in report.outcomes:
        if o.error:
            print(f"  [失敗] {o.product_id} ({o.line_id}): {o.error}")
        else:
            print(f"  [確定] {o.product_id} ({o.line_id})")

    if not report.complete:
        print(f"\n{len(report.failed)} 件が未確定です。再実行してください。")
        return 1
    print(f"\n完了: {len(report.committed)} 件確定 (伝票: {args.reference})")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="POS バッチ引当")
    parser.add_argument("-v", "--verbose", action="store_true", help="詳細ログを出力")
    subparsers = parser.add_subparsers(dest="command")

    # batches コマンド
    p_batches = subparsers.add_parser("batches", help="バッチ一覧を表示")
    p_batches.add_argument("product_id", help="商品ID")

    # check コマンド
    p_check = subparsers.add_parser("check", help="数量を事前チェック")
    p_check.add_argument("product_id", help="商品ID")
    p_check.add_argument("qty", help="数量")

    # sell コマンド
    p_sell = subparsers.add_parser("sell", help="商品を引当して会計")
    p_sell.add_argument("--reference", required=True, help="伝票番号 (例: INV-100)")
    p_sell.add_argument("items", nargs="+", help="PRODUCT_ID:QTY")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings()

    if args.command == "batches":
        return cmd_batches(args, settings)
    elif args.command == "check":
        return cmd_check(args, settings)
    elif args.command == "sell":
        return cmd_sell(args, settings)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())

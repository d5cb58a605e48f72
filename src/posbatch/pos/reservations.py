"""
在庫予約 (reserve / update / release)

- reserve は一時的な失敗をバックオフ付きで再試行する。
  1回の reserve 呼び出し内では同じ Idempotency-Key を使い回すため、再送しても二重予約にならない。
- release はベストエフォート。失敗してもログに残すだけで例外は投げない。
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote

from posbatch.client import InventoryAPIError, InventoryClient, error_message
from posbatch.models import qty_to_json, to_decimal

logger = logging.getLogger(__name__)

RESERVE_PATH = "/api/hms/reserve"
DEFAULT_RETRIES = 2


class ReservationError(Exception):
    """予約 API エラー"""
    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


@dataclass(frozen=True)
class Reservation:
    reservation_id: str
    expires_at: Optional[str] = None


def _reservation_from(payload: dict, fallback_id: str = "") -> Reservation:
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    return Reservation(
        reservation_id=str(data.get("reservation_id") or payload.get("reservation_id") or fallback_id),
        expires_at=data.get("expires_at") or payload.get("expires_at") or None,
    )


class ReservationClient:
    """在庫予約 API クライアント"""

    def __init__(
        self,
        client: InventoryClient,
        retries: int = DEFAULT_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.retries = max(0, retries)
        self._sleep = sleep

    def reserve(
        self,
        product_id: str,
        batch_id: Optional[str],
        quantity,
        company_id: str,
        location_id: str,
        patient_id: Optional[str] = None,
        prescription_line_id: Optional[str] = None,
    ) -> Reservation:
        """在庫を予約する。

        Raises:
            ReservationError: 会社/拠点が未指定、または再試行後も失敗した場合
        """
        if not company_id or not location_id:
            raise ReservationError("Missing company or location")

        body = {
            "product_id": product_id,
            "batch_id": batch_id,
            "quantity": qty_to_json(to_decimal(quantity)),
            "company_id": company_id,
            "location_id": location_id,
        }
        if patient_id:
            body["patient_id"] = patient_id
        if prescription_line_id:
            body["prescription_line_id"] = prescription_line_id

        key = f"reserve|{company_id}|{location_id}|{uuid.uuid4()}"
        attempt = 0
        while True:
            attempt += 1
            status = None
            try:
                status, payload = self.client.post_json(RESERVE_PATH, body, headers={"Idempotency-Key": key})
                if 200 <= status < 300:
                    reservation = _reservation_from(payload)
                    logger.info("reserved %s x%s -> %s", product_id, body["quantity"], reservation.reservation_id)
                    return reservation
                message = error_message(payload, f"HTTP {status}")
            except InventoryAPIError as e:
                message = e.message or str(e)

            if attempt > self.retries:
                logger.warning("reserve %s failed after %d attempts: %s", product_id, attempt, message)
                raise ReservationError(message, status)

            backoff = 0.15 * (2 ** attempt)
            logger.debug("reserve %s attempt %d failed (%s), retry in %.2fs", product_id, attempt, message, backoff)
            self._sleep(backoff)

    def update_reservation(self, reservation_id: str, quantity) -> Reservation:
        """予約数量を変更する。"""
        path = f"{RESERVE_PATH}/{quote(reservation_id, safe='')}"
        try:
            status, payload = self.client.patch_json(path, {"quantity": qty_to_json(to_decimal(quantity))})
        except InventoryAPIError as e:
            raise ReservationError(e.message or str(e)) from None
        if not 200 <= status < 300:
            raise ReservationError(error_message(payload, f"HTTP {status}"), status)
        return _reservation_from(payload, fallback_id=reservation_id)

    def release_reservation(self, reservation_id: str) -> bool:
        """予約を解放する。成功したら True。"""
        path = f"{RESERVE_PATH}/{quote(reservation_id, safe='')}/release"
        try:
            status, payload = self.client.post_json(path)
        except InventoryAPIError as e:
            logger.warning("release %s failed: %s", reservation_id, e)
            return False
        if not 200 <= status < 300:
            logger.warning("release %s non-OK %s: %s", reservation_id, status, error_message(payload, "<no-body>"))
            return False
        return True

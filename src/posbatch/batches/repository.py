"""バッチ一覧の取得と正規化"""

import logging
import time
from typing import Callable, Optional

from posbatch.client import BatchFetchError, InventoryClient
from posbatch.models import BatchRecord

from .policy import sort_batches

logger = logging.getLogger(__name__)

# 一時的な障害として再試行するステータス
RETRY_STATUSES = {429, 500, 502, 503, 504}


class BatchRepository:
    """商品ごとのバッチ一覧を在庫サービスから取得し、FEFO 順に並べて返す。

    loading / error / batches は直近のリクエストの状態 (UI 表示用)。
    """

    def __init__(
        self,
        client: InventoryClient,
        retries: int = 2,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.retries = max(0, retries)
        self.timeout = timeout
        self._sleep = sleep

        self.loading = False
        self.error: Optional[str] = None
        self.batches: list[BatchRecord] = []

    def _get_with_retry(self, product_id: str) -> list[dict]:
        attempt = 0
        while True:
            try:
                return self.client.get_batches(product_id, timeout=self.timeout)
            except BatchFetchError as e:
                transient = e.status is None or e.status in RETRY_STATUSES
                if not transient or attempt >= self.retries:
                    raise
                attempt += 1
                backoff = 0.15 * (2 ** attempt)  # 0.3, 0.6, ...
                logger.debug("get_batches %s failed (%s), retry %d in %.2fs", product_id, e, attempt, backoff)
                self._sleep(backoff)

    def fetch_batches(self, product_id: str) -> list[BatchRecord]:
        """バッチ一覧を取得。

        失敗しても例外は投げず、空リストを返して self.error にメッセージを残す。
        """
        self.loading = True
        self.error = None
        try:
            if not product_id:
                raise BatchFetchError(None, "product_id is required")

            raw = self._get_with_retry(product_id)
            self.batches = sort_batches(BatchRecord.from_dict(b) for b in raw)
            return list(self.batches)
        except BatchFetchError as e:
            logger.warning("fetch_batches %s failed: %s", product_id, e)
            self.error = e.message or "Failed to load batches"
            self.batches = []
            return []
        finally:
            self.loading = False

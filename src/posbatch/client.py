"""
在庫サービス API クライアント

POS 画面から呼ばれる在庫系エンドポイントへの薄い HTTP ラッパー。
認証はバックエンド側の責務で、ここではセッション Cookie を転送するだけ。

エンドポイント:
- GET   /api/hms/products?q=...            商品検索
- GET   /api/hms/products/{id}             商品取得
- GET   /api/hms/products/{id}/batches     バッチ一覧
- POST  /api/stock/allocate                引当 (仮押さえ)
- POST  /api/stock/commit                  引当確定
- POST  /api/hms/reserve                   在庫予約
"""

import logging
from typing import Optional
from urllib.parse import quote

import requests

from posbatch.models import Product

logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:3000"
DEFAULT_TIMEOUT = 10.0

USER_AGENT = "posbatch/0.1.0"


class InventoryAPIError(Exception):
    """在庫サービス API エラー。status=None は通信エラー。"""
    def __init__(self, status: Optional[int], message: str = "", payload: Optional[dict] = None):
        self.status = status
        self.message = message
        self.payload = payload or {}
        if status is None:
            super().__init__(message)
        else:
            super().__init__(f"HTTP {status}: {message}")


class BatchFetchError(InventoryAPIError):
    """バッチ一覧の取得失敗"""


def error_message(payload: Optional[dict], fallback: str) -> str:
    """レスポンス JSON からエラーメッセージを取り出す (error → message → fallback)。"""
    if isinstance(payload, dict):
        msg = payload.get("error") or payload.get("message")
        if msg:
            return str(msg)
    return fallback


class InventoryClient:
    """在庫サービス API クライアント"""

    def __init__(
        self,
        base_url: str = BASE_URL,
        session_cookie: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            base_url: API のベース URL (例: "https://erp.example.com")
            session_cookie: ブラウザセッションの Cookie ヘッダー値。
                例: "session=abc123; company_id=42"
            timeout: 1リクエストあたりのタイムアウト秒数
            session: テスト等で差し替える requests.Session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        })
        if session_cookie:
            self._session.headers["Cookie"] = session_cookie

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> tuple[int, dict]:
        url = f"{self.base_url}{path}"
        hdrs = {"Content-Type": "application/json"} if json_body is not None else {}
        if headers:
            hdrs.update(headers)

        logger.debug("%s %s", method, url)
        try:
            resp = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=hdrs,
                timeout=timeout or self.timeout,
            )
        except requests.Timeout:
            raise InventoryAPIError(None, "timeout") from None
        except requests.RequestException as e:
            raise InventoryAPIError(None, f"network error {path}: {e}") from None

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {"data": payload}
        return resp.status_code, payload

    def get_json(self, path: str, params: Optional[dict] = None, timeout: Optional[float] = None) -> tuple[int, dict]:
        return self._request("GET", path, params=params, timeout=timeout)

    def post_json(
        self,
        path: str,
        body: Optional[dict] = None,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> tuple[int, dict]:
        return self._request("POST", path, json_body=body if body is not None else {}, headers=headers, timeout=timeout)

    def patch_json(
        self,
        path: str,
        body: dict,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> tuple[int, dict]:
        return self._request("PATCH", path, json_body=body, headers=headers, timeout=timeout)

    # ── 商品 ──

    def search_products(self, query: str, timeout: Optional[float] = None) -> list[Product]:
        """商品を検索。失敗時は空リスト (警告ログのみ)。"""
        if not query or not query.strip():
            return []
        try:
            status, payload = self.get_json("/api/hms/products", params={"q": query}, timeout=timeout)
        except InventoryAPIError as e:
            logger.warning("search_products error: %s", e)
            return []
        if not 200 <= status < 300:
            logger.warning("search_products non-OK %s: %s", status, error_message(payload, "<no-body>"))
            return []
        return [Product.from_dict(p) for p in payload.get("data") or [] if isinstance(p, dict)]

    def get_product(self, product_id: str, timeout: Optional[float] = None) -> Optional[Product]:
        """商品を1件取得。失敗時は None。"""
        if not product_id:
            return None
        try:
            status, payload = self.get_json(f"/api/hms/products/{quote(product_id, safe='')}", timeout=timeout)
        except InventoryAPIError as e:
            logger.warning("get_product error: %s", e)
            return None
        if not 200 <= status < 300:
            logger.warning("get_product non-OK %s: %s", status, error_message(payload, "<no-body>"))
            return None
        data = payload.get("data")
        return Product.from_dict(data) if isinstance(data, dict) else None

    # ── バッチ ──

    def get_batches(self, product_id: str, timeout: Optional[float] = None) -> list[dict]:
        """商品のバッチ一覧 (生データ) を取得。

        Returns:
            サーバーが返した順のバッチ dict のリスト

        Raises:
            BatchFetchError: 通信エラーまたは 2xx 以外のレスポンス
        """
        try:
            status, payload = self.get_json(
                f"/api/hms/products/{quote(product_id, safe='')}/batches", timeout=timeout
            )
        except InventoryAPIError as e:
            raise BatchFetchError(None, e.message) from None

        if not 200 <= status < 300:
            raise BatchFetchError(status, error_message(payload, "Failed to load batches"), payload)

        data = payload.get("data") or []
        return [b for b in data if isinstance(b, dict)]

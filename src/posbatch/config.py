"""環境変数ベースの設定"""

import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


class Settings:
    """POS クライアント設定。CLI では .env から読み込まれる。"""

    def __init__(self) -> None:
        self.api_base = os.getenv("POS_API_BASE", "http://localhost:3000").strip() or "http://localhost:3000"
        # ブラウザセッションの Cookie をそのまま転送する (認証はバックエンド側)
        self.session_cookie = os.getenv("POS_SESSION_COOKIE", "").strip() or None
        self.timeout = float(os.getenv("POS_TIMEOUT", "10") or 10)
        self.fetch_retries = int(os.getenv("POS_FETCH_RETRIES", "2") or 2)
        self.expiry_warning_days = int(os.getenv("POS_EXPIRY_WARNING_DAYS", "30") or 30)
        self.allow_expired_fallback = _env_bool("POS_ALLOW_EXPIRED_FALLBACK", True)

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse

import pytest

from posbatch.client import InventoryClient

_NO_BODY = object()


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = _NO_BODY):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is _NO_BODY:
            raise ValueError("no json body")
        return self._payload


@dataclass
class Call:
    method: str
    path: str
    params: Optional[dict]
    json: Optional[dict]
    headers: dict
    timeout: Optional[float]


class FakeSession:
    """requests.Session の代わり。(method, path) ごとにレスポンスを順番に返す。

    最後の1件は使い切らずに繰り返し返す。
    例外インスタンスは raise、callable は Call を渡して呼び出す。
    """

    def __init__(self):
        self.headers = {}
        self.calls: list[Call] = []
        self.routes: dict[tuple[str, str], list] = {}

    def add(self, method: str, path: str, *responses):
        self.routes.setdefault((method.upper(), path), []).extend(responses)
        return self

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = urlparse(url).path
        call = Call(method, path, params, json, dict(headers or {}), timeout)
        self.calls.append(call)

        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"unexpected request: {method} {path}")
        resp = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(resp, Exception):
            raise resp
        if callable(resp) and not isinstance(resp, FakeResponse):
            return resp(call)
        return resp

    def calls_to(self, method: str, path: str) -> list[Call]:
        return [c for c in self.calls if c.method == method and c.path == path]


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session):
    return InventoryClient(base_url="http://pos.test", session=session, timeout=5)


@pytest.fixture
def no_sleep():
    slept = []
    return slept, slept.append

import pytest
import requests

from posbatch.client import BatchFetchError, InventoryAPIError, InventoryClient

from conftest import FakeResponse, FakeSession


def test_session_cookie_is_forwarded():
    session = FakeSession()
    InventoryClient(base_url="http://pos.test/", session_cookie="session=abc", session=session)

    assert session.headers["Cookie"] == "session=abc"
    assert session.headers["Accept"] == "application/json"


def test_post_json_sends_body_and_returns_payload(client, session):
    session.add("POST", "/api/x", FakeResponse(201, {"ok": True}))

    status, payload = client.post_json("/api/x", {"a": 1}, headers={"X-Test": "1"})

    assert (status, payload) == (201, {"ok": True})
    call = session.calls[0]
    assert call.json == {"a": 1}
    assert call.headers["Content-Type"] == "application/json"
    assert call.headers["X-Test"] == "1"
    assert call.timeout == 5


def test_non_json_body_is_empty_payload(client, session):
    session.add("GET", "/api/x", FakeResponse(502))

    assert client.get_json("/api/x") == (502, {})


def test_transport_errors_raise_inventory_api_error(client, session):
    session.add("GET", "/api/slow", requests.Timeout())
    session.add("GET", "/api/down", requests.ConnectionError("refused"))

    with pytest.raises(InventoryAPIError) as exc:
        client.get_json("/api/slow")
    assert exc.value.status is None
    assert exc.value.message == "timeout"

    with pytest.raises(InventoryAPIError):
        client.get_json("/api/down")


def test_get_batches_raises_batch_fetch_error(client, session):
    session.add("GET", "/api/hms/products/P1/batches", FakeResponse(500, {"message": "db down"}))

    with pytest.raises(BatchFetchError) as exc:
        client.get_batches("P1")
    assert exc.value.status == 500
    assert exc.value.message == "db down"


def test_get_batches_quotes_product_id(client, session):
    session.add("GET", "/api/hms/products/a%2Fb/batches", FakeResponse(200, {"data": [{"id": "1"}, "junk"]}))

    assert client.get_batches("a/b") == [{"id": "1"}]


def test_search_products(client, session):
    session.add("GET", "/api/hms/products", FakeResponse(200, {"data": [{"id": "P1", "name": "Amoxicillin"}]}))

    products = client.search_products("amox")

    assert [p.name for p in products] == ["Amoxicillin"]
    assert session.calls[0].params == {"q": "amox"}
    assert client.search_products("   ") == []
    assert len(session.calls) == 1


def test_product_lookups_are_resilient(client, session):
    session.add("GET", "/api/hms/products", FakeResponse(500, {"error": "boom"}))
    session.add("GET", "/api/hms/products/P9", requests.ConnectionError("down"))

    assert client.search_products("x") == []
    assert client.get_product("P9") is None
    assert client.get_product("") is None

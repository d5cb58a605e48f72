from decimal import Decimal

import requests

from posbatch.models import AllocationLine
from posbatch.pos.allocator import (
    ALLOCATE_PATH,
    COMMIT_PATH,
    AllocationStrategy,
    BatchAllocator,
    commit_idempotency_key,
)

from conftest import FakeResponse


def test_allocate_sends_fefo_request(client, session):
    session.add("POST", ALLOCATE_PATH, FakeResponse(200, {"ok": True, "allocation": [
        {"batch_id": "B1", "qty": 3, "expiry_date": "2025-01-10"},
        {"batch_id": "B2", "qty": 2, "expiry_date": "2025-02-01"},
    ]}))

    result = BatchAllocator(client).allocate("P1", 5)

    assert result.ok
    assert result.strategy == AllocationStrategy.FEFO
    assert [(a.batch_id, a.qty) for a in result.lines] == [("B1", 3), ("B2", 2)]
    assert sum(a.qty for a in result.lines) == result.quantity == 5
    assert session.calls[0].json == {"product_id": "P1", "quantity": 5, "strategy": "FEFO"}


def test_allocate_passes_other_strategies(client, session):
    session.add("POST", ALLOCATE_PATH, FakeResponse(200, {"ok": True, "allocation": [{"batch_id": "B1", "qty": 1}]}))

    BatchAllocator(client).allocate("P1", 1, strategy="LIFO")

    assert session.calls[0].json["strategy"] == "LIFO"


def test_allocate_rejection_is_verbatim(client, session):
    session.add("POST", ALLOCATE_PATH, FakeResponse(200, {"ok": False, "error": "insufficient stock"}))

    result = BatchAllocator(client).allocate("P2", 100)

    assert not result.ok
    assert result.error == "insufficient stock"


def test_allocate_http_error(client, session):
    session.add("POST", ALLOCATE_PATH, FakeResponse(500))

    result = BatchAllocator(client).allocate("P1", 1)

    assert not result.ok
    assert result.status == 500
    assert result.error == "Allocation failed (HTTP 500)"


def test_allocate_transport_error_is_not_retried(client, session):
    session.add("POST", ALLOCATE_PATH, requests.Timeout())

    result = BatchAllocator(client).allocate("P1", 1)

    assert not result.ok
    assert result.error == "timeout"
    assert len(session.calls) == 1


def test_allocate_rejects_breakdown_that_does_not_sum_to_request(client, session):
    session.add("POST", ALLOCATE_PATH, FakeResponse(200, {"ok": True, "allocation": [{"batch_id": "B1", "qty": 2}]}))

    result = BatchAllocator(client).allocate("P1", 3)

    assert not result.ok
    assert result.error == "Allocation total 2 does not match requested 3"


def test_allocate_non_positive_quantity_skips_server(client, session):
    result = BatchAllocator(client).allocate("P1", 0)

    assert not result.ok
    assert session.calls == []


def test_commit_sends_allocation_verbatim_with_idempotency_key(client, session):
    session.add("POST", COMMIT_PATH, FakeResponse(200, {"ok": True}))
    raw = {"batch_id": "B1", "qty": 2, "expiry": "2025-03-01"}
    allocation = (AllocationLine.from_dict(raw),)

    result = BatchAllocator(client).commit("P1", allocation, "INV-100")

    assert result.ok
    call = session.calls[0]
    assert call.json == {"product_id": "P1", "allocation": [raw], "reference": "INV-100"}
    assert call.headers["Idempotency-Key"] == commit_idempotency_key("P1", allocation, "INV-100")


def test_commit_idempotency_key_is_stable_per_tuple():
    a = (AllocationLine("B1", Decimal("2")),)
    b = (AllocationLine("B1", Decimal("2.0")),)

    assert commit_idempotency_key("P1", a, "INV-1") == commit_idempotency_key("P1", b, "INV-1")
    assert commit_idempotency_key("P1", a, "INV-1") != commit_idempotency_key("P1", a, "INV-2")
    assert commit_idempotency_key("P1", a, "INV-1") != commit_idempotency_key("P2", a, "INV-1")


def test_commit_failure(client, session):
    session.add("POST", COMMIT_PATH, FakeResponse(200, {"ok": False, "message": "batch locked"}))

    result = BatchAllocator(client).commit("P1", (AllocationLine("B1", Decimal("1")),), "INV-1")

    assert not result.ok
    assert result.error == "batch locked"

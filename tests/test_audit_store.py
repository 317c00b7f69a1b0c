from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List

import httpx
import pytest

from conftest import COUCH_URL, FakeUpstream
from cryptobot.audit_store import AuditLogger, AuditStoreError, CouchAuditStore, FileAuditStore
from cryptobot.models import AuditRecord


class BrokenStore:
    async def ensure(self) -> None:
        raise AuditStoreError("server down")


class FlakyResetStore:
    """In-memory store whose first reset() fails before touching anything."""

    def __init__(self) -> None:
        self.records: List[AuditRecord] = []
        self.ensure_calls = 0
        self.reset_failures = 1

    async def ensure(self) -> None:
        self.ensure_calls += 1

    async def insert(self, record: AuditRecord) -> None:
        self.records.append(record)

    async def list_records(self) -> List[AuditRecord]:
        return list(self.records)

    async def reset(self) -> None:
        if self.reset_failures:
            self.reset_failures -= 1
            raise AuditStoreError("delete refused")
        self.records = []


@pytest.mark.asyncio
async def test_file_store_records_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "audit.json"
    audit = AuditLogger(FileAuditStore(path))
    await audit.start()
    first = await audit.record({"input": {"text": "btc price"}}, {"output": {"text": ["8000"]}})
    second = await audit.record({"input": {"text": "eth price"}}, {"output": {"text": ["231"]}})
    assert first is not None and second is not None
    assert first.id != second.id
    assert first.time <= second.time

    reloaded = AuditLogger(FileAuditStore(path))
    await reloaded.start()
    records = await reloaded.records()

    assert [record.request["input"]["text"] for record in records] == ["btc price", "eth price"]
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert len(stored["records"]) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[]",
        '{"records": {"id": "x"}}',
        '{"records": [{"id": "x", "request": {}}]}',
    ],
)
async def test_file_store_resets_unreadable_contents(tmp_path: Path, content: str) -> None:
    path = tmp_path / "audit.json"
    path.write_text(content, encoding="utf-8")

    audit = AuditLogger(FileAuditStore(path))
    await audit.start()

    assert audit.ready is True
    assert await audit.records() == []
    assert json.loads(path.read_text(encoding="utf-8")) == {"records": []}


@pytest.mark.asyncio
async def test_clear_empties_the_store(tmp_path: Path) -> None:
    audit = AuditLogger(FileAuditStore(tmp_path / "audit.json"))
    await audit.start()
    await audit.record({"input": {}}, {"output": {"text": []}})

    await audit.clear()

    assert audit.ready is True
    assert await audit.records() == []


@pytest.mark.asyncio
async def test_failed_clear_raises_and_keeps_recording() -> None:
    store = FlakyResetStore()
    audit = AuditLogger(store)
    await audit.start()
    await audit.record({"input": {"text": "before"}}, {"output": {"text": []}})

    with pytest.raises(AuditStoreError):
        await audit.clear()

    assert audit.ready is True
    assert store.ensure_calls == 2
    after = await audit.record({"input": {"text": "after"}}, {"output": {"text": []}})
    assert after is not None
    assert [record.request["input"]["text"] for record in await audit.records()] == ["before", "after"]


@pytest.mark.asyncio
async def test_submitted_records_finish_on_drain(tmp_path: Path) -> None:
    audit = AuditLogger(FileAuditStore(tmp_path / "audit.json"))
    await audit.start()

    audit.submit({"input": {"text": "one"}}, {"output": {"text": []}})
    audit.submit({"input": {"text": "two"}}, {"output": {"text": []}})
    await audit.drain()

    assert sorted(record.request["input"]["text"] for record in await audit.records()) == ["one", "two"]


@pytest.mark.asyncio
async def test_logger_without_store_is_a_no_op() -> None:
    audit = AuditLogger()
    await audit.start()

    assert (audit.enabled, audit.ready) == (False, False)
    assert await audit.record({}, {}) is None
    assert await audit.records() == []


@pytest.mark.asyncio
async def test_failed_start_leaves_logger_not_ready() -> None:
    audit = AuditLogger(BrokenStore())
    await audit.start()

    assert audit.ready is False
    assert await audit.record({}, {}) is None


@pytest.mark.asyncio
async def test_couch_store_creates_database_and_round_trips(upstream: FakeUpstream) -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
        audit = AuditLogger(CouchAuditStore(COUCH_URL, "car_logs", http))
        await audit.start()
        assert audit.ready is True
        record = await audit.record({"input": {"text": "hi"}}, {"output": {"text": ["hello"]}})
        assert record is not None
        records = await audit.records()

    assert "car_logs" in upstream.couch.databases
    assert len(records) == 1
    assert records[0].response == {"output": {"text": ["hello"]}}
    assert records[0].time.tzinfo is not None
    methods = [(request.method, request.url.path) for request in upstream.requests_to("couch.test")]
    assert methods[:2] == [("GET", "/car_logs"), ("PUT", "/car_logs")]


@pytest.mark.asyncio
async def test_couch_store_reset_recreates_database(upstream: FakeUpstream) -> None:
    upstream.couch.databases["car_logs"] = {
        "old": {"_id": "old", "request": {}, "response": {}, "time": datetime.now(timezone.utc).isoformat()}
    }

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
        audit = AuditLogger(CouchAuditStore(COUCH_URL, "car_logs", http))
        await audit.start()
        assert len(await audit.records()) == 1
        await audit.clear()
        records = await audit.records()

    assert records == []
    assert upstream.couch.databases == {"car_logs": {}}


@pytest.mark.asyncio
async def test_couch_store_rejected_delete_raises(upstream: FakeUpstream) -> None:
    upstream.couch.databases["car_logs"] = {}

    def _deny_delete(request: httpx.Request) -> httpx.Response:
        if request.method == "DELETE":
            return httpx.Response(401, json={"error": "unauthorized"})
        return upstream(request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(_deny_delete)) as http:
        with pytest.raises(AuditStoreError):
            await CouchAuditStore(COUCH_URL, "car_logs", http).reset()


@pytest.mark.asyncio
async def test_couch_store_unreachable_raises() -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(_refuse)) as http:
        with pytest.raises(AuditStoreError):
            await CouchAuditStore(COUCH_URL, "car_logs", http).ensure()

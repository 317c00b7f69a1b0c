from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import httpx

from .models import AuditRecord

logger = logging.getLogger("cryptobot.audit")


class AuditStoreError(RuntimeError):
    """Raised when the audit backend rejects an operation."""


class FileAuditStore:
    """Append-only audit records kept in a local JSON file."""

    def __init__(self, path: Path) -> None:
        """Purpose: Bind the store to a JSON file path.
        Inputs/Outputs: Input is the file path; no return value.
        Side Effects / State: None until ensure() runs.
        Dependencies: AuditRecord for (de)serialization.
        Failure Modes: None at init.
        If Removed: Audit logging requires a CouchDB server.
        Testing Notes: Use tmp_path and check the file after insert().
        """
        self._path = path
        self._records: List[AuditRecord] = []
        self._lock = asyncio.Lock()

    async def ensure(self) -> None:
        """Purpose: Create the backing file if missing and hydrate records.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Creates parent directories and the file; fills the cache.
        Dependencies: _load, run in a worker thread.
        Failure Modes: A corrupt or wrongly shaped file is logged and replaced by an
            empty store; filesystem errors raise AuditStoreError.
        If Removed: Records written before a restart are invisible to /chats.
        Testing Notes: Corrupt JSON, a top-level list and invalid records must not crash.
        """
        async with self._lock:
            self._records = await asyncio.to_thread(self._load)

    def _load(self) -> List[AuditRecord]:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if not self._path.exists():
                self._write([])
                return []
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise AuditStoreError(f"cannot read {self._path}: {exc}") from exc
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
            items = data.get("records", [])
            if not isinstance(items, list):
                raise ValueError("records is not a list")
            return [AuditRecord.model_validate(item) for item in items]
        except ValueError as exc:
            logger.warning("audit_file=%s status=corrupt action=reset error=%s", self._path, exc)
            self._write([])
            return []

    def _write(self, records: List[AuditRecord]) -> None:
        payload = {"records": [record.model_dump(mode="json") for record in records]}
        try:
            self._path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as exc:
            raise AuditStoreError(f"cannot write {self._path}: {exc}") from exc

    def _remove(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise AuditStoreError(f"cannot remove {self._path}: {exc}") from exc

    async def insert(self, record: AuditRecord) -> None:
        async with self._lock:
            records = self._records + [record]
            await asyncio.to_thread(self._write, records)
            self._records = records

    async def list_records(self) -> List[AuditRecord]:
        return list(self._records)

    async def reset(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._remove)
            self._records = await asyncio.to_thread(self._load)


class CouchAuditStore:
    """Audit records stored as documents in a CouchDB/Cloudant database."""

    def __init__(self, base_url: str, db_name: str, http: httpx.AsyncClient) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._db_url = f"{self._base_url}/{db_name}"
        self._db_name = db_name

    async def _call(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            raise AuditStoreError(f"{method} {self._db_name} failed: {exc}") from exc
        return response

    async def ensure(self) -> None:
        """Purpose: Create the audit database when it does not exist yet.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: May issue PUT /{db}.
        Dependencies: CouchDB HTTP API via httpx.
        Failure Modes: AuditStoreError when the server is unreachable or refuses.
        If Removed: Inserts fail with 404 on a fresh server.
        Testing Notes: MockTransport returning 404 on GET should trigger a PUT.
        """
        response = await self._call("GET", self._db_url)
        if response.status_code == 200:
            return
        logger.info("audit_db=%s status=%s action=create", self._db_name, response.status_code)
        created = await self._call("PUT", self._db_url)
        # 412 means another worker created it first.
        if created.status_code not in (201, 202, 412):
            raise AuditStoreError(f"cannot create {self._db_name}: {created.status_code} {created.text}")

    async def insert(self, record: AuditRecord) -> None:
        doc = record.model_dump(mode="json")
        doc["_id"] = doc.pop("id")
        response = await self._call("POST", self._db_url, json=doc)
        if response.status_code not in (201, 202):
            raise AuditStoreError(f"insert into {self._db_name} failed: {response.status_code}")

    async def list_records(self) -> List[AuditRecord]:
        response = await self._call(
            "GET",
            f"{self._db_url}/_all_docs",
            params={"include_docs": "true", "descending": "true"},
        )
        if response.status_code != 200:
            raise AuditStoreError(f"listing {self._db_name} failed: {response.status_code}")
        records: List[AuditRecord] = []
        for row in response.json().get("rows", []):
            doc = row.get("doc") if isinstance(row, dict) else None
            if not doc or "time" not in doc:
                continue
            records.append(
                AuditRecord(
                    id=doc.get("_id", ""),
                    request=doc.get("request") or {},
                    response=doc.get("response") or {},
                    time=doc["time"],
                )
            )
        return records

    async def reset(self) -> None:
        response = await self._call("DELETE", self._db_url)
        if response.status_code not in (200, 202, 404):
            raise AuditStoreError(f"cannot delete {self._db_name}: {response.status_code} {response.text}")
        await self.ensure()


class AuditLogger:
    """Owns the optional audit store and its ready/not-ready state."""

    def __init__(self, store: Optional[Any] = None) -> None:
        self._store = store
        self._ready = False
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self._store is not None

    @property
    def ready(self) -> bool:
        return self._ready

    async def start(self) -> None:
        """Purpose: Initialize the store once at application startup.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Calls store.ensure(); flips ready on success.
        Dependencies: FileAuditStore or CouchAuditStore.
        Failure Modes: Backend errors are logged and leave the logger not ready.
        If Removed: Records are dropped because the logger never becomes ready.
        Testing Notes: A failing ensure() must not raise out of start().
        """
        if self._store is None:
            return
        try:
            await self._store.ensure()
        except AuditStoreError:
            logger.exception("audit=start status=failed")
            return
        self._ready = True
        logger.info("audit=start status=ready store=%s", type(self._store).__name__)

    async def record(self, request: Dict[str, Any], response: Dict[str, Any]) -> Optional[AuditRecord]:
        """Purpose: Write one audit record for a finished request.
        Inputs/Outputs: Inputs are the dialog payload and the final response dict;
            output is the stored AuditRecord or None when nothing was written.
        Side Effects / State: One store insert.
        Dependencies: AuditRecord, uuid4, UTC clock.
        Failure Modes: Store errors are logged and swallowed; the reply never waits on them.
        If Removed: /chats has nothing to export.
        Testing Notes: Two calls yield two distinct ids with increasing times.
        """
        if self._store is None or not self._ready:
            logger.debug("audit=skip enabled=%s ready=%s", self.enabled, self._ready)
            return None
        record = AuditRecord(
            id=uuid.uuid4().hex,
            request=request,
            response=response,
            time=datetime.now(timezone.utc),
        )
        try:
            await self._store.insert(record)
        except AuditStoreError:
            logger.exception("audit=insert status=failed id=%s", record.id)
            return None
        return record

    def submit(self, request: Dict[str, Any], response: Dict[str, Any]) -> None:
        """Start record() as a task on the running loop without waiting for it."""
        task = asyncio.get_running_loop().create_task(self.record(request, response))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every submitted record to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def records(self) -> List[AuditRecord]:
        if self._store is None or not self._ready:
            return []
        return await self._store.list_records()

    async def clear(self) -> None:
        """Destroy and recreate the backing store.

        A failed reset re-initializes the store so later records still land,
        then re-raises AuditStoreError to the caller.
        """
        if self._store is None:
            return
        self._ready = False
        try:
            await self._store.reset()
        except AuditStoreError:
            logger.exception("audit=clear status=failed")
            await self.start()
            raise
        self._ready = True
        logger.info("audit=clear status=done")

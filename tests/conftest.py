from __future__ import annotations

import dataclasses
import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from cryptobot.config import Settings

DIALOG_URL = "https://dialog.test/api"
SEARCH_URL = "https://search.test/api"
PRICE_URL = "https://prices.test/v1"
COUCH_URL = "https://couch.test"


def make_settings(**overrides: Any) -> Settings:
    base = Settings(
        workspace_id="ws-1",
        conversation_url=DIALOG_URL,
        conversation_username="dialog-user",
        conversation_password="dialog-pass",
        discovery_url=SEARCH_URL,
        discovery_username="search-user",
        discovery_password="search-pass",
        version_date="2017-11-07",
        environment_id="env-1",
        collection_id="news-1",
        price_feed_url=PRICE_URL,
        http_timeout=2.0,
    )
    return dataclasses.replace(base, **overrides)


def dialog_reply(
    intent: Optional[str] = "price",
    currency: Optional[str] = "BTC",
    text: Optional[List[str]] = None,
) -> Dict[str, Any]:
    context: Dict[str, Any] = {"conversation_id": "conv-1"}
    if currency is not None:
        context["currency"] = currency
    reply: Dict[str, Any] = {
        "intents": [{"intent": intent, "confidence": 0.97}] if intent else [],
        "entities": [{"entity": "currency", "value": currency or ""}],
        "context": context,
        "output": {"text": text if text is not None else ["Price is {0} and change is {1}"]},
        "input": {"text": "how much is bitcoin"},
    }
    return reply


class FakeCouch:
    """In-memory CouchDB speaking just enough of the HTTP API for the audit store."""

    def __init__(self) -> None:
        self.databases: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def handle(self, request: httpx.Request) -> httpx.Response:
        parts = [part for part in request.url.path.split("/") if part]
        db = parts[0]
        if len(parts) == 1:
            if request.method == "GET":
                if db in self.databases:
                    return httpx.Response(200, json={"db_name": db})
                return httpx.Response(404, json={"error": "not_found"})
            if request.method == "PUT":
                if db in self.databases:
                    return httpx.Response(412, json={"error": "file_exists"})
                self.databases[db] = {}
                return httpx.Response(201, json={"ok": True})
            if request.method == "DELETE":
                self.databases.pop(db, None)
                return httpx.Response(200, json={"ok": True})
            if request.method == "POST":
                doc = json.loads(request.content)
                self.databases[db][doc["_id"]] = doc
                return httpx.Response(201, json={"ok": True, "id": doc["_id"]})
        if parts[1:] == ["_all_docs"]:
            rows = [{"id": doc_id, "doc": doc} for doc_id, doc in sorted(self.databases[db].items(), reverse=True)]
            return httpx.Response(200, json={"total_rows": len(rows), "rows": rows})
        return httpx.Response(400, json={"error": "bad_request"})


class FakeUpstream:
    """Routes outbound calls to canned replies and records every request."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.dialog: Tuple[int, Any] = (200, dialog_reply())
        self.price: Tuple[int, Any] = (200, [{"price_usd": "8000", "percent_change_24h": "5"}])
        self.search: Tuple[int, Any] = (200, {"matching_results": 0, "results": []})
        self.price_error: Optional[Exception] = None
        self.couch = FakeCouch()

    def requests_to(self, host: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.host == host]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host == "dialog.test":
            status, body = self.dialog
        elif host == "prices.test":
            if self.price_error is not None:
                raise self.price_error
            status, body = self.price
        elif host == "search.test":
            status, body = self.search
        elif host == "couch.test":
            return self.couch.handle(request)
        else:
            return httpx.Response(404, json={"error": f"unexpected host {host}"})
        if isinstance(body, (bytes, str)):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


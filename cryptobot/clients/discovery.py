from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

import httpx

from ..config import Settings
from .base import request_json


class DiscoveryClient:
    """Query wrapper for the document search and aggregation backend."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        self._http = http
        self._version = settings.version_date
        self._url = (
            f"{settings.discovery_url}/v1/environments/{settings.environment_id}"
            f"/collections/{settings.collection_id}/query"
        )
        self._auth = httpx.BasicAuth(settings.discovery_username, settings.discovery_password)

    async def query(
        self,
        natural_language_query: str,
        *,
        filter: Optional[str] = None,
        aggregation: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
        count: int = 10,
    ) -> Dict[str, Any]:
        """Purpose: Run one natural-language query against the configured collection.
        Inputs/Outputs: Inputs are the query text plus optional filter, aggregation,
            returned fields and result count; output is {results, aggregations?,
            matching_results}.
        Side Effects / State: One outbound GET.
        Dependencies: request_json.
        Failure Modes: UpstreamServiceError with the backend's status and body.
        If Removed: Sentiment and article enrichment cannot run.
        Testing Notes: Assert the query string carries filter/aggregation/return.
        """
        params: Dict[str, Any] = {
            "version": self._version,
            "natural_language_query": natural_language_query,
            "count": count,
        }
        if filter:
            params["filter"] = filter
        if aggregation:
            params["aggregation"] = aggregation
        if fields:
            params["return"] = ",".join(fields)
        data = await request_json(self._http, "discovery", "GET", self._url, params=params, auth=self._auth)
        return data if isinstance(data, dict) else {}

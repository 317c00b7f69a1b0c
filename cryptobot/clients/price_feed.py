from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..config import Settings
from .base import request_json


class PriceFeedClient:
    """Spot-price ticker lookups quoted in USD."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        self._http = http
        self._base_url = settings.price_feed_url
        self._timeout = settings.http_timeout

    def ticker_url(self, slug: str) -> str:
        return f"{self._base_url}/ticker/{slug}/"

    async def ticker(self, slug: str) -> Optional[Dict[str, Any]]:
        """Purpose: Fetch the current ticker entry for an asset slug.
        Inputs/Outputs: Input is the normalized slug; output is the first entry of the
            feed's JSON array, or None when the array is empty.
        Side Effects / State: One outbound GET with an explicit timeout.
        Dependencies: request_json.
        Failure Modes: UpstreamServiceError on transport, status or JSON errors.
        If Removed: Price enrichment has no data source.
        Testing Notes: Return [] and [{"price_usd": "1"}] from a MockTransport.
        """
        data = await request_json(
            self._http,
            "price_feed",
            "GET",
            self.ticker_url(slug),
            params={"convert": "USD"},
            timeout=self._timeout,
        )
        if isinstance(data, list):
            return data[0] if data and isinstance(data[0], dict) else None
        if isinstance(data, dict):
            return data
        return None

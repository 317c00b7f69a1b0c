from __future__ import annotations

from typing import Any, Dict

TICKER_SLUGS: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BCH": "bitcoin-cash",
    "XRP": "ripple",
    "LTC": "litecoin",
}


def normalize(ticker: Any) -> Any:
    """Purpose: Map a ticker from the dialog context to the price-feed asset slug.
    Inputs/Outputs: Input is the raw context value; output is the slug, or the input
        itself when the ticker is not in TICKER_SLUGS.
    Side Effects / State: None; pure function.
    Dependencies: TICKER_SLUGS; used by the intent dispatcher before any handler runs.
    Failure Modes: None; matching is exact and case-sensitive ("btc" passes through).
    If Removed: Handlers would query the feed and search backend with raw tickers.
    Testing Notes: Every table key maps; unknown strings and non-strings are identity.
    """
    if isinstance(ticker, str):
        return TICKER_SLUGS.get(ticker, ticker)
    return ticker

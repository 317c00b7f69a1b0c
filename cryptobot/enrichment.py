"""Enrichment handlers that splice live market data into dialog output.

Each handler receives the dialog response and the normalized asset slug, performs
exactly one upstream call, and rewrites ``output.text`` in place through the
template engine. Handlers never write audit records; the dispatcher decides that.

Handler contracts:
    PriceEnrichmentHandler:
        Feed ticker -> [price, "up|down <pct>"]. Any feed failure becomes a 502
        UpstreamServiceError so the caller always gets an answer.
    SentimentEnrichmentHandler:
        Search aggregations -> [label, matching_results, positive, negative].
    ArticleEnrichmentHandler:
        Top five search hits -> [title_0, url_0, ..., title_4, url_4].
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .clients import DiscoveryClient, PriceFeedClient, UpstreamServiceError
from .models import DialogResponse
from .templating import substitute
from .utils import format_number, parse_float

logger = logging.getLogger("cryptobot.enrichment")

NO_ANSWER_TEXT = "I cannot find an answer to your question."
RECENT_RELEVANT_FILTER = "[publication_date>=now-1day, enriched_text.entities.relevance>=.8]"
SENTIMENT_AGGREGATION = (
    "[average(enriched_text.sentiment.document.score),"
    "term(enriched_text.sentiment.document.label,count:3)]"
)
SENTIMENT_RESULT_COUNT = 3
ARTICLE_RESULT_COUNT = 5
ARTICLE_FIELDS = ("title", "url")
PRICE_FEED_ERROR_STATUS = 502

# Ordered (lower bound exclusive, label); first match wins for positive scores.
SENTIMENT_BUCKETS = [
    (0.3, "very positive"),
    (0.0, "somewhat positive"),
]
NEGATIVE_SENTIMENT_BUCKETS = [
    (-0.3, "very negative"),
    (0.0, "somewhat negative"),
]


def classify_sentiment(score: Optional[float]) -> str:
    """Purpose: Turn an average document sentiment score into a qualitative label.
    Inputs/Outputs: Input is a score in [-1, 1] (None counts as 0); output is one of
        very/somewhat positive, very/somewhat negative, or neutral.
    Side Effects / State: None; pure function.
    Dependencies: SENTIMENT_BUCKETS and NEGATIVE_SENTIMENT_BUCKETS.
    Failure Modes: None.
    If Removed: Sentiment replies cannot describe the market mood.
    Testing Notes: 0.31, 0.3, 0, -0.3 and -0.31 sit on each side of the boundaries.
    """
    value = score or 0.0
    if value > 0:
        for bound, label in SENTIMENT_BUCKETS:
            if value > bound:
                return label
    if value < 0:
        for bound, label in NEGATIVE_SENTIMENT_BUCKETS:
            if value < bound:
                return label
    return "neutral"


def directional_percent(percent: float) -> str:
    prefix = "up" if percent >= 0 else "down"
    return f"{prefix} {format_number(percent)}"


def _find_aggregation(aggregations: List[Dict[str, Any]], kind: str, position: int) -> Dict[str, Any]:
    for aggregation in aggregations:
        if isinstance(aggregation, dict) and aggregation.get("type") == kind:
            return aggregation
    if position < len(aggregations) and isinstance(aggregations[position], dict):
        return aggregations[position]
    return {}


def sentiment_label_counts(aggregation: Dict[str, Any]) -> Dict[str, int]:
    """Collect matching_results per label from a term aggregation."""
    counts: Dict[str, int] = {}
    for bucket in aggregation.get("results") or []:
        if not isinstance(bucket, dict):
            continue
        key = bucket.get("key")
        if key is not None:
            counts[str(key)] = bucket.get("matching_results", 0)
    return counts


def append_no_answer(response: DialogResponse) -> None:
    response.output_text.append(NO_ANSWER_TEXT)


class PriceEnrichmentHandler:
    """Substitute current USD price and 24h change into the dialog output."""

    def __init__(self, price_feed: PriceFeedClient) -> None:
        self._price_feed = price_feed

    async def __call__(self, response: DialogResponse, asset: str) -> None:
        """Purpose: Fetch the ticker for `asset` and fill {0} price / {1} change.
        Inputs/Outputs: Inputs are the dialog response and slug; mutates output text.
        Side Effects / State: One price-feed GET.
        Dependencies: PriceFeedClient, parse_float, substitute.
        Failure Modes: Feed errors raise UpstreamServiceError(502); a ticker without
            price_usd leaves the template untouched.
        If Removed: Price questions are answered with raw placeholders.
        Testing Notes: Feed [{"price_usd": "8000", "percent_change_24h": "5"}] and
            expect "8000" and "up 5" in the output.
        """
        try:
            ticker = await self._price_feed.ticker(asset)
        except UpstreamServiceError as exc:
            logger.warning("asset=%s price_feed=failed status=%s", asset, exc.status_code)
            raise UpstreamServiceError(
                "price_feed",
                PRICE_FEED_ERROR_STATUS,
                {"code": PRICE_FEED_ERROR_STATUS, "error": f"price feed unavailable for {asset}"},
            ) from exc

        if not ticker or not ticker.get("price_usd"):
            logger.info("asset=%s price_feed=no_price", asset)
            return

        price = parse_float(ticker["price_usd"])
        if price is None:
            logger.warning("asset=%s price_feed=bad_price value=%r", asset, ticker["price_usd"])
            raise UpstreamServiceError(
                "price_feed",
                PRICE_FEED_ERROR_STATUS,
                {"code": PRICE_FEED_ERROR_STATUS, "error": f"price feed returned an invalid price for {asset}"},
            )
        percent = parse_float(ticker.get("percent_change_24h"))
        if percent is None:
            percent = 0.0

        params = [price, directional_percent(percent)]
        response.set_output_text(substitute(response.output_text, params))
        logger.info("asset=%s price=%s change=%s", asset, price, percent)


class SentimentEnrichmentHandler:
    """Summarize the last day's news sentiment for an asset."""

    def __init__(self, discovery: DiscoveryClient) -> None:
        self._discovery = discovery

    async def __call__(self, response: DialogResponse, asset: str) -> None:
        """Purpose: Query sentiment aggregations and fill label/total/pos/neg params.
        Inputs/Outputs: Inputs are the dialog response and slug; mutates output text.
        Side Effects / State: One search-backend query.
        Dependencies: DiscoveryClient, classify_sentiment, substitute.
        Failure Modes: Search errors propagate as UpstreamServiceError with the
            backend's status; an empty result set appends NO_ANSWER_TEXT.
        If Removed: Sentiment questions are answered with raw placeholders.
        Testing Notes: Drop the term aggregation and expect zero counts.
        """
        data = await self._discovery.query(
            asset,
            filter=RECENT_RELEVANT_FILTER,
            aggregation=SENTIMENT_AGGREGATION,
            count=SENTIMENT_RESULT_COUNT,
        )
        if not data.get("results"):
            logger.info("asset=%s sentiment=no_results", asset)
            append_no_answer(response)
            return

        aggregations = data.get("aggregations") or []
        score = parse_float(_find_aggregation(aggregations, "average", 0).get("value"))
        counts = sentiment_label_counts(_find_aggregation(aggregations, "term", 1))
        label = classify_sentiment(score)
        params = [
            label,
            data.get("matching_results", 0),
            counts.get("positive", 0),
            counts.get("negative", 0),
        ]
        response.set_output_text(substitute(response.output_text, params))
        logger.info("asset=%s sentiment=%s score=%s", asset, label, score)


class ArticleEnrichmentHandler:
    """List the top recent articles about an asset."""

    def __init__(self, discovery: DiscoveryClient, limit: int = ARTICLE_RESULT_COUNT) -> None:
        self._discovery = discovery
        self._limit = limit

    async def __call__(self, response: DialogResponse, asset: str) -> None:
        data = await self._discovery.query(
            asset,
            filter=RECENT_RELEVANT_FILTER,
            fields=ARTICLE_FIELDS,
            count=self._limit,
        )
        results = data.get("results") or []
        if not results:
            logger.info("asset=%s articles=no_results", asset)
            append_no_answer(response)
            return

        # Short result sets pad with blanks so no raw placeholder reaches the user.
        params: List[str] = []
        for index in range(self._limit):
            article = results[index] if index < len(results) and isinstance(results[index], dict) else {}
            params.append(article.get("title") or "")
            params.append(article.get("url") or "")
        response.set_output_text(substitute(response.output_text, params))
        logger.info("asset=%s articles=%s", asset, min(len(results), self._limit))

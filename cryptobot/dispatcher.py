from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from .currency import normalize
from .models import DialogResponse

logger = logging.getLogger("cryptobot.dispatcher")

Handler = Callable[[DialogResponse, str], Awaitable[None]]


@dataclass(frozen=True)
class Route:
    """Route descriptor: which handler enriches a response and whether it is audited."""
    name: str
    handler: Optional[Handler] = None
    audit: bool = True


@dataclass
class DispatchResult:
    """Outcome of one dispatch: the enriched response plus routing metadata."""
    response: DialogResponse
    route: str
    audit: bool
    asset: Optional[str] = None


NO_OUTPUT_ROUTE = Route("no_output")
PASS_THROUGH_ROUTE = Route("pass_through")


class IntentDispatcher:
    """Route a dialog response to at most one enrichment handler by top intent."""

    def __init__(self, routes: Dict[str, Route]) -> None:
        """Purpose: Initialize the dispatcher with an intent -> Route table.
        Inputs/Outputs: Input is the route table; no return value.
        Side Effects / State: Stores the table; it is not mutated afterwards.
        Dependencies: Route definitions built by the application factory.
        Failure Modes: None at init.
        If Removed: Responses are never enriched.
        Testing Notes: Build a table of recording handlers and check which one runs.
        """
        self._routes = dict(routes)

    @property
    def intents(self) -> list[str]:
        return sorted(self._routes)

    def resolve(self, response: DialogResponse) -> Route:
        """Purpose: Pick the route for a response without running it.
        Inputs/Outputs: Input is DialogResponse; output is the matching Route.
        Side Effects / State: None.
        Dependencies: Route table and DialogResponse.top_intent.
        Failure Modes: None; unknown intents and missing currency fall through.
        If Removed: dispatch cannot decide what to run.
        Testing Notes: Check priority: missing output, then currency + intent, then pass.
        """
        if response.output is None:
            return NO_OUTPUT_ROUTE
        if response.context.get("currency") is None:
            return PASS_THROUGH_ROUTE
        intent = response.top_intent
        if intent is None:
            return PASS_THROUGH_ROUTE
        return self._routes.get(intent, PASS_THROUGH_ROUTE)

    async def dispatch(self, response: DialogResponse) -> DispatchResult:
        """Purpose: Enrich a dialog response in place using the matching route.
        Inputs/Outputs: Input is DialogResponse; output is DispatchResult.
        Side Effects / State: Mutates response.output; the handler may call upstream.
        Dependencies: resolve, normalize, and the route handler.
        Failure Modes: Handler exceptions (UpstreamServiceError) propagate to the caller.
        If Removed: The message endpoint returns raw dialog output.
        Testing Notes: A response without output gets {"text": []} and no handler call;
            a null text becomes [] and a bare string becomes a one-line list.
        """
        route = self.resolve(response)
        if route is NO_OUTPUT_ROUTE:
            response.output = {"text": []}
            logger.info("route=%s", route.name)
            return DispatchResult(response=response, route=route.name, audit=route.audit)

        text = response.output.get("text")
        if isinstance(text, str):
            response.output["text"] = [text]
        elif not isinstance(text, list):
            response.output["text"] = []
        asset = None
        if route.handler is not None:
            asset = normalize(response.context["currency"])
            logger.info("route=%s currency=%s asset=%s", route.name, response.context["currency"], asset)
            await route.handler(response, asset)
        else:
            logger.info("route=%s intent=%s", route.name, response.top_intent)
        return DispatchResult(response=response, route=route.name, audit=route.audit, asset=asset)

from __future__ import annotations

from typing import Any, Dict

import httpx

from ..config import Settings
from .base import request_json

CONVERSATION_API_VERSION = "2016-07-11"


class ConversationClient:
    """Thin wrapper around the dialog engine's message API."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        """Purpose: Bind the dialog engine endpoint, workspace and credentials.
        Inputs/Outputs: Inputs are Settings and the shared AsyncClient; no return value.
        Side Effects / State: None beyond storing references.
        Dependencies: Settings from config; httpx basic auth.
        Failure Modes: None at init; an unconfigured workspace is rejected by the route.
        If Removed: The message endpoint cannot reach the dialog engine.
        Testing Notes: Point conversation_url at a MockTransport and inspect the request.
        """
        self._http = http
        self._url = f"{settings.conversation_url}/v1/workspaces/{settings.workspace_id}/message"
        self._auth = httpx.BasicAuth(settings.conversation_username, settings.conversation_password)

    async def message(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Purpose: Send user input plus client-held context and return the dialog reply.
        Inputs/Outputs: Input is {workspace_id, context, input}; output is the reply dict
            with output/context/intents/entities.
        Side Effects / State: One outbound POST.
        Dependencies: request_json.
        Failure Modes: UpstreamServiceError with the engine's status and body.
        If Removed: No dialog turn can be processed.
        Testing Notes: Verify version query param and that workspace_id is not in the body.
        """
        body = {"input": payload.get("input") or {}, "context": payload.get("context") or {}}
        data = await request_json(
            self._http,
            "conversation",
            "POST",
            self._url,
            params={"version": CONVERSATION_API_VERSION},
            json=body,
            auth=self._auth,
        )
        return data if isinstance(data, dict) else {}

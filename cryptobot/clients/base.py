"""Shared async HTTP plumbing for the upstream service clients."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger("cryptobot.clients")

DEFAULT_ERROR_STATUS = 500


class UpstreamServiceError(RuntimeError):
    """An upstream call failed; carries the status and body to relay to the caller."""

    def __init__(self, service: str, status_code: int, body: Dict[str, Any]) -> None:
        super().__init__(f"{service} failed with status {status_code}")
        self.service = service
        self.status_code = status_code
        self.body = body


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        data.setdefault("code", response.status_code)
        return data
    return {"code": response.status_code, "error": response.text or response.reason_phrase}


async def request_json(
    client: httpx.AsyncClient,
    service: str,
    method: str,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json: Optional[Dict[str, Any]] = None,
    auth: Optional[httpx.Auth] = None,
    timeout: Optional[float] = None,
) -> Any:
    """Purpose: Issue one HTTP call and decode its JSON body.
    Inputs/Outputs: Inputs are the shared client, a service label for logs/errors, and
        request options; output is the decoded JSON value.
    Side Effects / State: One outbound request; logs failures.
    Dependencies: httpx.AsyncClient; used by the conversation, discovery and price clients.
    Failure Modes: Transport errors and timeouts raise UpstreamServiceError(500);
        non-2xx replies raise with the upstream status and body; undecodable bodies
        raise UpstreamServiceError(500).
    If Removed: Every client re-implements error mapping.
    Testing Notes: Use httpx.MockTransport to return 4xx, garbage, or raise ConnectError.
    """
    kwargs: Dict[str, Any] = {"params": params, "json": json, "auth": auth}
    if timeout is not None:
        kwargs["timeout"] = timeout
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as exc:
        logger.warning("service=%s url=%s status=timeout", service, url)
        raise UpstreamServiceError(
            service, DEFAULT_ERROR_STATUS, {"code": DEFAULT_ERROR_STATUS, "error": f"timeout: {exc}"}
        ) from exc
    except httpx.RequestError as exc:
        logger.warning("service=%s url=%s status=network_error error=%s", service, url, exc)
        raise UpstreamServiceError(
            service, DEFAULT_ERROR_STATUS, {"code": DEFAULT_ERROR_STATUS, "error": str(exc)}
        ) from exc
    if response.status_code >= 400:
        logger.warning("service=%s url=%s status=%s", service, url, response.status_code)
        raise UpstreamServiceError(service, response.status_code, _error_body(response))
    try:
        return response.json()
    except ValueError as exc:
        logger.warning("service=%s url=%s status=bad_json", service, url)
        raise UpstreamServiceError(
            service, DEFAULT_ERROR_STATUS, {"code": DEFAULT_ERROR_STATUS, "error": "invalid JSON from upstream"}
        ) from exc

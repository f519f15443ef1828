"""Remote invoker contract and the shared httpx plumbing behind it."""
from __future__ import annotations

import json
import logging
from contextlib import AbstractAsyncContextManager
from typing import Any, Dict, Optional, Protocol

import httpx

from booking_flow.core.errors import MalformedResponse, TransportFault

logger = logging.getLogger(__name__)

USER_AGENT = "booking-flow/0.1.0"


class RemoteInvoker(Protocol):
    async def invoke(self, operation: str, arguments: Dict[str, Any]) -> Any:
        """Run one named remote operation and return its decoded payload."""
        ...


def _bearer(token: str) -> str:
    return token if token.startswith("Bearer ") else f"Bearer {token}"


class HttpInvoker(AbstractAsyncContextManager["HttpInvoker"]):
    """Owns an ``httpx.AsyncClient`` and maps its failures onto remote faults."""

    def __init__(
        self,
        *,
        base_url: str,
        bearer_token: Optional[str] = None,
        timeout: float = 120.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if bearer_token:
            default_headers["Authorization"] = _bearer(bearer_token)
        if headers:
            default_headers.update(headers)
        self._base_url = base_url.rstrip("/")
        self._headers = default_headers
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aexit__(self, exc_type, exc, exc_tb) -> None:
        await self.aclose()

    async def _post_json(self, operation: str, url: str, body: Dict[str, Any]) -> Any:
        logger.debug("POST %s for %s", url, operation)
        try:
            response = await self._client.post(url, json=body, headers=self._headers)
        except httpx.TimeoutException as exc:
            raise TransportFault(operation, f"timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportFault(operation, f"request failed: {exc}") from exc

        if response.is_error:
            text = response.text
            raise TransportFault(
                operation,
                f"HTTP {response.status_code}: {text[:512]}",
                status=response.status_code,
                body=text,
            )
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise MalformedResponse(operation, f"response is not JSON: {response.text[:128]}") from exc

"""Invoker for the GraphQL endpoint."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from booking_flow.core.errors import BusinessRejection, MalformedResponse

from .invoker import HttpInvoker

logger = logging.getLogger(__name__)

DEFAULT_GRAPHQL_BASE_URL = "https://locktrip.com"


class GraphqlInvoker(HttpInvoker):
    """Sends the document registered for ``operation`` and unwraps ``data[operation]``.

    A populated ``errors`` array is a well-formed refusal and surfaces as
    ``BusinessRejection`` carrying the first message.
    """

    def __init__(
        self,
        *,
        documents: Mapping[str, str],
        base_url: str = DEFAULT_GRAPHQL_BASE_URL,
        bearer_token: Optional[str] = None,
        timeout: float = 120.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(
            base_url=base_url,
            bearer_token=bearer_token,
            timeout=timeout,
            headers=headers,
            client=client,
        )
        self._documents = dict(documents)

    async def invoke(self, operation: str, arguments: Dict[str, Any]) -> Any:
        try:
            document = self._documents[operation]
        except KeyError as exc:
            known = ", ".join(sorted(self._documents))
            raise KeyError(f"No GraphQL document registered for '{operation}'. Known: {known}") from exc

        logger.info("Calling GraphQL %s", operation)
        payload = await self._post_json(
            operation,
            f"{self._base_url}/graphql",
            {"query": document, "variables": arguments},
        )
        if not isinstance(payload, dict):
            raise MalformedResponse(operation, "GraphQL response is not an object")

        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else {}
            message = first.get("message") if isinstance(first, dict) else str(first)
            logger.warning("GraphQL %s returned %s error(s)", operation, len(errors))
            raise BusinessRejection(operation, message or "unknown GraphQL error")

        data = payload.get("data")
        if not isinstance(data, dict) or operation not in data:
            raise MalformedResponse(operation, f"GraphQL response missing data.{operation}")
        return data[operation]

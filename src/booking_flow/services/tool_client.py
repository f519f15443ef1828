"""Invoker for the ``/tools/<name>`` HTTP endpoints."""
from __future__ import annotations

import logging
from typing import Any, Dict

from .invoker import HttpInvoker

logger = logging.getLogger(__name__)

DEFAULT_TOOL_BASE_URL = "https://locktrip.com/mcp"


class ToolInvoker(HttpInvoker):
    """Posts the arguments as the JSON body of ``{base_url}/tools/{operation}``."""

    async def invoke(self, operation: str, arguments: Dict[str, Any]) -> Any:
        url = f"{self._base_url}/tools/{operation}"
        logger.info("Calling tool %s", operation)
        return await self._post_json(operation, url, arguments)

"""Remote invokers for the booking service."""

from .graphql_client import DEFAULT_GRAPHQL_BASE_URL, GraphqlInvoker
from .invoker import HttpInvoker, RemoteInvoker
from .tool_client import DEFAULT_TOOL_BASE_URL, ToolInvoker

__all__ = [
    "DEFAULT_GRAPHQL_BASE_URL",
    "DEFAULT_TOOL_BASE_URL",
    "GraphqlInvoker",
    "HttpInvoker",
    "RemoteInvoker",
    "ToolInvoker",
]

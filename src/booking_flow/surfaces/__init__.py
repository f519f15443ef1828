"""Dialect adapters for the remote booking service."""

from .base import BookingSurface, RemoteCall
from .graphql import GRAPHQL_DOCUMENTS, GraphqlSurface
from .tool import ToolSurface

__all__ = [
    "BookingSurface",
    "GRAPHQL_DOCUMENTS",
    "GraphqlSurface",
    "RemoteCall",
    "ToolSurface",
]

"""Remote task service clients."""

from .base import RemoteClient
from .graph_client import GraphClient, static_token_provider

__all__ = ["RemoteClient", "GraphClient", "static_token_provider"]

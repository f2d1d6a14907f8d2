"""
Standalone Entra ID helpers: access-token validation, refresh-token grants and
Microsoft Graph directory reads.

This package has no dependency on other orgscope packages.
"""

from .config import EntraConfig
from .context import TokenContext
from .graph_client import GraphUnavailable, list_users
from .token_client import EntraTokenClient, RefreshedTokens, TokenEndpointUnavailable, TokenGrantRejected
from .validator import EntraTokenValidator, ValidationError

__all__ = [
    "EntraConfig",
    "TokenContext",
    "EntraTokenValidator",
    "ValidationError",
    "EntraTokenClient",
    "RefreshedTokens",
    "TokenEndpointUnavailable",
    "TokenGrantRejected",
    "GraphUnavailable",
    "list_users",
]

"""
Well-known endpoints: authorization server metadata (RFC 8414) and protected resource
metadata (RFC 9728).
"""
import re

from fastapi import APIRouter, Depends

from pkce_proxy.auth import get_proxy
from pkce_proxy.proxy import PKCEOAuthProxy

router = APIRouter()

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


@router.get("/.well-known/oauth-authorization-server")
def authorization_server_metadata(proxy: PKCEOAuthProxy = Depends(get_proxy)):
    """Discovery document for MCP/OAuth clients."""
    metadata = proxy.get_authorization_server_metadata()
    return {_snake_case(key): value for key, value in metadata.items()}


@router.get("/.well-known/oauth-protected-resource")
def protected_resource_metadata(proxy: PKCEOAuthProxy = Depends(get_proxy)):
    base = proxy.config.base_url
    return {
        "resource": base,
        "authorization_servers": [base],
        "scopes_supported": list(proxy.config.scopes),
        "bearer_methods_supported": ["header"],
    }

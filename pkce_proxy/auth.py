"""
Bearer auth gate for routes served with the upstream credentials, plus GET /graphs.
A proxy access token is only meaningful to this process: it resolves through the engine's
token store to the upstream access token, which never leaves the proxy.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pkce_proxy.errors import InvalidTokenError
from pkce_proxy.pkce import mask_token
from pkce_proxy.proxy import PKCEOAuthProxy
from pkce_proxy.records import UpstreamSession

logger = logging.getLogger(__name__)
router = APIRouter()

security = HTTPBearer(auto_error=False)


def get_proxy(request: Request) -> PKCEOAuthProxy:
    """Dependency: the engine owned by the running app."""
    return request.app.state.proxy


def _resource_metadata_url(proxy: PKCEOAuthProxy) -> str:
    return f"{proxy.config.base_url}/.well-known/oauth-protected-resource"


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    proxy: Annotated[PKCEOAuthProxy, Depends(get_proxy)],
) -> str:
    """Extract Bearer token from Authorization header. Raises 401 if missing or not Bearer."""
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise InvalidTokenError("Bearer token required", _resource_metadata_url(proxy))
    return credentials.credentials


async def require_session(
    token: Annotated[str, Depends(get_bearer_token)],
    proxy: Annotated[PKCEOAuthProxy, Depends(get_proxy)],
) -> UpstreamSession:
    """Dependency: valid proxy access token -> upstream session. 401 when unknown or expired."""
    session = proxy.load_upstream_tokens(token)
    if session is None:
        logger.info("Rejected bearer token %s", mask_token(token))
        raise InvalidTokenError("Invalid or expired access token", _resource_metadata_url(proxy))
    return session


@router.get("/graphs")
async def list_graphs(
    session: Annotated[UpstreamSession, Depends(require_session)],
    proxy: Annotated[PKCEOAuthProxy, Depends(get_proxy)],
):
    """Reflect graphs visible to the caller's upstream account."""
    return await proxy.upstream.get_graphs(session.access_token)

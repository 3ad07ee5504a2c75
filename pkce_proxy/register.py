"""
Dynamic client registration (POST /oauth/register). Every caller gets a fresh client id;
nothing is stored, since upstream only ever sees the proxy's own client id.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy.orm import Session

from pkce_proxy.audit import EVENT_CLIENT_REGISTERED, get_client_ip, log_audit
from pkce_proxy.auth import get_proxy
from pkce_proxy.database import get_db
from pkce_proxy.proxy import PKCEOAuthProxy

router = APIRouter()


class ClientRegistration(BaseModel):
    redirect_uris: list[str] | None = None
    client_name: str | None = None


@router.post("/oauth/register")
async def register(
    body: ClientRegistration,
    request: Request,
    proxy: PKCEOAuthProxy = Depends(get_proxy),
    db: Session = Depends(get_db),
):
    response = proxy.register_client(redirect_uris=body.redirect_uris, client_name=body.client_name)
    await run_in_threadpool(log_audit, db, EVENT_CLIENT_REGISTERED, client_id=response["client_id"], ip=get_client_ip(request))
    return response

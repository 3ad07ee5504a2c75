"""
Token endpoint (POST /oauth/token). Proxy code -> proxy access token; refresh grant refused.
"""
import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from pkce_proxy.audit import (
    EVENT_REFRESH_REJECTED,
    EVENT_TOKEN_FAIL,
    EVENT_TOKEN_ISSUED,
    get_client_ip,
    log_audit,
    OUTCOME_FAIL,
)
from pkce_proxy.auth import get_proxy
from pkce_proxy.database import get_db
from pkce_proxy.errors import ProtocolError, ProxyError
from pkce_proxy.proxy import PKCEOAuthProxy

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/oauth/token")
async def token(
    request: Request,
    grant_type: str | None = Form(None),
    code: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    client_id: str | None = Form(None),
    code_verifier: str | None = Form(None),
    refresh_token: str | None = Form(None),
    proxy: PKCEOAuthProxy = Depends(get_proxy),
    db: Session = Depends(get_db),
):
    """
    authorization_code: exchange a proxy code for a proxy access token (no refresh_token).
    refresh_token: always invalid_grant; the client has to run the authorization flow again.
    """
    ip = get_client_ip(request)
    if grant_type == "authorization_code":
        try:
            response = proxy.exchange_authorization_code(
                code, client_id=client_id, redirect_uri=redirect_uri, code_verifier=code_verifier
            )
        except ProxyError as e:
            await run_in_threadpool(log_audit, db, EVENT_TOKEN_FAIL, client_id=client_id, ip=ip, outcome=OUTCOME_FAIL, error=e.error)
            raise
        await run_in_threadpool(log_audit, db, EVENT_TOKEN_ISSUED, client_id=client_id, ip=ip)
        return response
    if grant_type == "refresh_token":
        try:
            return proxy.exchange_refresh_token(refresh_token, client_id=client_id)
        except ProxyError as e:
            await run_in_threadpool(log_audit, db, EVENT_REFRESH_REJECTED, client_id=client_id, ip=ip, outcome=OUTCOME_FAIL, error=e.error)
            raise
    await run_in_threadpool(log_audit, db, EVENT_TOKEN_FAIL, client_id=client_id, ip=ip, outcome=OUTCOME_FAIL, error="unsupported_grant_type")
    raise ProtocolError(
        "unsupported_grant_type",
        "Only authorization_code and refresh_token are supported",
    )

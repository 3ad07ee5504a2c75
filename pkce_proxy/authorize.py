"""
Browser-facing half of the flow.
GET /oauth/authorize: record a transaction and bounce the browser to the upstream provider.
GET|POST /oauth/callback: upstream comes back here; exchange the code and bounce to the client.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from pkce_proxy.audit import (
    EVENT_AUTHORIZE_REDIRECT,
    EVENT_CALLBACK_FAIL,
    EVENT_CALLBACK_OK,
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


# Handlers that touch the engine are async so they run on the event loop thread, never a worker;
# audit writes are blocking DB commits and go to the threadpool instead
@router.get("/oauth/authorize")
async def authorize(
    request: Request,
    client_id: str | None = None,
    redirect_uri: str | None = None,
    response_type: str | None = None,
    state: str | None = None,
    scope: str | None = None,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
    proxy: PKCEOAuthProxy = Depends(get_proxy),
    db: Session = Depends(get_db),
):
    """Redirect to the upstream authorization page with our own PKCE challenge."""
    ip = get_client_ip(request)
    try:
        url = proxy.authorize(
            client_id=client_id or "",
            redirect_uri=redirect_uri or "",
            response_type=response_type or "",
            state=state,
            scope=scope,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )
    except ProxyError as e:
        await run_in_threadpool(log_audit, db, EVENT_AUTHORIZE_REDIRECT, client_id=client_id, ip=ip, outcome=OUTCOME_FAIL, error=e.error)
        raise
    await run_in_threadpool(log_audit, db, EVENT_AUTHORIZE_REDIRECT, client_id=client_id, ip=ip)
    return RedirectResponse(url=url, status_code=302)


@router.api_route("/oauth/callback", methods=["GET", "POST"])
async def callback(
    request: Request,
    proxy: PKCEOAuthProxy = Depends(get_proxy),
    db: Session = Depends(get_db),
):
    """
    Upstream redirect target. Parameters come from the query string; a POST may carry them
    in a form body instead.
    """
    params = dict(request.query_params)
    if request.method == "POST" and not params.get("state"):
        form = await request.form()
        params = {k: v for k, v in form.items() if isinstance(v, str)}

    code = params.get("code")
    state = params.get("state")
    transaction = proxy.transactions.get(state) if state else None
    client_id = transaction.client_id if transaction else None
    ip = get_client_ip(request)

    try:
        if not code and params.get("error"):
            # User denied consent or upstream failed before issuing a code; transaction untouched
            logger.warning("Upstream returned error=%s to callback", params["error"])
            raise ProtocolError(
                "upstream_error",
                params.get("error_description") or params["error"],
            )
        url = await proxy.handle_callback(code, state)
    except ProxyError as e:
        await run_in_threadpool(log_audit, db, EVENT_CALLBACK_FAIL, client_id=client_id, ip=ip, outcome=OUTCOME_FAIL, error=e.error)
        raise
    await run_in_threadpool(log_audit, db, EVENT_CALLBACK_OK, client_id=client_id, ip=ip)
    return RedirectResponse(url=url, status_code=302)

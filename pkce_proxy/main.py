"""
Reflect PKCE OAuth proxy: FastAPI app factory and the `reflect-pkce-proxy` entry point.
Port 3000 by default; the fixed upstream callback is {base_url}/oauth/callback.
"""
import argparse
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pkce_proxy.audit import router as audit_router
from pkce_proxy.auth import router as graphs_router
from pkce_proxy.authorize import router as authorize_router
from pkce_proxy.config import HOST, LOG_LEVEL, PORT, ProxyConfig, load_config
from pkce_proxy.database import init_db
from pkce_proxy.errors import ProxyError
from pkce_proxy.proxy import PKCEOAuthProxy
from pkce_proxy.register import router as register_router
from pkce_proxy.token_endpoint import router as token_router
from pkce_proxy.well_known import router as well_known_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create audit tables, build the engine if none was injected, run the sweeper."""
    init_db()
    if app.state.proxy is None:
        app.state.proxy = PKCEOAuthProxy(app.state.config or load_config())
    proxy = app.state.proxy
    proxy.start()
    logger.info("PKCE proxy ready at %s (upstream client_id=%s)", proxy.config.base_url, proxy.config.client_id)
    try:
        yield
    finally:
        await proxy.stop()


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


def create_app(proxy: PKCEOAuthProxy | None = None, config: ProxyConfig | None = None) -> FastAPI:
    app = FastAPI(title="Reflect PKCE OAuth Proxy", version="1.0.0", lifespan=lifespan)
    app.state.proxy = proxy
    app.state.config = config
    app.add_exception_handler(ProxyError, proxy_error_handler)
    app.include_router(authorize_router, tags=["authorize"])
    app.include_router(token_router, tags=["token"])
    app.include_router(register_router, tags=["register"])
    app.include_router(well_known_router, tags=["well-known"])
    app.include_router(graphs_router, tags=["graphs"])
    app.include_router(audit_router)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "pkce_proxy"}

    return app


app = create_app()


def run(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="reflect-pkce-proxy", description="PKCE OAuth proxy for Reflect")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--client-id", default=None, help="upstream OAuth client id (default: REFLECT_CLIENT_ID)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # An explicit PROXY_BASE_URL wins; otherwise follow the port we actually bind
    base_url = None if os.environ.get("PROXY_BASE_URL") else f"http://localhost:{args.port}"
    config = load_config(client_id=args.client_id, base_url=base_url)
    uvicorn.run(create_app(config=config), host=args.host, port=args.port, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    run()

"""
HTTP calls to the upstream provider (Reflect): the secret-free authorization_code exchange
and the content API used with an upstream access token.
"""
import logging
from dataclasses import dataclass

import httpx

from pkce_proxy.errors import UpstreamError, UpstreamTimeoutError

logger = logging.getLogger(__name__)

# Longer upstream lifetimes are treated as absent
MAX_EXPIRES_IN_SECONDS = 10 * 365 * 24 * 3600


@dataclass
class UpstreamTokens:
    access_token: str
    refresh_token: str | None
    expires_in: int | None


class UpstreamClient:
    def __init__(
        self,
        *,
        token_endpoint: str,
        client_id: str,
        redirect_uri: str,
        api_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token_endpoint = token_endpoint
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.api_url = api_url.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def exchange_code(self, code: str, code_verifier: str) -> UpstreamTokens:
        """
        POST grant_type=authorization_code with our PKCE verifier. No client_secret is sent.
        Raises UpstreamTimeoutError on timeout, UpstreamError on any other failure.
        """
        try:
            r = await self._client.post(
                self.token_endpoint,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "client_id": self.client_id,
                    "redirect_uri": self.redirect_uri,
                    "code_verifier": code_verifier,
                },
            )
        except httpx.TimeoutException as e:
            logger.error("Upstream token exchange timed out: %s", e)
            raise UpstreamTimeoutError() from e
        except httpx.HTTPError as e:
            logger.error("Upstream token exchange request failed: %s", e)
            raise UpstreamError(description="Upstream token endpoint unreachable", body=str(e)) from e

        if not r.is_success:
            logger.error("Upstream token exchange failed: status=%s body=%s", r.status_code, r.text[:500])
            raise UpstreamError(status=r.status_code, body=r.text)

        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamError(
                description="Upstream token response is not JSON", status=r.status_code, body=r.text
            ) from e
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise UpstreamError(
                description="Upstream token response has no access_token", status=r.status_code, body=r.text
            )

        expires_in = data.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError, OverflowError):
            logger.warning("Ignoring non-numeric expires_in from upstream: %r", expires_in)
            expires_in = None
        if expires_in is not None and not 0 < expires_in <= MAX_EXPIRES_IN_SECONDS:
            logger.warning("Ignoring out-of-range expires_in from upstream: %d", expires_in)
            expires_in = None
        return UpstreamTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or None,
            expires_in=expires_in,
        )

    async def get_graphs(self, access_token: str):
        """List the Reflect graphs visible to access_token."""
        try:
            r = await self._client.get(
                f"{self.api_url}/graphs",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError("Upstream API did not respond in time") from e
        except httpx.HTTPError as e:
            raise UpstreamError("upstream_unavailable", "Upstream API unreachable", body=str(e), status_code=502) from e
        if not r.is_success:
            raise UpstreamError(
                "upstream_request_failed",
                f"Upstream API returned {r.status_code}",
                status=r.status_code,
                body=r.text,
                status_code=502,
            )
        try:
            return r.json()
        except ValueError as e:
            raise UpstreamError(
                "upstream_request_failed", "Upstream API response is not JSON", body=r.text, status_code=502
            ) from e

"""
PKCE OAuth proxy engine (no client secret).

Fronts the upstream authorization server for public clients: runs its own PKCE exchange
upstream, keeps the upstream tokens in-process, and hands the original client only opaque
proxy codes and proxy access tokens.

    authorize      -> PKCETransaction stored, redirect upstream with state=<transaction id>
    handle_callback -> upstream code exchanged, proxy code minted, redirect to the client
    exchange_authorization_code -> proxy code rotated to a proxy access token (single use)
    load_upstream_tokens -> the auth gate's lookup for every protected request

This object is the only thing that mutates the two stores. It is HTTP-agnostic: errors are
raised as ProxyError subclasses and mapped to responses by the routers.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from pkce_proxy.config import ProxyConfig
from pkce_proxy.errors import PersistenceError, ProtocolError, StateError, UpstreamError
from pkce_proxy.persistence import TokenFile
from pkce_proxy.pkce import (
    append_query,
    generate_access_token,
    generate_client_id,
    generate_pkce,
    generate_proxy_code,
    generate_state,
    generate_transaction_id,
    mask_token,
)
from pkce_proxy.records import PKCETransaction, TokenRecord, UpstreamSession, utc_now
from pkce_proxy.stores import TokenStore, TransactionStore
from pkce_proxy.sweeper import ExpirySweeper
from pkce_proxy.upstream import UpstreamClient

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    transactions_removed: int
    tokens_removed: int


class PKCEOAuthProxy:
    def __init__(
        self,
        config: ProxyConfig,
        *,
        token_file: TokenFile | None = None,
        upstream: UpstreamClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self._clock = clock or utc_now
        self.token_file = token_file or TokenFile(config.token_storage_path)
        self.upstream = upstream or UpstreamClient(
            token_endpoint=config.token_endpoint,
            client_id=config.client_id,
            redirect_uri=config.callback_url,
            api_url=config.api_url,
            timeout=config.upstream_timeout,
        )
        self.transactions = TransactionStore()
        self.tokens = TokenStore(self.token_file.load(self._clock()))
        self._sweeper = ExpirySweeper(self.sweep, config.sweep_interval)

    # ------------------------------------------------------------------ lifecycle

    def start(self) -> None:
        """Start the periodic expiry sweep. Needs a running event loop."""
        self._sweeper.start()

    async def stop(self) -> None:
        """Stop the sweeper, write the final snapshot, close the upstream HTTP client."""
        await self._sweeper.stop()
        self._persist()
        await self.upstream.aclose()

    # ------------------------------------------------------------------ discovery

    def get_authorization_server_metadata(self) -> dict:
        base = self.config.base_url
        return {
            "issuer": base,
            "authorizationEndpoint": f"{base}/oauth/authorize",
            "tokenEndpoint": f"{base}/oauth/token",
            "registrationEndpoint": f"{base}/oauth/register",
            "responseTypesSupported": ["code"],
            # refresh_token is advertised although exchange_refresh_token always refuses it
            "grantTypesSupported": ["authorization_code", "refresh_token"],
            "codeChallengeMethodsSupported": ["S256"],
            "scopesSupported": list(self.config.scopes),
        }

    # ------------------------------------------------------------------ authorize

    def authorize(
        self,
        client_id: str,
        redirect_uri: str,
        response_type: str,
        state: str | None = None,
        scope: str | None = None,
        code_challenge: str | None = None,
        code_challenge_method: str | None = None,
    ) -> str:
        """Record a transaction and return the upstream authorization URL to redirect to."""
        if response_type != "code":
            raise ProtocolError("unsupported_response_type", "response_type must be 'code'")
        if not redirect_uri:
            raise ProtocolError("invalid_request", "redirect_uri is required")

        code_verifier, challenge = generate_pkce()
        transaction_id = generate_transaction_id()
        now = self._clock()
        transaction = PKCETransaction(
            id=transaction_id,
            code_verifier=code_verifier,
            code_challenge=challenge,
            client_callback_url=redirect_uri,
            client_id=client_id,
            client_state=state or generate_state(),
            scope=scope.split() if scope and scope.strip() else list(self.config.scopes),
            created_at=now,
            expires_at=now + timedelta(seconds=self.config.transaction_ttl),
        )
        self.transactions.add(transaction)
        logger.info(
            "Created transaction %s for client_id=%s (client challenge %s)",
            mask_token(transaction_id),
            client_id,
            "present" if code_challenge else "absent",
        )

        # The transaction id is the upstream state; the verifier stays here
        return append_query(
            self.config.authorization_endpoint,
            {
                "client_id": self.config.client_id,
                "redirect_uri": self.config.callback_url,
                "response_type": "code",
                "scope": ",".join(transaction.scope),
                "state": transaction_id,
                "code_challenge": challenge,
                "code_challenge_method": "S256",
            },
        )

    # ------------------------------------------------------------------ callback

    async def handle_callback(self, code: str | None, state: str | None) -> str:
        """
        Exchange the upstream code for upstream tokens and return the redirect URL back to the
        original client, carrying a fresh proxy code and the client's own state.
        """
        if not state:
            raise ProtocolError("missing_state", "Missing state parameter")
        if not code:
            raise ProtocolError("missing_code", "Missing code parameter")

        transaction = self.transactions.get(state)
        if transaction is None:
            logger.warning("Callback for unknown transaction %s", mask_token(state))
            raise StateError("invalid_state", "Unknown or already used state")
        if transaction.expired(self._clock()):
            self.transactions.pop(state)
            logger.warning("Callback for expired transaction %s", mask_token(state))
            raise StateError("transaction_expired", "Authorization transaction expired")

        try:
            upstream_tokens = await self.upstream.exchange_code(code, transaction.code_verifier)
        except UpstreamError:
            # Transaction stays in place until it expires or is swept
            logger.warning("Token exchange failed for transaction %s", mask_token(state))
            raise

        # The store may have changed during the await; re-check under the same clock read
        now = self._clock()
        current = self.transactions.pop(state)
        if current is None or current.expired(now):
            error = "transaction_expired" if transaction.expired(now) else "invalid_state"
            logger.warning(
                "Transaction %s gone after upstream exchange (%s); upstream tokens discarded",
                mask_token(state),
                error,
            )
            raise StateError(error, "Authorization transaction no longer pending")

        lifetime = upstream_tokens.expires_in
        if lifetime is None or lifetime <= 0:
            lifetime = self.config.default_token_lifetime
        proxy_code = generate_proxy_code()
        self.tokens.put(
            proxy_code,
            TokenRecord(
                access_token=upstream_tokens.access_token,
                refresh_token=upstream_tokens.refresh_token,
                expires_at=now + timedelta(seconds=lifetime),
            ),
        )
        self._persist()
        logger.info(
            "Transaction %s completed; proxy code %s issued, upstream expires_in=%s",
            mask_token(state),
            mask_token(proxy_code),
            lifetime,
        )
        return append_query(current.client_callback_url, {"code": proxy_code, "state": current.client_state})

    # ------------------------------------------------------------------ token endpoint

    def exchange_authorization_code(
        self,
        code: str | None,
        client_id: str | None = None,
        redirect_uri: str | None = None,
        code_verifier: str | None = None,
    ) -> dict:
        """
        Trade a proxy code for a proxy access token. The code is consumed whether or not it
        was still valid. No refresh_token is returned: upstream has no refresh grant, so
        clients must re-run the authorization flow when the token expires.
        """
        if not code:
            raise ProtocolError("invalid_request", "Missing authorization code")

        now = self._clock()
        access_token = generate_access_token()
        record, changed = self.tokens.rotate(code, access_token, now)
        if changed:
            self._persist()
        if record is None:
            logger.warning("Rejected proxy code %s for client_id=%s", mask_token(code), client_id)
            raise StateError("invalid_grant", "Invalid or expired authorization code")

        expires_in = math.floor((record.expires_at - now).total_seconds())
        if expires_in <= 0:
            expires_in = self.config.default_token_lifetime
        logger.info(
            "Proxy code %s exchanged for access token %s (client_id=%s), expires_in=%s",
            mask_token(code),
            mask_token(access_token),
            client_id,
            expires_in,
        )
        return {"access_token": access_token, "token_type": "Bearer", "expires_in": expires_in}

    def exchange_refresh_token(self, refresh_token: str | None, client_id: str | None = None) -> dict:
        """Always refuses; the invalid_grant is what sends the client back to /authorize."""
        logger.info("Refresh grant refused for client_id=%s; re-authentication required", client_id)
        raise StateError("invalid_grant", "Refresh tokens are not supported. Please re-authenticate.")

    def register_client(
        self,
        redirect_uris: list[str] | None = None,
        client_name: str | None = None,
    ) -> dict:
        """Acknowledge dynamic registration; upstream always sees our one fixed client id."""
        response = {"client_id": generate_client_id()}
        if client_name is not None:
            response["client_name"] = client_name
        if redirect_uris is not None:
            response["redirect_uris"] = redirect_uris
        return response

    # ------------------------------------------------------------------ validation

    def load_upstream_tokens(self, token: str) -> UpstreamSession | None:
        """Resolve a proxy access token to the upstream credentials, or None if not valid."""
        now = self._clock()
        record, removed = self.tokens.lookup(token, now)
        if removed:
            logger.info("Proxy token %s expired; removed", mask_token(token))
            self._persist()
        if record is None:
            return None
        return UpstreamSession(
            access_token=record.access_token,
            refresh_token=record.refresh_token,
            expires_in=max(0, math.floor((record.expires_at - now).total_seconds())),
        )

    # ------------------------------------------------------------------ expiry

    def sweep(self) -> SweepResult:
        """One expiry pass over both stores; saves only if a token was removed."""
        now = self._clock()
        result = SweepResult(
            transactions_removed=self.transactions.purge_expired(now),
            tokens_removed=self.tokens.purge_expired(now),
        )
        if result.tokens_removed:
            self._persist()
        if result.transactions_removed or result.tokens_removed:
            logger.info(
                "Swept %d expired transactions, %d expired tokens",
                result.transactions_removed,
                result.tokens_removed,
            )
        return result

    def _persist(self) -> None:
        try:
            self.token_file.save(self.tokens.snapshot())
        except PersistenceError as e:
            logger.error("%s; continuing with in-memory tokens", e)

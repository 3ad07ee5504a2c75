"""
Typed errors raised by the proxy engine. The HTTP layer turns ProxyError into a JSON body
{"error": ..., "error_description": ...}; PersistenceError never leaves the engine.
"""


class ProxyError(Exception):
    """OAuth-style error with a wire error code and HTTP status."""

    status_code = 400

    def __init__(
        self,
        error: str,
        description: str = "",
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(description or error)
        self.error = error
        self.description = description
        self.headers = headers
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return body


class ProtocolError(ProxyError):
    """Malformed or unsupported request shape (unsupported_response_type, missing_code, ...)."""


class StateError(ProxyError):
    """Request refers to a transaction or code that is unknown, consumed, or expired."""


class UpstreamError(ProxyError):
    """Upstream token endpoint refused or could not be reached."""

    def __init__(
        self,
        error: str = "token_exchange_failed",
        description: str = "Upstream token exchange failed",
        *,
        status: int | None = None,
        body: str = "",
        status_code: int | None = None,
    ):
        super().__init__(error, description, status_code)
        self.status = status
        self.body = body

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["details"] = self.body
        return payload


class UpstreamTimeoutError(UpstreamError):
    status_code = 504

    def __init__(self, description: str = "Upstream token endpoint did not respond in time"):
        super().__init__("upstream_timeout", description)


class PersistenceError(Exception):
    """Token snapshot could not be written. Logged by the engine; memory stays authoritative."""


class InvalidTokenError(ProxyError):
    """Bearer token missing, unknown, or expired at the auth gate."""

    status_code = 401

    def __init__(self, description: str, resource_metadata: str):
        super().__init__(
            "invalid_token",
            description,
            headers={"WWW-Authenticate": f'Bearer error="invalid_token", resource_metadata="{resource_metadata}"'},
        )

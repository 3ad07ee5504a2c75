"""
PKCE (RFC 7636) material and opaque identifiers for the proxy. S256 only.
Nothing here holds state; every value comes straight from the OS entropy source.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

# 32 bytes -> 43 base64url chars, 256 bits
_ID_BYTES = 32


def code_challenge_s256(code_verifier: str) -> str:
    """BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> tuple[str, str]:
    """
    Generate code_verifier and code_challenge (S256).
    Returns (code_verifier, code_challenge). Verifier is 43 chars, inside the 43-128 range.
    """
    code_verifier = secrets.token_urlsafe(_ID_BYTES)
    return code_verifier, code_challenge_s256(code_verifier)


def generate_transaction_id() -> str:
    """Key of a pending authorization; doubles as the upstream state value."""
    return secrets.token_urlsafe(_ID_BYTES)


def generate_proxy_code() -> str:
    """Single-use code handed to the original client after the callback."""
    return secrets.token_urlsafe(_ID_BYTES)


def generate_access_token() -> str:
    return secrets.token_urlsafe(_ID_BYTES)


def generate_client_id() -> str:
    return secrets.token_urlsafe(_ID_BYTES)


def generate_state() -> str:
    """Fallback client state when the original client sent none."""
    return secrets.token_urlsafe(_ID_BYTES)


def mask_token(value: str | None, keep: int = 8) -> str:
    """Short prefix for logs; full token values are never logged."""
    if not value:
        return "-"
    return f"{value[:keep]}..."


def append_query(url: str, params: dict[str, str]) -> str:
    """Add params to url, keeping any query the url already carries."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))

"""
PKCE proxy configuration. Public identifiers only; the upstream client is public, so no secret exists.
"""
import os
from dataclasses import dataclass

# Where we listen (the proxy's own callback must be reachable by the browser)
HOST = os.environ.get("HOST", "127.0.0.1")
PORT = int(os.environ.get("PORT", "3000"))

# Issuer / base URL used for our endpoints and the fixed upstream callback
BASE_URL = os.environ.get("PROXY_BASE_URL", f"http://localhost:{PORT}").rstrip("/")

# Our one upstream client identity (registered at Reflect as a public client)
UPSTREAM_CLIENT_ID = os.environ.get("REFLECT_CLIENT_ID", "55798f25d5a24efb95e4174fff3d219e")

UPSTREAM_AUTHORIZATION_ENDPOINT = os.environ.get("UPSTREAM_AUTHORIZATION_ENDPOINT", "https://reflect.app/oauth")
UPSTREAM_TOKEN_ENDPOINT = os.environ.get("UPSTREAM_TOKEN_ENDPOINT", "https://reflect.app/api/oauth/token")

# Content API the upstream access token is used against (GET /graphs)
UPSTREAM_API_URL = os.environ.get("UPSTREAM_API_URL", "https://reflect.app/api").rstrip("/")

SCOPES = os.environ.get("PROXY_SCOPES", "read:graph write:graph").split()

REDIRECT_PATH = os.environ.get("PROXY_REDIRECT_PATH", "/oauth/callback")

# Token store snapshot; overwritten wholesale on every save
TOKEN_STORAGE_PATH = os.path.expanduser(
    os.environ.get("PROXY_TOKEN_STORAGE_PATH", "~/.reflect-mcp-tokens.json")
)

UPSTREAM_TIMEOUT_SECONDS = float(os.environ.get("UPSTREAM_TIMEOUT_SECONDS", "10"))

SWEEP_INTERVAL_SECONDS = float(os.environ.get("SWEEP_INTERVAL_SECONDS", "60"))

# SQLite audit log (security events only, never token values)
AUDIT_DATABASE_URL = os.environ.get("AUDIT_DATABASE_URL", "sqlite:///./pkce_proxy_audit.db")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Pending authorize -> callback flows live 10 minutes
TRANSACTION_TTL_SECONDS = 600

# Used when upstream omits expires_in, and as the floor for a just-issued token's expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


@dataclass
class ProxyConfig:
    base_url: str
    client_id: str
    authorization_endpoint: str
    token_endpoint: str
    scopes: list[str]
    redirect_path: str = REDIRECT_PATH
    token_storage_path: str = TOKEN_STORAGE_PATH
    api_url: str = UPSTREAM_API_URL
    upstream_timeout: float = UPSTREAM_TIMEOUT_SECONDS
    sweep_interval: float = SWEEP_INTERVAL_SECONDS
    transaction_ttl: int = TRANSACTION_TTL_SECONDS
    default_token_lifetime: int = DEFAULT_TOKEN_LIFETIME_SECONDS

    @property
    def callback_url(self) -> str:
        """Fixed proxy-owned redirect URI registered upstream."""
        return f"{self.base_url}{self.redirect_path}"


def load_config(**overrides) -> ProxyConfig:
    """Build a ProxyConfig from the environment-derived constants above."""
    values = {
        "base_url": BASE_URL,
        "client_id": UPSTREAM_CLIENT_ID,
        "authorization_endpoint": UPSTREAM_AUTHORIZATION_ENDPOINT,
        "token_endpoint": UPSTREAM_TOKEN_ENDPOINT,
        "scopes": list(SCOPES),
        "redirect_path": REDIRECT_PATH,
        "token_storage_path": TOKEN_STORAGE_PATH,
        "api_url": UPSTREAM_API_URL,
        "upstream_timeout": UPSTREAM_TIMEOUT_SECONDS,
        "sweep_interval": SWEEP_INTERVAL_SECONDS,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ProxyConfig(**values)

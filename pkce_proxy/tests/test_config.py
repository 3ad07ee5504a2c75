"""Tests for configuration defaults and overrides."""
from pkce_proxy import config
from pkce_proxy.config import ProxyConfig, load_config


def test_proxy_config_defaults_follow_module_settings():
    cfg = ProxyConfig(
        base_url="http://localhost:3000",
        client_id="c",
        authorization_endpoint="https://reflect.test/oauth",
        token_endpoint="https://reflect.test/api/oauth/token",
        scopes=["read:graph"],
    )
    assert cfg.redirect_path == config.REDIRECT_PATH
    assert cfg.api_url == config.UPSTREAM_API_URL
    assert cfg.upstream_timeout == config.UPSTREAM_TIMEOUT_SECONDS
    assert cfg.sweep_interval == config.SWEEP_INTERVAL_SECONDS
    assert cfg.callback_url == "http://localhost:3000" + config.REDIRECT_PATH


def test_load_config_ignores_none_overrides():
    cfg = load_config(client_id=None, base_url="http://proxy.test:8080")
    assert cfg.client_id == config.UPSTREAM_CLIENT_ID
    assert cfg.base_url == "http://proxy.test:8080"

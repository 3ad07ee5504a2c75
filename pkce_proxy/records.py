"""
Records held by the proxy: pending PKCE transactions and upstream token records.
All timestamps are timezone-aware UTC datetimes.
"""
from dataclasses import dataclass
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PKCETransaction:
    id: str
    code_verifier: str
    code_challenge: str
    client_callback_url: str
    # Original requester's id; recorded only, upstream always sees our own client id
    client_id: str
    client_state: str
    scope: list[str]
    created_at: datetime
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass
class TokenRecord:
    access_token: str
    refresh_token: str | None
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def to_snapshot(self) -> dict:
        data = {"accessToken": self.access_token, "expiresAt": self.expires_at.isoformat()}
        if self.refresh_token is not None:
            data["refreshToken"] = self.refresh_token
        return data

    @classmethod
    def from_snapshot(cls, raw) -> "TokenRecord":
        """
        Strict decode of one persisted entry. Raises ValueError on any malformed field so the
        loader can skip just this entry.
        """
        if not isinstance(raw, dict):
            raise ValueError("entry is not an object")
        access_token = raw.get("accessToken")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("accessToken missing or not a string")
        refresh_token = raw.get("refreshToken")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise ValueError("refreshToken is not a string")
        expires_at = raw.get("expiresAt")
        if not isinstance(expires_at, str):
            raise ValueError("expiresAt missing or not a string")
        try:
            parsed = parse_timestamp(expires_at)
        except OverflowError as e:
            raise ValueError(f"expiresAt out of range: {expires_at}") from e
        return cls(access_token=access_token, refresh_token=refresh_token, expires_at=parsed)


@dataclass
class UpstreamSession:
    """What the auth gate gets back for a valid proxy token."""

    access_token: str
    refresh_token: str | None
    expires_in: int


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 to aware UTC datetime. Accepts a trailing 'Z'; naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)

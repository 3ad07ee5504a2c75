"""
Durable snapshot of the token store: one JSON object, key -> {accessToken, refreshToken?, expiresAt}.
Writes go to a temp file that replaces the target, so a crash mid-save leaves the previous snapshot.
"""
import json
import logging
import os
from datetime import datetime
from pathlib import Path

from pkce_proxy.errors import PersistenceError
from pkce_proxy.pkce import mask_token
from pkce_proxy.records import TokenRecord

logger = logging.getLogger(__name__)


class TokenFile:
    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)

    def load(self, now: datetime) -> dict[str, TokenRecord]:
        """
        Read the snapshot, dropping entries that are expired as of `now` or malformed.
        A missing or unreadable file yields an empty table; startup never fails here.
        """
        if not self.path.exists():
            return {}
        try:
            stored = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Failed to load tokens from %s: %s", self.path, e)
            return {}
        if not isinstance(stored, dict):
            logger.warning("Ignoring token file %s: top level is not an object", self.path)
            return {}

        records: dict[str, TokenRecord] = {}
        skipped = 0
        for key, raw in stored.items():
            try:
                record = TokenRecord.from_snapshot(raw)
            except ValueError as e:
                skipped += 1
                logger.warning("Skipping malformed token entry %s: %s", mask_token(key), e)
                continue
            if record.expired(now):
                continue
            records[key] = record
        logger.info("Loaded %d tokens from %s (%d malformed skipped)", len(records), self.path, skipped)
        return records

    def save(self, records: dict[str, TokenRecord]) -> None:
        """Overwrite the snapshot with `records`. Raises PersistenceError on any I/O failure."""
        payload = {key: record.to_snapshot() for key, record in records.items()}
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            tmp.unlink(missing_ok=True)
            raise PersistenceError(f"Failed to save tokens to {self.path}: {e}") from e

"""
In-memory tables owned by the proxy engine.

TransactionStore: transaction id -> PKCETransaction (pending authorize -> callback flows).
TokenStore: opaque proxy key -> TokenRecord. Proxy codes and proxy access tokens share this
table; a code is rotated to an access-token key pointing at the same record.

Neither store persists by itself and neither reads the clock: callers pass `now`, and every
read re-checks expiry, so an expired entry is absent even before the sweeper removes it.
"""
from datetime import datetime

from pkce_proxy.records import PKCETransaction, TokenRecord


class TransactionStore:
    def __init__(self) -> None:
        self._pending: dict[str, PKCETransaction] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, transaction_id: str) -> bool:
        return transaction_id in self._pending

    def add(self, transaction: PKCETransaction) -> None:
        self._pending[transaction.id] = transaction

    def get(self, transaction_id: str) -> PKCETransaction | None:
        """Raw lookup, expired or not; the callback distinguishes the two cases."""
        return self._pending.get(transaction_id)

    def pop(self, transaction_id: str) -> PKCETransaction | None:
        return self._pending.pop(transaction_id, None)

    def purge_expired(self, now: datetime) -> int:
        expired = [tid for tid, tx in self._pending.items() if tx.expired(now)]
        for tid in expired:
            del self._pending[tid]
        return len(expired)


class TokenStore:
    def __init__(self, records: dict[str, TokenRecord] | None = None) -> None:
        self._records: dict[str, TokenRecord] = dict(records or {})

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def keys(self) -> list[str]:
        return list(self._records)

    def put(self, key: str, record: TokenRecord) -> None:
        self._records[key] = record

    def lookup(self, key: str, now: datetime) -> tuple[TokenRecord | None, bool]:
        """
        Return (record, removed). An expired record is deleted on the spot and reported as
        (None, True) so the caller knows the table changed and must be persisted.
        """
        record = self._records.get(key)
        if record is None:
            return None, False
        if record.expired(now):
            del self._records[key]
            return None, True
        return record, False

    def rotate(self, old_key: str, new_key: str, now: datetime) -> tuple[TokenRecord | None, bool]:
        """
        Single-use move of a record from old_key to new_key. The old key is always gone
        afterwards. Returns (record, changed); record is None when old_key was absent or expired.
        """
        record = self._records.pop(old_key, None)
        if record is None:
            return None, False
        if record.expired(now):
            return None, True
        self._records[new_key] = record
        return record, True

    def purge_expired(self, now: datetime) -> int:
        expired = [key for key, record in self._records.items() if record.expired(now)]
        for key in expired:
            del self._records[key]
        return len(expired)

    def snapshot(self) -> dict[str, TokenRecord]:
        return dict(self._records)

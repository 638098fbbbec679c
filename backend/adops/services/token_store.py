"""
In-memory store for outstanding magic-link tokens.

Records are keyed by the SHA-256 hash of the raw token. Nothing survives a
restart; tokens are short-lived and can simply be requested again.
"""

import heapq
import threading
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class AuthToken:
    """A single outstanding login credential."""

    token_hash: str
    email: str
    expires_at: datetime
    consumed: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class TokenStore:
    """
    Hash-keyed token records plus a min-heap ordered by expiry.

    The heap lets ``sweep`` touch only expired entries. Overwritten or
    deleted records leave stale heap entries behind; sweep skips them.
    """

    def __init__(self) -> None:
        self._records: dict[str, AuthToken] = {}
        self._expiry_heap: list[tuple[datetime, str]] = []
        self._lock = threading.Lock()

    def put(self, token_hash: str, record: AuthToken) -> None:
        """Insert or overwrite the record for ``token_hash``."""
        with self._lock:
            self._records[token_hash] = record
            heapq.heappush(self._expiry_heap, (record.expires_at, token_hash))

    def get(self, token_hash: str) -> Optional[AuthToken]:
        with self._lock:
            return self._records.get(token_hash)

    def delete(self, token_hash: str) -> None:
        with self._lock:
            self._records.pop(token_hash, None)

    def mark_consumed(self, token_hash: str) -> bool:
        """
        Flip ``consumed`` from False to True.

        Returns True for exactly one caller per record; every later caller
        (or a caller racing on a missing record) gets False.
        """
        with self._lock:
            record = self._records.get(token_hash)
            if record is None or record.consumed:
                return False
            record.consumed = True
            return True

    def sweep(self, now: datetime) -> None:
        """Remove every record whose ``expires_at`` is before ``now``."""
        removed = 0
        with self._lock:
            while self._expiry_heap and self._expiry_heap[0][0] < now:
                _, token_hash = heapq.heappop(self._expiry_heap)
                record = self._records.get(token_hash)
                if record is not None and record.expires_at < now:
                    del self._records[token_hash]
                    removed += 1
            remaining = len(self._records)

        logger.info("auth_tokens_swept", removed=removed, remaining=remaining)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


@lru_cache
def get_token_store() -> TokenStore:
    """Process-wide token store."""
    return TokenStore()

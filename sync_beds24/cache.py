"""
In-memory access token cache.

This module keeps Beds24 access tokens in process memory so most API calls avoid
a database round trip. Unlike a plain TTL cache, each entry carries the token's
real expiry; a lookup only returns tokens still valid for the requested safety
margin, so callers never receive a token about to expire mid-request.

For distributed deployments with multiple instances, the connections table stays
the shared source of truth; this cache is only a per-process shortcut.
"""

from datetime import datetime, timedelta
from threading import Lock
from typing import Optional

from sync_beds24.utils.datetime import utc_now

CacheKey = tuple[str, str]


class TokenCache:
    """
    Access token cache keyed by (connection_id, token_type).

    Example:
        >>> cache = TokenCache()
        >>> cache.set("conn-1", "read", "token-abc", utc_now() + timedelta(hours=24))
        >>> cache.get("conn-1", "read", margin_seconds=300)
        'token-abc'
        >>> cache.invalidate("conn-1")
    """

    def __init__(self) -> None:
        self._cache: dict[CacheKey, tuple[str, datetime]] = {}
        self._lock = Lock()

    def get(
        self, connection_id: str, token_type: str, margin_seconds: int = 0
    ) -> Optional[str]:
        """
        Get a cached token valid for at least margin_seconds.

        Args:
            connection_id: Connection UUID
            token_type: "read" or "write"
            margin_seconds: Required remaining validity

        Returns:
            Cached token string, or None when missing or too close to expiry
        """
        key = (connection_id, token_type)
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            token, expires_at = entry
            if utc_now() < expires_at - timedelta(seconds=margin_seconds):
                return token
            del self._cache[key]
        return None

    def set(self, connection_id: str, token_type: str, token: str, expires_at: datetime) -> None:
        with self._lock:
            self._cache[(connection_id, token_type)] = (token, expires_at)

    def invalidate(self, connection_id: str, token_type: Optional[str] = None) -> None:
        """
        Remove one token type, or every token of the connection when token_type is None.

        Call this whenever tokens are refreshed or reset so stale tokens aren't served.
        """
        with self._lock:
            if token_type is not None:
                self._cache.pop((connection_id, token_type), None)
                return
            for key in [k for k in self._cache if k[0] == connection_id]:
                del self._cache[key]

    def clear(self) -> None:
        """Clear all cached tokens."""
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._cache)


# Global cache instance
token_cache = TokenCache()

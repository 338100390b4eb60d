"""
Unit tests for the in-memory access token cache.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from sync_beds24.cache import TokenCache
from sync_beds24.utils.datetime import utc_now


@pytest.fixture
def cache() -> TokenCache:
    return TokenCache()


@pytest.mark.unit
def test_get_returns_token_valid_past_margin(cache: TokenCache) -> None:
    """Test that a token valid beyond the margin is returned."""
    cache.set("conn-1", "read", "token-abc", utc_now() + timedelta(hours=1))

    assert cache.get("conn-1", "read", margin_seconds=300) == "token-abc"


@pytest.mark.unit
def test_get_drops_token_inside_margin(cache: TokenCache) -> None:
    """Test that a token expiring within the margin is treated as missing and evicted."""
    cache.set("conn-1", "read", "token-abc", utc_now() + timedelta(seconds=60))

    assert cache.get("conn-1", "read", margin_seconds=300) is None
    assert cache.size() == 0


@pytest.mark.unit
def test_token_types_are_separate(cache: TokenCache) -> None:
    """Test that read and write tokens of a connection are cached independently."""
    expires_at = utc_now() + timedelta(hours=1)
    cache.set("conn-1", "read", "read-token", expires_at)
    cache.set("conn-1", "write", "write-token", expires_at)

    cache.invalidate("conn-1", "write")

    assert cache.get("conn-1", "read") == "read-token"
    assert cache.get("conn-1", "write") is None


@pytest.mark.unit
def test_invalidate_whole_connection(cache: TokenCache) -> None:
    """Test that invalidate without a token type drops every token of the connection only."""
    expires_at = utc_now() + timedelta(hours=1)
    cache.set("conn-1", "read", "a", expires_at)
    cache.set("conn-1", "write", "b", expires_at)
    cache.set("conn-2", "read", "c", expires_at)

    cache.invalidate("conn-1")

    assert cache.size() == 1
    assert cache.get("conn-2", "read") == "c"


@pytest.mark.unit
def test_clear(cache: TokenCache) -> None:
    """Test that clear empties the cache."""
    cache.set("conn-1", "read", "a", utc_now() + timedelta(hours=1))
    cache.clear()

    assert cache.size() == 0

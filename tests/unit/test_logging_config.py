"""
Unit tests for log and audit metadata redaction.
"""

from __future__ import annotations

import pytest

from sync_beds24.logging_config import REDACTED, is_sensitive_key, redact, redact_event


@pytest.mark.unit
def test_is_sensitive_key_is_case_insensitive() -> None:
    """Test that key matching ignores case and dashes."""
    assert is_sensitive_key("Refresh-Token")
    assert is_sensitive_key("EMAIL")
    assert not is_sensitive_key("hotel_id")


@pytest.mark.unit
def test_redact_nested_structures() -> None:
    """Test that sensitive values are masked at any depth without touching the rest."""
    payload = {
        "token": "abc",
        "nested": {"email": "guest@example.com", "count": 2},
        "items": [{"phone": "+1 555"}, {"id": 7}],
    }

    assert redact(payload) == {
        "token": REDACTED,
        "nested": {"email": REDACTED, "count": 2},
        "items": [{"phone": REDACTED}, {"id": 7}],
    }
    assert payload["token"] == "abc"


@pytest.mark.unit
def test_redact_event_keeps_event_name() -> None:
    """Test that the structlog processor masks fields but never the event itself."""
    event = {"event": "token_refreshed", "access_token": "secret", "hotel_id": "h1"}

    result = redact_event(None, "info", event)

    assert result == {"event": "token_refreshed", "access_token": REDACTED, "hotel_id": "h1"}

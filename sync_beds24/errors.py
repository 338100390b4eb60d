"""
Typed failures raised by the Beds24 sync core.

Every exception carries a ``category`` that is written to the audit log and used
by health reporting and HTTP error mapping, so operators can see *why* something
failed ("auth", "rate_limit", "precondition", ...) rather than a generic error.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional


class Beds24Error(Exception):
    """Base class for all sync core errors."""

    category = "internal"
    retryable = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "category": self.category, **self.context}


# =============================================================================
# Authentication
# =============================================================================


class AuthError(Beds24Error):
    category = "auth"


class CredentialExpiredError(AuthError):
    """The refresh token was rejected; an operator must re-authorize the connection."""

    category = "auth"
    retryable = False


class AuthTransientError(AuthError):
    """Token endpoint unreachable or temporarily failing; retry on the next tick."""

    category = "auth_transient"
    retryable = True


# =============================================================================
# Remote API
# =============================================================================


class ApiError(Beds24Error):
    category = "api"

    def __init__(self, message: str, status_code: Optional[int] = None, **context: Any) -> None:
        super().__init__(message, **context)
        self.status_code = status_code


class ClientError(ApiError):
    """4xx response: the request itself is wrong and will not be retried."""

    category = "client"


class RetryableError(ApiError):
    """5xx response: eligible for backoff retry on a later scheduler tick."""

    category = "server"
    retryable = True


class RateLimitError(RetryableError):
    """429 response or exhausted credit budget."""

    category = "rate_limit"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = 429,
        resets_in: Optional[int] = None,
        **context: Any,
    ) -> None:
        super().__init__(message, status_code=status_code, **context)
        self.resets_in = resets_in


class TransientError(ApiError):
    """Timeout or connection failure before a response arrived."""

    category = "network"
    retryable = True


class PayloadError(ApiError):
    """Remote payload did not match the expected shape."""

    category = "validation"


# =============================================================================
# Preconditions
# =============================================================================


class PreconditionError(Beds24Error):
    """Operation refused before any remote call was made."""

    category = "precondition"


class AlreadyBootstrapped(PreconditionError):
    def __init__(self, hotel_id: str, completed_at: Optional[datetime]) -> None:
        super().__init__(
            f"Hotel {hotel_id} was already bootstrapped",
            hotel_id=hotel_id,
            completed_at=completed_at.isoformat() if completed_at else None,
        )
        self.completed_at = completed_at


class NotBootstrapped(PreconditionError):
    def __init__(self, hotel_id: str) -> None:
        super().__init__(f"Hotel {hotel_id} has not completed bootstrap", hotel_id=hotel_id)


class SyncDisabled(PreconditionError):
    def __init__(self, hotel_id: str) -> None:
        super().__init__(f"Sync is disabled for hotel {hotel_id}", hotel_id=hotel_id)


class SyncInProgress(PreconditionError):
    def __init__(self, hotel_id: str) -> None:
        super().__init__(f"A sync is already running for hotel {hotel_id}", hotel_id=hotel_id)


class ConnectionNotFound(PreconditionError):
    def __init__(self, hotel_id: str, property_id: Optional[str] = None) -> None:
        super().__init__(
            f"No active Beds24 connection for hotel {hotel_id}",
            hotel_id=hotel_id,
            property_id=property_id,
        )


class MappingNotFound(PreconditionError):
    def __init__(self, hotel_id: str, entity: str, key: str) -> None:
        super().__init__(
            f"No {entity} mapping for {key} in hotel {hotel_id}",
            hotel_id=hotel_id,
            entity=entity,
        )


class InvalidRequestError(Beds24Error):
    """Caller supplied arguments that can never succeed."""

    category = "validation"


# =============================================================================
# Partial outcomes
# =============================================================================


class PartialFailure(Beds24Error):
    """Some entities were written, some failed. The failures are enumerated."""

    category = "partial"

    def __init__(
        self,
        message: str,
        failures: list[dict[str, Any]],
        counts: Optional[dict[str, int]] = None,
    ) -> None:
        super().__init__(message, failures=failures, counts=counts or {})
        self.failures = failures
        self.counts = counts or {}


def error_category(exc: BaseException) -> str:
    """Category for any exception, falling back to "internal" for non-sync errors."""
    if isinstance(exc, Beds24Error):
        return exc.category
    return "internal"

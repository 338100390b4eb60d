"""
Prometheus metrics for sync runs, Beds24 API calls, pushes and recovery.

This module defines all Prometheus metrics used throughout the application for
observability and monitoring. Metrics are exposed via the /metrics endpoint for
scraping by Prometheus.

Metric Types:
    - Counter: Cumulative metrics that only increase (e.g., total API requests)
    - Histogram: Observations bucketed by value (e.g., request latency)
    - Gauge: Point-in-time value that can go up or down (e.g., credit remaining)

Example:
    >>> from sync_beds24.metrics import sync_duration, records_synced
    >>> with sync_duration.labels(hotel_id="h1", scope="bookings").time():
    ...     result = delta_sync(engine, "h1", "bookings")
    ...     records_synced.labels(hotel_id="h1", entity_type="bookings").inc(3)
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Sync Metrics
# =============================================================================

sync_runs = Counter(
    "beds24_sync_runs_total",
    "Total number of bootstrap and delta sync runs",
    ["hotel_id", "scope", "status"],
)
"""
Counter for sync runs.

Labels:
    hotel_id: Local hotel identifier
    scope: bootstrap, bookings, calendar or all
    status: success, partial, error or skipped
"""

sync_duration = Histogram(
    "beds24_sync_duration_seconds",
    "Duration of sync runs in seconds",
    ["hotel_id", "scope"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, float("inf")),
)

poll_total = Counter(
    "beds24_polls_total",
    "Total number of Beds24 fetch operations (success and failure)",
    ["hotel_id", "entity_type", "status"],
)
"""
Counter for fetch operations.

Labels:
    hotel_id: Local hotel identifier
    entity_type: property, bookings or calendar
    status: success or failure
"""

poll_duration = Histogram(
    "beds24_poll_duration_seconds",
    "Duration of Beds24 fetch operations in seconds",
    ["hotel_id", "entity_type"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, float("inf")),
)

records_synced = Counter(
    "beds24_records_synced_total",
    "Total number of records written to local storage",
    ["hotel_id", "entity_type"],
)
"""
Counter for records synced.

Labels:
    hotel_id: Local hotel identifier
    entity_type: room_types, bookings, guests or calendar_days
"""

# =============================================================================
# API Metrics
# =============================================================================

api_requests = Counter(
    "beds24_api_requests_total",
    "Total Beds24 API requests made",
    ["operation", "status_code"],
)
"""
Counter for API requests to Beds24.

Labels:
    operation: Logical operation (e.g., "get_bookings", "post_calendar", "token_refresh")
    status_code: HTTP status code, or "timeout"/"connection_error"
"""

api_latency = Histogram(
    "beds24_api_latency_seconds",
    "Beds24 API request latency in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, float("inf")),
)

api_credit_remaining = Gauge(
    "beds24_api_credit_remaining",
    "Remaining five-minute credit budget reported by Beds24",
    ["hotel_id"],
)

# =============================================================================
# Token Metrics
# =============================================================================

token_cache_hits = Counter(
    "beds24_token_cache_hits_total",
    "Total number of in-process token cache hits",
)

token_cache_misses = Counter(
    "beds24_token_cache_misses_total",
    "Total number of in-process token cache misses",
)

token_refreshes = Counter(
    "beds24_token_refreshes_total",
    "Total number of token refresh operations",
    ["hotel_id", "status"],
)

# =============================================================================
# Push and Recovery Metrics
# =============================================================================

rate_push_batches = Counter(
    "beds24_rate_push_batches_total",
    "Total rate/availability push batches sent",
    ["hotel_id", "status"],
)

recovery_actions = Counter(
    "beds24_recovery_actions_total",
    "Total recovery actions applied",
    ["action", "outcome"],
)

webhooks_received = Counter(
    "beds24_webhooks_received_total",
    "Total webhook deliveries stored",
    ["webhook_type", "outcome"],
)
"""
Counter for webhook deliveries.

Labels:
    webhook_type: booking or unknown
    outcome: processed, failed or ignored
"""

audit_write_failures = Counter(
    "beds24_audit_write_failures_total",
    "Audit log entries that could not be written",
)

token_cache_entries = Gauge(
    "beds24_token_cache_entries",
    "Access tokens currently held in the in-process cache",
)

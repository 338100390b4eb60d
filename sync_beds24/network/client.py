"""
Client module for the Beds24 v2 API with token refresh, credit accounting,
error classification and per-call audit logging.

There are no retry loops here: a retryable failure is raised to the caller and
the next scheduler tick tries again, which keeps every invocation short-lived.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import requests
import structlog
from sqlalchemy.engine import Engine

from sync_beds24.config import BEDS24_BASE_URL, BEDS24_REQUEST_TIMEOUT, CREDIT_LOW_WATERMARK
from sync_beds24.db.readers.connections import READ_TOKEN, ConnectionRecord
from sync_beds24.db.writers.connections import mark_connection_error
from sync_beds24.errors import (
    ApiError,
    Beds24Error,
    ClientError,
    CredentialExpiredError,
    RateLimitError,
    RetryableError,
    TransientError,
)
from sync_beds24.metrics import api_credit_remaining, api_latency, api_requests
from sync_beds24.models.audit_log import AUDIT_ERROR, AUDIT_SUCCESS
from sync_beds24.network.auth import refresh_access_token, resolve_access_token
from sync_beds24.services.audit import log_audit

logger = structlog.get_logger(__name__)

MAX_PAGES = 200
CREDIT_REMAINING_HEADER = "X-FiveMinCreditLimit-Remaining"
CREDIT_RESETS_IN_HEADER = "X-FiveMinCreditLimit-ResetsIn"
REQUEST_COST_HEADER = "X-RequestCost"


@dataclass(frozen=True)
class CreditInfo:
    """Five-minute credit budget reported by Beds24 on every response."""

    remaining: Optional[float] = None
    resets_in: Optional[int] = None
    cost: Optional[float] = None

    @property
    def is_low(self) -> bool:
        return self.remaining is not None and self.remaining < CREDIT_LOW_WATERMARK


@dataclass
class ApiResponse:
    status_code: int
    data: Any
    credit: CreditInfo = field(default_factory=CreditInfo)
    duration_ms: int = 0

    @property
    def items(self) -> list[Any]:
        """List payload: the ``data`` array of an envelope, or the body itself when it is a list."""
        if isinstance(self.data, list):
            return self.data
        if isinstance(self.data, dict):
            items = self.data.get("data")
            if isinstance(items, list):
                return items
        return []

    @property
    def next_page_exists(self) -> bool:
        if isinstance(self.data, dict):
            pages = self.data.get("pages") or {}
            return bool(pages.get("nextPageExists"))
        return False


def _parse_number(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def parse_credit_headers(headers: Mapping[str, str]) -> CreditInfo:
    """
    Extract the credit budget from response headers.

    Args:
        headers (Mapping[str, str]): Response headers (case-insensitive mapping from requests).

    Returns:
        CreditInfo: Parsed values; missing or malformed headers become None.
    """
    resets_in = _parse_number(headers.get(CREDIT_RESETS_IN_HEADER))
    return CreditInfo(
        remaining=_parse_number(headers.get(CREDIT_REMAINING_HEADER)),
        resets_in=int(resets_in) if resets_in is not None else None,
        cost=_parse_number(headers.get(REQUEST_COST_HEADER)),
    )


def classify_response(response: requests.Response, credit: CreditInfo) -> None:
    """
    Raise the typed error matching a non-success HTTP status.

    Args:
        response (requests.Response): Response to inspect.
        credit (CreditInfo): Parsed credit headers, used for 429 reset hints.

    Raises:
        RateLimitError: 429.
        RetryableError: 5xx.
        ClientError: Any other 4xx (and unexpected 3xx).
    """
    status_code = response.status_code
    if status_code < 300:
        return

    detail = (response.text or "")[:500]
    if status_code == 429:
        raise RateLimitError(
            "Beds24 credit limit exceeded",
            status_code=status_code,
            resets_in=credit.resets_in,
        )
    if status_code >= 500:
        raise RetryableError(f"Beds24 server error (HTTP {status_code})", status_code=status_code)
    raise ClientError(
        f"Beds24 rejected the request (HTTP {status_code}): {detail}", status_code=status_code
    )


def _send(
    method: str,
    url: str,
    token: str,
    operation: str,
    params: Optional[dict[str, Any]],
    body: Any,
) -> requests.Response:
    headers = {"token": token, "accept": "application/json"}
    start_time = time.time()
    try:
        response = requests.request(
            method,
            url,
            headers=headers,
            params=params,
            json=body,
            timeout=BEDS24_REQUEST_TIMEOUT,
        )
    except requests.Timeout as e:
        api_requests.labels(operation=operation, status_code="timeout").inc()
        raise TransientError(f"Beds24 request timed out: {e}") from e
    except requests.RequestException as e:
        api_requests.labels(operation=operation, status_code="connection_error").inc()
        raise TransientError(f"Beds24 request failed: {e}") from e

    api_requests.labels(operation=operation, status_code=str(response.status_code)).inc()
    api_latency.labels(operation=operation).observe(time.time() - start_time)
    return response


def call(
    engine: Engine,
    connection: ConnectionRecord,
    method: str,
    path: str,
    params: Optional[dict[str, Any]] = None,
    body: Any = None,
    token_type: str = READ_TOKEN,
    operation: Optional[str] = None,
) -> ApiResponse:
    """
    Execute one Beds24 API request.

    Resolves a valid access token first. At most one token refresh happens per
    call: a 401 triggers a refresh and one retry unless the token was already
    refreshed for this call, and a 401 on a fresh token means the credential is
    no longer accepted. Every call, successful or not, is written to the audit
    log with its credit cost and remaining budget.

    Args:
        engine (Engine): SQLAlchemy engine (token storage and audit log).
        connection (ConnectionRecord): Connection to call on behalf of.
        method (str): HTTP method.
        path (str): API path, e.g. "/bookings".
        params (Optional[dict]): Query parameters.
        body (Any): JSON body.
        token_type (str): "read" or "write".
        operation (Optional[str]): Logical operation name for metrics and audit.

    Returns:
        ApiResponse: Parsed body, status code and credit info.

    Raises:
        CredentialExpiredError: Token refresh failed or a refreshed token was rejected.
        AuthTransientError: Token endpoint temporarily unavailable.
        ClientError: 4xx response.
        RetryableError: 5xx response (RateLimitError for 429).
        TransientError: Timeout or connection failure.
    """
    operation = operation or path.strip("/").replace("/", "_")
    url = f"{BEDS24_BASE_URL}{path}"
    start_time = time.time()
    credit = CreditInfo()

    try:
        token, refreshed = resolve_access_token(engine, connection, token_type)
        response = _send(method, url, token, operation, params, body)

        if response.status_code == 401 and not refreshed:
            logger.warning(
                "beds24_unauthorized_refreshing_token",
                hotel_id=connection.hotel_id,
                operation=operation,
            )
            token = refresh_access_token(engine, connection, token_type).token
            response = _send(method, url, token, operation, params, body)

        if response.status_code == 401:
            error = CredentialExpiredError(
                "Beds24 rejected a freshly refreshed access token", status_code=401
            )
            with engine.begin() as conn:
                mark_connection_error(conn, connection.id, f"{error.category}: {error}")
            raise error

        credit = parse_credit_headers(response.headers)
        classify_response(response, credit)

        try:
            data = response.json() if response.content else None
        except ValueError as e:
            raise ApiError(
                f"Beds24 returned invalid JSON: {e}", status_code=response.status_code
            ) from e

        if isinstance(data, dict) and data.get("success") is False and "data" not in data:
            raise ClientError(
                f"Beds24 reported failure: {data.get('error') or data.get('message')}",
                status_code=response.status_code,
            )
    except Beds24Error as e:
        duration_ms = int((time.time() - start_time) * 1000)
        log_audit(
            engine,
            operation=f"api:{operation}",
            status=AUDIT_ERROR,
            hotel_id=connection.hotel_id,
            entity_type=operation,
            request_cost=credit.cost,
            limit_remaining=credit.remaining,
            limit_resets_in=credit.resets_in,
            duration_ms=duration_ms,
            error=e,
            metadata={"method": method, "path": path, "params": params or {}},
        )
        logger.warning(
            "beds24_call_failed",
            hotel_id=connection.hotel_id,
            operation=operation,
            category=e.category,
            error=e.message,
        )
        raise

    duration_ms = int((time.time() - start_time) * 1000)
    result = ApiResponse(
        status_code=response.status_code, data=data, credit=credit, duration_ms=duration_ms
    )

    if credit.remaining is not None:
        api_credit_remaining.labels(hotel_id=connection.hotel_id).set(credit.remaining)
    if credit.is_low:
        logger.warning(
            "beds24_credit_low",
            hotel_id=connection.hotel_id,
            remaining=credit.remaining,
            resets_in=credit.resets_in,
        )

    log_audit(
        engine,
        operation=f"api:{operation}",
        status=AUDIT_SUCCESS,
        hotel_id=connection.hotel_id,
        entity_type=operation,
        request_cost=credit.cost,
        limit_remaining=credit.remaining,
        limit_resets_in=credit.resets_in,
        duration_ms=duration_ms,
        records_processed=len(result.items),
        metadata={"method": method, "path": path, "params": params or {}},
    )
    return result


def fetch_all_pages(
    engine: Engine,
    connection: ConnectionRecord,
    path: str,
    params: Optional[dict[str, Any]] = None,
    operation: Optional[str] = None,
) -> tuple[list[Any], CreditInfo]:
    """
    Fetch every page of a Beds24 list endpoint.

    Pages are requested sequentially, following ``pages.nextPageExists``, so a
    connection never spends its credit budget in parallel bursts.

    Args:
        engine (Engine): SQLAlchemy engine.
        connection (ConnectionRecord): Connection to call on behalf of.
        path (str): API path, e.g. "/bookings".
        params (Optional[dict]): Query parameters (``page`` is managed here).
        operation (Optional[str]): Logical operation name.

    Returns:
        tuple[list, CreditInfo]: All items across pages and the last credit info seen.
    """
    results: list[Any] = []
    credit = CreditInfo()
    page = 1

    while True:
        response = call(
            engine,
            connection,
            "GET",
            path,
            params={**(params or {}), "page": page},
            operation=operation,
        )
        results.extend(response.items)
        credit = response.credit

        if not response.next_page_exists:
            break
        if page >= MAX_PAGES:
            logger.warning("beds24_page_limit_reached", path=path, pages=page)
            break
        page += 1

    logger.info(
        "beds24_pages_fetched",
        hotel_id=connection.hotel_id,
        path=path,
        pages=page,
        records=len(results),
    )
    return results, credit

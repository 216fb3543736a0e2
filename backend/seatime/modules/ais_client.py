"""MyShipTracking client: current position and speed for a single vessel.

Calls ``GET {base}/vessel?mmsi=...&response=extended|simple`` with a bearer
token and normalizes the reply into an AISPosition. Provider failures are
raised as distinct AISProviderError subclasses; callers decide whether a
failure is retried (scheduler) or surfaced (manual check). A 404 or an auth
failure never yields a "not moving" position.

API docs: https://api.myshiptracking.com/
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from seatime.config import settings
from seatime.models.base import AuthStatusEnum
from seatime.modules.ais_normalize import AISPosition, normalize_vessel_payload
from seatime.modules.sea_time_policy import load_policy
from seatime.utils.clock import to_naive_utc
from seatime.utils.http_retry import retry_request

logger = logging.getLogger(__name__)

API_SOURCE = "myshiptracking"
_MAX_LOGGED_BODY = 2000


class AISProviderError(Exception):
    """Base class for provider failures. ``kind`` is a stable machine-readable label."""

    kind = "provider_error"

    def __init__(self, message: str, mmsi: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.mmsi = mmsi
        self.status_code = status_code


class AISConnectionError(AISProviderError):
    kind = "connection"


class AISAuthError(AISProviderError):
    kind = "auth"


class AISRateLimitError(AISProviderError):
    kind = "rate_limited"

    def __init__(self, message: str, mmsi: str | None = None, status_code: int | None = 429,
                 retry_after: float | None = None):
        super().__init__(message, mmsi=mmsi, status_code=status_code)
        self.retry_after = retry_after


class VesselNotFoundError(AISProviderError):
    kind = "not_found"


class AISServiceUnavailableError(AISProviderError):
    kind = "unavailable"


def mask_api_key(key: str | None) -> str:
    """Keep a short prefix for correlating logs; never log the full key."""
    if not key or len(key) < 10:
        return "***"
    return key[:6] + "***"


def _retry_after_seconds(resp: httpx.Response) -> Optional[float]:
    value = resp.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"


def classify_response(resp: httpx.Response, mmsi: str) -> AISProviderError | None:
    """Map a non-2xx response to its failure class; None for success."""
    code = resp.status_code
    if 200 <= code < 300:
        return None
    detail = _error_detail(resp)
    if code == 401:
        return AISAuthError(f"Provider rejected API key: {detail}", mmsi=mmsi, status_code=code)
    if code == 429:
        return AISRateLimitError(
            f"Provider rate limit exceeded: {detail}",
            mmsi=mmsi,
            status_code=code,
            retry_after=_retry_after_seconds(resp),
        )
    if code == 404:
        return VesselNotFoundError(f"Vessel {mmsi} unknown to provider", mmsi=mmsi, status_code=code)
    return AISServiceUnavailableError(
        f"Provider unavailable: HTTP {code} ({detail})", mmsi=mmsi, status_code=code
    )


def _auth_status(error: AISProviderError | None, api_key: str | None) -> AuthStatusEnum:
    if not api_key:
        return AuthStatusEnum.MISSING_KEY
    if isinstance(error, AISAuthError):
        return AuthStatusEnum.FAILED
    if error is None or error.status_code is not None:
        return AuthStatusEnum.AUTHENTICATED
    return AuthStatusEnum.UNKNOWN


def _record_debug_log(
    db: Session,
    *,
    mmsi: str,
    url: str,
    request_time: datetime,
    response_status: str,
    response_body: str | None,
    auth_status: AuthStatusEnum,
    error: AISProviderError | None,
    vessel_id: int | None,
    user_id: str | None,
) -> None:
    """Persist one poll attempt. Diagnostics only: a failure here never masks the poll result."""
    from sqlalchemy.exc import SQLAlchemyError
    from seatime.models.ais_debug_log import AISDebugLog

    log = AISDebugLog(
        user_id=user_id,
        vessel_id=vessel_id,
        mmsi=mmsi,
        api_url=url,
        request_time=to_naive_utc(request_time),
        response_status=response_status,
        response_body=response_body[:_MAX_LOGGED_BODY] if response_body else None,
        authentication_status=auth_status.value,
        error_message=str(error) if error else None,
        api_source=API_SOURCE if error is None else "failed",
    )
    try:
        db.add(log)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Could not record AIS debug log for MMSI %s: %s", mmsi, exc)


def fetch_position(
    mmsi: str,
    api_key: str | None = None,
    extended: bool = True,
    db: Session | None = None,
    vessel_id: int | None = None,
    user_id: str | None = None,
    client: httpx.Client | None = None,
) -> AISPosition:
    """Fetch and normalize the current position of one vessel.

    Args:
        mmsi: 9-digit MMSI used as the provider lookup key.
        api_key: Bearer token; defaults to MYSHIPTRACKING_API_KEY.
        extended: Request the richer "extended" response.
        db: When given, every attempt is written to ais_debug_logs.
        vessel_id / user_id: Labels for the debug log row.
        client: Optional pre-built httpx.Client (tests, connection reuse).

    Raises:
        AISAuthError: missing key or HTTP 401.
        AISRateLimitError: HTTP 429.
        VesselNotFoundError: HTTP 404.
        AISServiceUnavailableError: other non-2xx, a non-JSON body or an
            unreadable response (bad encoding, redirect loop).
        AISConnectionError: transport failure after retries.
    """
    key = api_key or settings.MYSHIPTRACKING_API_KEY
    url = f"{settings.MYSHIPTRACKING_API_BASE_URL.rstrip('/')}/vessel"
    params = {"mmsi": mmsi, "response": "extended" if extended else "simple"}
    masked_url = f"{url}?mmsi={mmsi}&response={params['response']}&key={mask_api_key(key)}"
    request_time = datetime.now(timezone.utc)

    def _audit(status: str, body: str | None, error: AISProviderError | None) -> None:
        if db is not None:
            _record_debug_log(
                db,
                mmsi=mmsi,
                url=masked_url,
                request_time=request_time,
                response_status=status,
                response_body=body,
                auth_status=_auth_status(error, key),
                error=error,
                vessel_id=vessel_id,
                user_id=user_id,
            )

    if not key:
        error = AISAuthError("MYSHIPTRACKING_API_KEY not configured", mmsi=mmsi)
        logger.error("AIS poll for MMSI %s skipped: no API key configured", mmsi)
        _audit("not_sent", None, error)
        raise error

    headers = {"Authorization": f"Bearer {key}", "Accept": "application/json"}
    logger.info("Polling MyShipTracking for MMSI %s (%s)", mmsi, masked_url)

    own_client = client is None
    http = client or httpx.Client(timeout=settings.AIS_REQUEST_TIMEOUT, follow_redirects=True)
    try:
        resp = retry_request(
            http.get, url, params=params, headers=headers,
            delays=settings.AIS_RETRY_DELAYS,
        )
    except httpx.TimeoutException as exc:
        error = AISConnectionError(
            f"Provider request timed out after {settings.AIS_REQUEST_TIMEOUT}s", mmsi=mmsi
        )
        logger.error("AIS poll for MMSI %s timed out: %s", mmsi, exc)
        _audit("timeout", None, error)
        raise error from exc
    except httpx.TransportError as exc:
        error = AISConnectionError(f"Provider connection failed: {exc}", mmsi=mmsi)
        logger.error("AIS poll for MMSI %s failed to connect: %s", mmsi, exc)
        _audit("connection_error", None, error)
        raise error from exc
    except httpx.RequestError as exc:
        # DecodingError, TooManyRedirects and friends: the provider answered unusably
        error = AISServiceUnavailableError(f"Provider response unusable: {exc}", mmsi=mmsi)
        logger.error("AIS poll for MMSI %s failed reading the response: %s", mmsi, exc)
        _audit("request_error", None, error)
        raise error from exc
    finally:
        if own_client:
            http.close()

    body_text = resp.text
    error = classify_response(resp, mmsi)
    if error is not None:
        log_fn = logger.info if isinstance(error, VesselNotFoundError) else logger.error
        log_fn("AIS poll for MMSI %s failed [%s]: %s", mmsi, error.kind, error)
        _audit(str(resp.status_code), body_text, error)
        raise error

    try:
        payload = resp.json()
    except ValueError as exc:
        error = AISServiceUnavailableError(
            "Provider returned a non-JSON body", mmsi=mmsi, status_code=resp.status_code
        )
        logger.error("AIS poll for MMSI %s returned non-JSON body", mmsi)
        _audit(str(resp.status_code), body_text, error)
        raise error from exc

    policy = load_policy()
    position = normalize_vessel_payload(payload, mmsi, moving_speed_knots=policy.moving_speed_knots)
    _audit(str(resp.status_code), body_text, None)

    credits = resp.headers.get("X-Credits-Remaining")
    logger.info(
        "AIS poll for MMSI %s: speed=%s kn, moving=%s, position=(%s, %s), trusted_time=%s, credits=%s",
        mmsi,
        position.speed_knots,
        position.is_moving,
        position.latitude,
        position.longitude,
        position.timestamp_trusted,
        credits,
    )
    if not position.timestamp_trusted:
        logger.warning("Provider payload for MMSI %s carried no usable timestamp: using wall clock", mmsi)
    return position

"""HTTP retry helper for provider calls.

Retries transport failures and a caller-chosen set of status codes. Client
errors the caller must classify (401, 404, 429 for the AIS adapter) are
returned untouched on the first attempt so the caller can map them.

Usage:
    from seatime.utils.http_retry import retry_request

    resp = retry_request(client.get, url, headers=headers, delays=[1, 3])
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable

import httpx

logger = logging.getLogger(__name__)

# Transient server-side statuses
SERVER_ERROR_STATUS_CODES: frozenset[int] = frozenset({500, 502, 503, 504})

# Exceptions that indicate transient network issues
_RETRYABLE_EXCEPTIONS = (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError)

DEFAULT_DELAYS: list[float] = [1, 3]


def retry_request(
    request_fn: Callable[..., httpx.Response],
    *args: Any,
    delays: Iterable[float] | None = None,
    retry_statuses: frozenset[int] = SERVER_ERROR_STATUS_CODES,
    **kwargs: Any,
) -> httpx.Response:
    """Call ``request_fn`` and retry transient failures with fixed backoff.

    Args:
        request_fn: Bound method like ``client.get``.
        *args: Positional args forwarded to request_fn (typically the URL).
        delays: Backoff delays in seconds; one retry per entry.
        retry_statuses: Status codes worth another attempt.
        **kwargs: Keyword args forwarded to request_fn.

    Returns:
        The last httpx.Response. Non-retryable statuses and retryable statuses
        that outlived every delay are returned, not raised.

    Raises:
        httpx.TransportError subclasses once all retries are exhausted.
    """
    delay_list = list(DEFAULT_DELAYS if delays is None else delays)

    for attempt in range(1 + len(delay_list)):
        last_attempt = attempt >= len(delay_list)
        try:
            resp = request_fn(*args, **kwargs)
        except _RETRYABLE_EXCEPTIONS as exc:
            if last_attempt:
                raise
            delay = delay_list[attempt]
            logger.warning(
                "%s for %s, retrying in %.0fs (attempt %d/%d)",
                type(exc).__name__,
                _url_for_log(args),
                delay,
                attempt + 1,
                len(delay_list),
            )
            time.sleep(delay)
            continue

        if resp.status_code not in retry_statuses or last_attempt:
            return resp

        delay = delay_list[attempt]
        logger.warning(
            "HTTP %d from %s, retrying in %.0fs (attempt %d/%d)",
            resp.status_code,
            _url_for_log(args),
            delay,
            attempt + 1,
            len(delay_list),
        )
        time.sleep(delay)

    raise RuntimeError("retry_request exhausted retries without result")


def _url_for_log(args: tuple) -> str:
    """Extract a loggable URL from request args."""
    if args and isinstance(args[0], (str, httpx.URL)):
        return str(args[0])[:120]
    return "<unknown>"

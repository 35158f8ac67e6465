"""Retrying HTTP transport.

Knows nothing about chat completions: it sends one request, retries
transient failures with exponential backoff and jitter, and hands back the
first response that is not worth retrying.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from reviewpilot.config import RetryPolicy
from reviewpilot.llm.base import RequestCancelledError, TransportError


logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({408, 429, 502, 503, 504})

JITTER_RATIO = 0.3

HINT_PROXY_DOWN = "Is the LLM proxy running? Check that it is started and reachable at the configured URL"
HINT_OVERLOADED = "The endpoint is overloaded or rate limited - wait a moment and try again"
HINT_TIMEOUT = "The model took too long to answer - raise transport.timeout_ms or try a faster model"


@dataclass
class RequestSpec:
    """What to send. Body is JSON-encoded by httpx."""
    method: str = "POST"
    json: Any = None
    headers: dict[str, str] = field(default_factory=dict)


def backoff_delay(attempt: int, backoff_ms: int) -> float:
    """Seconds to wait before retry number ``attempt`` (0-based)."""
    base = backoff_ms * (2 ** attempt)
    return (base + random.uniform(0, JITTER_RATIO * base)) / 1000.0


def _is_retryable_exception(exc: BaseException) -> bool:
    # httpx.TransportError covers connect/DNS failures, resets, timeouts and protocol errors
    return isinstance(exc, (httpx.TransportError, asyncio.TimeoutError, ConnectionError, BrokenPipeError))


def _hint_for(exc: Optional[BaseException], status: Optional[int]) -> str:
    if status is not None:
        return HINT_OVERLOADED
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return HINT_TIMEOUT
    return HINT_PROXY_DOWN


async def _attempt(
    client: httpx.AsyncClient,
    url: str,
    spec: RequestSpec,
    timeout_s: float,
    cancel: Optional[asyncio.Event],
) -> httpx.Response:
    """One attempt: the internal timeout raced against the caller's signal."""

    async def do_request() -> httpx.Response:
        request = client.build_request(spec.method, url, json=spec.json, headers=spec.headers)
        response = await client.send(request, stream=True)
        # Always drain, so a retried attempt leaves no half-read connection behind
        try:
            await response.aread()
        finally:
            await response.aclose()
        return response

    attempt = asyncio.ensure_future(asyncio.wait_for(do_request(), timeout_s))
    if cancel is None:
        return await attempt

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({attempt, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        attempt.cancel()
        raise
    finally:
        waiter.cancel()

    if attempt not in done:
        attempt.cancel()
        try:
            await attempt
        except (asyncio.CancelledError, Exception):
            pass
        raise RequestCancelledError()
    return attempt.result()


async def _backoff(delay: float, cancel: Optional[asyncio.Event]) -> None:
    """Sleep between attempts, waking early if the caller cancels."""
    if cancel is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel.wait(), delay)
    except asyncio.TimeoutError:
        return
    raise RequestCancelledError()


async def send(
    client: httpx.AsyncClient,
    url: str,
    spec: RequestSpec,
    policy: RetryPolicy = RetryPolicy(),
    cancel: Optional[asyncio.Event] = None,
) -> httpx.Response:
    """Send a request, retrying transient failures.

    Args:
        client: HTTP client to send through.
        url: Absolute URL.
        spec: Method, JSON body and headers.
        policy: Retry count, per-attempt timeout and initial backoff.
        cancel: Optional caller cancellation signal. Setting it aborts the
            in-flight attempt and is never retried.

    Returns:
        The first response whose status is not retryable, body fully read.

    Raises:
        RequestCancelledError: The caller set ``cancel``.
        TransportError: Retries exhausted.
    """
    timeout_s = policy.timeout_ms / 1000.0
    last_exc: Optional[BaseException] = None
    last_status: Optional[int] = None

    for attempt in range(policy.max_retries + 1):
        if cancel is not None and cancel.is_set():
            raise RequestCancelledError()

        try:
            response = await _attempt(client, url, spec, timeout_s, cancel)
        except RequestCancelledError:
            raise
        except Exception as e:
            if not _is_retryable_exception(e):
                raise TransportError(f"Request to {url} failed: {e}", hint=HINT_PROXY_DOWN) from e
            last_exc, last_status = e, None
            logger.warning(
                "Attempt %d/%d to %s failed: %s",
                attempt + 1, policy.max_retries + 1, url, e.__class__.__name__,
            )
        else:
            if response.status_code not in RETRYABLE_STATUSES:
                return response
            last_exc, last_status = None, response.status_code
            logger.warning(
                "Attempt %d/%d to %s returned HTTP %d",
                attempt + 1, policy.max_retries + 1, url, response.status_code,
            )

        if attempt < policy.max_retries:
            await _backoff(backoff_delay(attempt, policy.backoff_ms), cancel)

    attempts = policy.max_retries + 1
    if last_status is not None:
        detail = f"HTTP {last_status}"
    else:
        detail = f"{last_exc.__class__.__name__}: {last_exc}" if last_exc else "unknown error"
    raise TransportError(
        f"Request to {url} failed after {attempts} attempt(s): {detail}",
        hint=_hint_for(last_exc, last_status),
        status_code=last_status,
    )

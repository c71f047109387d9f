"""Retry / credential-fallback wrapper for single outbound HTTP calls.

Two separate mechanisms:
  1. One credential substitution: a 401/403 with a fallback key available is
     retried immediately with the fallback key. No delay, not counted as a
     backoff attempt.
  2. A backoff ladder: request errors (network, timeout, undecodable body)
     and retriable statuses (5xx by default) are retried after
     ``base_delay * 2 ** (attempt - 1)`` seconds up to ``max_attempts``
     attempts. Any other non-2xx fails immediately.

All outbound calls (router → provider, client → gateway) go through
`call_with_retry()`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from genrelay.services.errors import TransientUpstreamFailure, UpstreamRejection

logger = logging.getLogger(__name__)

SendFn = Callable[[str], Awaitable[httpx.Response]]
SleepFn = Callable[[float], Awaitable[None]]

_AUTH_REJECTED = {401, 403}


def is_server_error(status: int) -> bool:
    """Default retriable predicate: 5xx only."""
    return status >= 500


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff ladder for one call site."""

    max_attempts: int
    base_delay: float
    retriable_status: Callable[[int], bool] = is_server_error

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return self.base_delay * 2 ** (attempt - 1)


@dataclass(frozen=True)
class Credentials:
    """Primary credential plus an optional single fallback."""

    primary: str
    fallback: str | None = None

    @property
    def has_fallback(self) -> bool:
        return bool(self.fallback) and self.fallback != self.primary


def mask_key(key: str) -> str:
    """Mask an API key for safe logging: show first 8 and last 4 chars."""
    if len(key) <= 16:
        return "***"
    return f"{key[:8]}...{key[-4:]}"


async def read_error_body(response: httpx.Response) -> str:
    """Read (and release) the body of a rejected response."""
    try:
        await response.aread()
    finally:
        await response.aclose()
    return response.text


async def call_with_retry(
    send: SendFn,
    credentials: Credentials,
    policy: RetryPolicy,
    *,
    sleep: SleepFn = asyncio.sleep,
    label: str = "upstream",
) -> httpx.Response:
    """Run ``send(credential)`` under the credential-fallback + backoff rules.

    Returns the first 2xx response (unread if it was sent with stream=True).

    Raises:
        UpstreamRejection: non-retriable status, raised on the first occurrence.
        TransientUpstreamFailure: the ladder is exhausted; carries the attempt
            count and the last status/body seen.
    """
    key = credentials.primary
    fallback_pending = credentials.has_fallback

    for attempt in range(1, policy.max_attempts + 1):
        try:
            response = await send(key)
            if response.status_code in _AUTH_REJECTED and fallback_pending:
                fallback_pending = False
                logger.warning(
                    "[%s] HTTP %d for key=%s, retrying once with fallback key=%s",
                    label, response.status_code, mask_key(key), mask_key(credentials.fallback or ""),
                )
                await read_error_body(response)
                key = credentials.fallback or key
                response = await send(key)
        except httpx.RequestError as e:
            # Covers undecodable bodies as well as transport failures
            failure = TransientUpstreamFailure(
                f"{label}: {type(e).__name__}: {e}",
                attempts=attempt,
            )
            logger.warning(
                "[%s] attempt %d/%d request error: %s",
                label, attempt, policy.max_attempts, e,
            )
        else:
            if response.is_success:
                return response

            status = response.status_code
            body = await read_error_body(response)

            if not policy.retriable_status(status):
                logger.error("[%s] HTTP %d (non-retriable): %s", label, status, body[:500])
                raise UpstreamRejection(
                    f"{label} HTTP {status}",
                    status_code=status,
                    body=body,
                    attempts=attempt,
                )

            failure = TransientUpstreamFailure(
                f"{label} HTTP {status}",
                status_code=status,
                body=body,
                attempts=attempt,
            )
            logger.warning(
                "[%s] attempt %d/%d HTTP %d (retriable)",
                label, attempt, policy.max_attempts, status,
            )

        if attempt == policy.max_attempts:
            logger.error("[%s] giving up after %d attempts: %s", label, attempt, failure)
            raise TransientUpstreamFailure(
                f"{label} failed after {attempt} attempts: {failure}",
                status_code=failure.status_code,
                body=failure.body,
                attempts=attempt,
            ) from failure

        delay = policy.delay_for(attempt)
        logger.warning("[%s] backing off %.2fs before attempt %d", label, delay, attempt + 1)
        await sleep(delay)

    raise ValueError("RetryPolicy.max_attempts must be >= 1")

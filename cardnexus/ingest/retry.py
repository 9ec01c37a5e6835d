"""
Retry and backoff for upstream card APIs.

One RetryPolicy serves every fetch call site. What differs between
upstream services is only how a failure is classified, so each API
supplies a classifier and shares the rest.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

import httpx

from cardnexus.config import BackoffMode, FetchConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FetchErrorKind(str, Enum):
    """Classification of a failed upstream request."""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"  # HTTP 429
    SERVER_ERROR = "server_error"  # 5xx, transport faults, unreadable bodies
    CLIENT_ERROR = "client_error"  # 4xx other than 429, never retried

    @property
    def retryable(self) -> bool:
        return self is not FetchErrorKind.CLIENT_ERROR


class PageFetchError(Exception):
    """Raised when a request could not be completed within the retry policy."""

    def __init__(self, kind: FetchErrorKind, attempts: int, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.attempts = attempts


Classifier = Callable[[Exception], FetchErrorKind | None]
Sleep = Callable[[float], Awaitable[None]]


def classify_http_error(exc: Exception) -> FetchErrorKind | None:
    """
    Classify an exception raised while calling a JSON API with httpx.

    Returns None for exceptions that are not fetch faults; those are
    re-raised untouched by the retry policy.
    """
    if isinstance(exc, httpx.TimeoutException):
        return FetchErrorKind.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429:
            return FetchErrorKind.RATE_LIMITED
        if 400 <= status < 500:
            return FetchErrorKind.CLIENT_ERROR
        return FetchErrorKind.SERVER_ERROR
    if isinstance(exc, httpx.TransportError):
        return FetchErrorKind.SERVER_ERROR
    if isinstance(exc, json.JSONDecodeError):
        # Truncated or HTML error pages served with a 200
        return FetchErrorKind.SERVER_ERROR
    return None


def classify_github_error(exc: Exception) -> FetchErrorKind | None:
    """
    Classify failures from GitHub raw files and the contents API.

    GitHub signals an exhausted quota with 403 and X-RateLimit-Remaining: 0
    rather than 429.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        if response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0":
            return FetchErrorKind.RATE_LIMITED
    return classify_http_error(exc)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with per-kind waits.

    Attributes:
        max_attempts: Total attempts including the first one
        backoff_step: Base wait after a timeout or server error
        backoff_mode: linear (step * n) or exponential (step * 2^(n-1))
        rate_limit_cooldown: Fixed wait after a rate-limit response
    """

    max_attempts: int = 3
    backoff_step: float = 3.0
    backoff_mode: BackoffMode = "linear"
    rate_limit_cooldown: float = 30.0

    @classmethod
    def from_config(cls, config: FetchConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            backoff_step=config.backoff_step,
            backoff_mode=config.backoff_mode,
            rate_limit_cooldown=config.rate_limit_cooldown,
        )

    def delay_for(self, kind: FetchErrorKind, transient_failures: int) -> float:
        """
        Seconds to wait before the next attempt.

        transient_failures counts timeouts and server errors so far; rate
        limits do not advance it.
        """
        if kind is FetchErrorKind.RATE_LIMITED:
            return self.rate_limit_cooldown
        if self.backoff_mode == "exponential":
            return self.backoff_step * 2 ** (transient_failures - 1)
        return self.backoff_step * transient_failures

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        classify: Classifier = classify_http_error,
        *,
        sleep: Sleep = asyncio.sleep,
        label: str = "request",
    ) -> T:
        """
        Run operation until it succeeds or the policy gives up.

        Raises:
            PageFetchError: On a client error, or when every attempt failed
        """
        transient_failures = 0
        attempt = 0

        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                kind = classify(e)
                if kind is None:
                    raise

                logger.warning(
                    "%s failed (attempt %d/%d): %s: %s",
                    label,
                    attempt,
                    self.max_attempts,
                    kind.value,
                    e,
                )

                if not kind.retryable:
                    raise PageFetchError(kind, attempt, f"{label}: {kind.value}: {e}") from e
                if attempt >= self.max_attempts:
                    raise PageFetchError(
                        kind,
                        attempt,
                        f"{label}: gave up after {attempt} attempts ({kind.value})",
                    ) from e

                if kind is not FetchErrorKind.RATE_LIMITED:
                    transient_failures += 1
                wait = self.delay_for(kind, transient_failures)
                logger.info("Retrying %s in %.1fs", label, wait)
                await sleep(wait)

"""HTTP client utilities with retries and circuit breaker support."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional, TypeVar

import httpx

from memebot.config import Settings, settings

T = TypeVar("T")

logger = logging.getLogger(__name__)


class CircuitBreakerOpenError(RuntimeError):
    """Raised when the circuit breaker is open and rejects a call."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Circuit breaker '{name}' is open")
        self.name = name


class RetryableStatusError(httpx.HTTPError):
    """Marks responses whose status code is worth another attempt."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"Retryable response: {response.status_code}")
        self.request = response.request
        self.response = response


@dataclass
class _CircuitState:
    failure_count: int = 0
    state: str = "closed"  # closed, open, half-open
    open_count: int = 0
    open_until: float = 0.0
    half_open_in_flight: bool = False


class AsyncCircuitBreaker:
    """Asynchronous circuit breaker guarding one upstream."""

    def __init__(
        self,
        *,
        max_failures: int,
        base_delay: float,
        max_delay: float,
        name: str,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_failures <= 0:
            raise ValueError("max_failures must be positive")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("delay values must be non-negative")
        self._max_failures = max_failures
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._name = name
        self._clock = clock
        self._state = _CircuitState()
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> str:
        return self._state.state

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        await self._acquire_permission()
        try:
            result = await func()
        except Exception:
            await self._record_failure()
            raise
        await self._record_success()
        return result

    async def _acquire_permission(self) -> None:
        async with self._lock:
            if self._state.state == "open":
                if self._clock() < self._state.open_until:
                    raise CircuitBreakerOpenError(self._name)
                self._state.state = "half-open"
                self._state.half_open_in_flight = False

            if self._state.state == "half-open":
                if self._state.half_open_in_flight:
                    raise CircuitBreakerOpenError(self._name)
                self._state.half_open_in_flight = True

    async def _record_failure(self) -> None:
        async with self._lock:
            if self._state.state != "half-open":
                self._state.failure_count += 1
                if self._state.failure_count < self._max_failures:
                    return
            self._trip()

    async def _record_success(self) -> None:
        async with self._lock:
            self._state = _CircuitState()

    def _trip(self) -> None:
        self._state.state = "open"
        self._state.failure_count = self._max_failures
        self._state.open_count += 1
        delay = self._base_delay * (2 ** (self._state.open_count - 1))
        if self._max_delay:
            delay = min(delay, self._max_delay)
        self._state.open_until = self._clock() + delay
        self._state.half_open_in_flight = False
        logger.warning("circuit breaker %s opened for %.1fs", self._name, delay)

    async def reset(self) -> None:
        """Forcefully reset the breaker state (useful in tests)."""

        async with self._lock:
            self._state = _CircuitState()


def breaker_from_settings(name: str, settings_obj: Settings | None = None) -> AsyncCircuitBreaker:
    cfg = settings_obj or settings
    return AsyncCircuitBreaker(
        max_failures=cfg.HTTP_CIRCUIT_BREAKER_MAX_FAILURES,
        base_delay=cfg.HTTP_CIRCUIT_BREAKER_BASE_DELAY,
        max_delay=cfg.HTTP_CIRCUIT_BREAKER_MAX_DELAY,
        name=name,
    )


@asynccontextmanager
async def async_http_client(
    *,
    settings_obj: Settings | None = None,
    base_url: str | httpx.URL | None = None,
    follow_redirects: bool = False,
    additional_options: Optional[dict[str, Any]] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Create an AsyncClient with configured timeout and proxy options."""

    cfg = settings_obj or settings
    timeout = httpx.Timeout(
        timeout=cfg.HTTP_TIMEOUT_TOTAL,
        connect=cfg.HTTP_TIMEOUT_CONNECT,
        read=cfg.HTTP_TIMEOUT_READ,
        write=cfg.HTTP_TIMEOUT_WRITE,
    )
    options: dict[str, Any] = {
        "timeout": timeout,
        "follow_redirects": follow_redirects,
    }
    if base_url is not None:
        options["base_url"] = base_url
    if cfg.HTTP_PROXY_URL:
        options["proxy"] = cfg.HTTP_PROXY_URL
    if additional_options:
        options.update(additional_options)

    async with httpx.AsyncClient(**options) as client:
        yield client


async def request_with_retries(
    method: str,
    url: str,
    *,
    client: httpx.AsyncClient,
    circuit_breaker: AsyncCircuitBreaker,
    retries: int,
    backoff_factor: float,
    backoff_max: float,
    retry_statuses: Iterable[int] | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """Execute an HTTP request with retry and circuit breaker protection."""

    attempts = max(1, int(retries) + 1)
    delay = max(0.0, backoff_factor)
    retryable_statuses = set(retry_statuses or [])

    async def _attempt() -> httpx.Response:
        response = await client.request(method, url, **kwargs)
        if response.status_code in retryable_statuses:
            raise RetryableStatusError(response)
        return response

    for attempt in range(1, attempts + 1):
        try:
            return await circuit_breaker.call(_attempt)
        except (RetryableStatusError, httpx.TimeoutException, httpx.NetworkError) as exc:
            if attempt >= attempts:
                raise
            logger.info(
                "retrying %s %s after %s (attempt %s/%s)",
                method,
                url,
                exc.__class__.__name__,
                attempt,
                attempts,
            )

        if delay > 0:
            await asyncio.sleep(delay)
            delay = delay * 2
            if backoff_max > 0:
                delay = min(delay, backoff_max)

    raise AssertionError("unreachable")  # pragma: no cover


__all__ = [
    "AsyncCircuitBreaker",
    "CircuitBreakerOpenError",
    "RetryableStatusError",
    "async_http_client",
    "breaker_from_settings",
    "request_with_retries",
]

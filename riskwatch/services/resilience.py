"""
Guards for the external providers the pipeline leans on.

Weather, history, the anomaly model and the reverse geocoder are all
optional: each call goes through a fallback, a bounded retry, or a
per-provider circuit breaker so a dead provider degrades a risk value
instead of failing a batch.
"""

import asyncio
import random
import time
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


# ── Fallback ───────────────────────────────────────────────────────────────


async def call_with_fallback(
    fn: Callable[[], Awaitable[T]],
    timeout: float,
    fallback: T,
    provider: str = "provider",
    **log_context,
) -> T:
    """
    Await fn() within `timeout`; return `fallback` on timeout or any error.

    Every substituted value is logged so degraded risk inputs can be audited.
    """
    try:
        return await asyncio.wait_for(fn(), timeout=timeout)
    except asyncio.TimeoutError:
        reason = f"no answer within {timeout}s"
    except Exception as exc:
        reason = f"{type(exc).__name__}: {exc}"
    logger.warning("provider_fallback_used", provider=provider, reason=reason, **log_context)
    return fallback


# ── Retry ──────────────────────────────────────────────────────────────────


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float = 0.0,
    rand: Callable[[float, float], float] = random.uniform,
) -> float:
    """Seconds to wait before retry number `attempt` (0-based), capped before jitter."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    if jitter > 0:
        delay += rand(0, jitter)
    return delay


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    jitter: float = 0.5,
    retry_on: tuple = (Exception,),
    provider: str = "provider",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call fn() up to `max_retries + 1` times.

    Only exceptions in `retry_on` are retried; anything else propagates on
    the first attempt. The last retryable error is re-raised once the
    budget is spent.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.error("provider_retries_exhausted", provider=provider, calls=attempt + 1, error=str(exc))
                raise
            delay = backoff_delay(attempt, base_delay, max_delay, jitter)
            attempt += 1
            logger.warning(
                "provider_retry_scheduled",
                provider=provider,
                retry=attempt,
                of=max_retries,
                delay=round(delay, 2),
                error=str(exc),
            )
            await sleep(delay)


# ── Circuit breaker ────────────────────────────────────────────────────────


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """A provider's breaker refused the call without trying it."""


class CircuitBreaker:
    """
    Per-provider breaker.

    CLOSED trips to OPEN once `failure_threshold` failures land inside a
    sliding `window_seconds`. OPEN refuses calls until `recovery_timeout`
    has passed, then lets a single trial call through (HALF_OPEN). The
    trial's outcome closes or re-trips the breaker.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        recovery_timeout: float = 30.0,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.recovery_timeout = recovery_timeout
        self._timer = timer

        self._state = CircuitState.CLOSED
        self._failures: deque[float] = deque()
        self._opened_at = 0.0
        self._trial_running = False

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._timer() - self._opened_at >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            logger.info("provider_circuit_trial", provider=self.name)
        return self._state

    @property
    def recent_failures(self) -> int:
        """Failures still inside the sliding window."""
        self._expire(self._timer())
        return len(self._failures)

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        state = self.state
        if state is CircuitState.OPEN:
            logger.debug("provider_circuit_refused", provider=self.name)
            raise CircuitOpenError(f"Circuit breaker '{self.name}' is OPEN")
        if state is CircuitState.HALF_OPEN:
            if self._trial_running:
                raise CircuitOpenError(f"Circuit breaker '{self.name}' is waiting on a trial call")
            self._trial_running = True

        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _expire(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._failures and self._failures[0] <= cutoff:
            self._failures.popleft()

    def _trip(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._failures.clear()

    def _on_success(self) -> None:
        if self._state is not CircuitState.CLOSED:
            logger.info("provider_circuit_recovered", provider=self.name)
        self.reset()

    def _on_failure(self) -> None:
        now = self._timer()
        self._trial_running = False

        if self._state is CircuitState.HALF_OPEN:
            self._trip(now)
            logger.warning("provider_circuit_trial_failed", provider=self.name)
            return

        self._expire(now)
        self._failures.append(now)
        if len(self._failures) >= self.failure_threshold:
            failures = len(self._failures)
            self._trip(now)
            logger.warning(
                "provider_circuit_opened",
                provider=self.name,
                failures=failures,
                window_seconds=self.window_seconds,
                retry_after=self.recovery_timeout,
            )

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures.clear()
        self._trial_running = False

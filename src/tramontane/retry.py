"""Minimal async retry driven by the error taxonomy.

The interpreter already decides whether a failure is retryable and how long
to wait; this loop only honours those decisions within a bounded budget.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
import time
from typing import TYPE_CHECKING

from tramontane.interpret import Failure
from tramontane.taxonomy import ErrorKind

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tramontane.interpret import InterpretedResponse
    from tramontane.streaming import CancelToken

log = logging.getLogger(__name__)

# Granularity of cancellation checks while waiting between attempts.
CANCEL_POLL_S = 0.1


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff and optional jitter.

    ``max_retries=0`` disables retries. Server-suggested delays are honoured
    but capped at ``max_delay_s`` so a 60 s rate-limit hint cannot stall a
    call beyond the caller's budget.
    """

    max_retries: int = 3
    initial_delay_s: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay_s: float = 60.0
    jitter: bool = True  # "full jitter" when enabled
    max_elapsed_s: float | None = 120.0

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_retries < 0:
            raise ValueError("RetryPolicy.max_retries must be >= 0")
        if self.initial_delay_s < 0:
            raise ValueError("RetryPolicy.initial_delay_s must be >= 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("RetryPolicy.backoff_multiplier must be > 0")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")
        if self.max_elapsed_s is not None and self.max_elapsed_s < 0:
            raise ValueError("RetryPolicy.max_elapsed_s must be >= 0 or None")


async def _wait(
    delay: float,
    sleep: Callable[[float], Awaitable[None]],
    cancel: CancelToken | None,
) -> None:
    if cancel is None:
        await sleep(delay)
        return
    remaining = delay
    while remaining > 0:
        cancel.raise_if_cancelled()
        step = min(CANCEL_POLL_S, remaining)
        await sleep(step)
        remaining -= step
    cancel.raise_if_cancelled()


def should_retry(result: InterpretedResponse) -> bool:
    """Return True when *result* is a failure worth re-issuing.

    Cancellation is never retried, whatever its flag says.
    """
    if not isinstance(result, Failure):
        return False
    if result.kind is ErrorKind.CANCELLED:
        return False
    return result.retryable


def compute_backoff_delay(
    policy: RetryPolicy, *, retry_index: int, hint_s: float | None = None
) -> float:
    """Return the sleep before retry number *retry_index* (1-based)."""
    base = policy.initial_delay_s * (
        policy.backoff_multiplier ** max(0, retry_index - 1)
    )
    base = min(policy.max_delay_s, base)
    if policy.jitter and base > 0:
        # Full jitter: random in [0, base] to avoid thundering herd.
        base = random.random() * base  # noqa: S311
    if hint_s is not None:
        base = max(base, min(hint_s, policy.max_delay_s))
    return max(0.0, base)


async def retry_interpreted(
    attempt: Callable[[], Awaitable[InterpretedResponse]],
    *,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    cancel: CancelToken | None = None,
) -> InterpretedResponse:
    """Run *attempt* until it succeeds, fails permanently, or the budget ends.

    The last result is returned as-is; nothing here raises on failure.
    A fired *cancel* token interrupts the wait between attempts with
    ``RequestCancelledError``.
    """
    start = time.monotonic()
    result = await attempt()
    for retry_index in range(1, policy.max_retries + 1):
        if not isinstance(result, Failure) or not should_retry(result):
            return result

        delay = compute_backoff_delay(
            policy, retry_index=retry_index, hint_s=result.retry_after_s
        )
        if policy.max_elapsed_s is not None:
            remaining = policy.max_elapsed_s - (time.monotonic() - start)
            if remaining <= 0 or delay > remaining:
                log.info("Retry budget exhausted after %s failure", result.kind)
                return result

        log.info(
            "Retrying after %s failure (attempt %d/%d, sleeping %.2fs)",
            result.kind,
            retry_index,
            policy.max_retries,
            delay,
        )
        if delay > 0:
            await _wait(delay, sleep, cancel)
        result = await attempt()
    return result

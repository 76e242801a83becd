# src/taskpix/generation/retry.py

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from ..core.errors import GenerationError, classify_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")

Classifier = Callable[[BaseException, str], GenerationError]
Sleeper = Callable[[float], Awaitable[None]]

DEFAULT_MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 10.0


def backoff_delay(attempt: int, base: float = BASE_DELAY_SECONDS, cap: float = MAX_DELAY_SECONDS) -> float:
    """Delay before the attempt following `attempt` (1-based): 1s, 2s, 4s ... capped."""
    return min(base * (2 ** (attempt - 1)), cap)


async def with_retry(
    attempt: Callable[[int], Awaitable[T | GenerationError]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    classify: Classifier = classify_exception,
    sleep: Sleeper = asyncio.sleep,
    context: str = "",
    base_delay: float = BASE_DELAY_SECONDS,
    max_delay: float = MAX_DELAY_SECONDS,
) -> T | GenerationError:
    """
    Run `attempt(n)` until it succeeds, fails non-retryably, or attempts run out.

    An attempt either returns a value, returns a GenerationError, or raises; raised
    exceptions are classified once. Cancellation is not an attempt failure and
    always propagates.
    """
    max_attempts = max(1, int(max_attempts))
    last_error: GenerationError | None = None

    for n in range(1, max_attempts + 1):
        try:
            outcome = await attempt(n)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            outcome = classify(exc, context)
            logger.warning(
                "Attempt %d/%d raised %s -> %s",
                n,
                max_attempts,
                exc.__class__.__name__,
                outcome.kind,
            )

        if not isinstance(outcome, GenerationError):
            if n > 1:
                logger.info("Succeeded on attempt %d/%d", n, max_attempts)
            return outcome

        last_error = outcome
        if not outcome.retryable:
            logger.info("Not retrying %s: %s", outcome.kind, outcome.message)
            return outcome
        if n == max_attempts:
            break

        delay = backoff_delay(n, base_delay, max_delay)
        logger.info("Attempt %d/%d failed (%s); retrying in %.1fs", n, max_attempts, outcome.kind, delay)
        await sleep(delay)

    logger.warning("Giving up after %d attempts", max_attempts)
    assert last_error is not None
    return last_error

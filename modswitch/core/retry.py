# modswitch/core/retry.py
from __future__ import annotations
import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

__all__ = ["RetryResult", "linearBackoff", "isTransientFsError", "retryWithBackoff"]

logger = logging.getLogger(__name__)



@dataclass(frozen=True, slots=True)
class RetryResult:
    ok: bool
    attempts: int
    error: BaseException | None = None



def linearBackoff(stepMs: float) -> Callable[[int], float]:
    """Returns a backoff function: attempt N waits stepMs * N milliseconds (result in seconds)."""
    step = max(0.0, float(stepMs))
    def _delay(attempt: int) -> float:
        return step * attempt / 1000.0
    return _delay



def isTransientFsError(err: BaseException) -> bool:
    # A vanished source will not come back by waiting.
    if isinstance(err, (FileNotFoundError, NotADirectoryError)):
        return False
    return isinstance(err, OSError)



async def retryWithBackoff(
    operation: Callable[[], object],
    *,
    maxAttempts: int = 4,
    backoff: Callable[[int], float] = linearBackoff(120),
    shouldRetry: Callable[[BaseException], bool] = isTransientFsError,
    label: str = "",
) -> RetryResult:
    """
    Runs a blocking filesystem operation until it succeeds or the attempt
    ceiling is reached.
    
    - The operation itself runs synchronously on the loop thread; it is never
      interrupted once started.
    - Between attempts sleeps backoff(attempt) seconds.
    - Never raises for operation errors; the outcome is returned as RetryResult.
      Errors for which shouldRetry() is False end the loop immediately.
    """
    maxAttempts = max(1, int(maxAttempts))
    lastError: BaseException | None = None
    
    for attempt in range(1, maxAttempts + 1):
        try:
            operation()
            return RetryResult(ok=True, attempts=attempt)
        except Exception as err:
            lastError = err
            if not shouldRetry(err):
                logger.debug("%s: permanent failure on attempt %d: %s", label or "retry", attempt, err)
                return RetryResult(ok=False, attempts=attempt, error=err)
            if attempt >= maxAttempts:
                break
            delay = backoff(attempt)
            logger.debug(
                "%s: attempt %d/%d failed (%s), retrying in %.0f ms",
                label or "retry", attempt, maxAttempts, err, delay * 1000.0,
            )
            await asyncio.sleep(delay)
    
    logger.warning("%s: giving up after %d attempts: %s", label or "retry", maxAttempts, lastError)
    return RetryResult(ok=False, attempts=maxAttempts, error=lastError)

"""Backoff for processed-record writes.

The record write is the durability point of the pipeline: a message
whose record cannot be written is never notified.  Transient store
failures are retried with exponential backoff; a duplicate key is a
final answer and fails on the first attempt.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import RetryConfig

logger = structlog.get_logger()


def _log_before_sleep(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.warning(
        "store_write_retrying",
        attempt=retry_state.attempt_number,
        wait_seconds=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
        error=str(error),
    )


def with_retry(
    config: RetryConfig,
    *,
    retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
    final_exceptions: tuple[type[BaseException], ...] = (),
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Exceptions in *final_exceptions* are re-raised immediately even when
    they subclass one of *retryable_exceptions*::

        @with_retry(config, retryable_exceptions=(StoreError,),
                    final_exceptions=(DuplicateRecordError,))
        async def write() -> None: ...
    """
    should_retry = retry_if_exception_type(retryable_exceptions)
    if final_exceptions:
        should_retry = should_retry & retry_if_not_exception_type(final_exceptions)

    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=should_retry,
        before_sleep=_log_before_sleep,
        reraise=True,
    )

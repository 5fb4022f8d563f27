"""
Caller-side re-subscription.

Subscriptions end on their first error. Long-running consumers (``templates
watch``) open a fresh subscription with exponential backoff when the store
was unavailable.
"""

import logging
from typing import AsyncIterable, Callable, List, Optional, Tuple, Type

import structlog
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from clientdesk.core.exceptions import UnavailableError

logger = structlog.get_logger(__name__)


def resubscribe_policy(
    max_attempts: int = 5,
    backoff_max: float = 30.0,
    retry_exceptions: Tuple[Type[BaseException], ...] = (UnavailableError,),
) -> AsyncRetrying:
    """Exponential backoff between subscription attempts."""
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=0.5, max=backoff_max),
        retry=retry_if_exception_type(retry_exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


async def watch_with_resubscribe(
    open_stream: Callable[[], AsyncIterable[List]],
    on_snapshot: Callable[[List], None],
    max_snapshots: Optional[int] = None,
    policy: Optional[AsyncRetrying] = None,
) -> int:
    """
    Consume snapshots, re-subscribing after retryable failures.

    Args:
        open_stream: Returns a fresh snapshot stream for each attempt
        on_snapshot: Called with every delivered snapshot
        max_snapshots: Stop after this many snapshots in total (None = forever)
        policy: Retry policy (``resubscribe_policy()`` when omitted)

    Returns:
        Number of snapshots delivered
    """
    delivered = 0
    async for attempt in policy or resubscribe_policy():
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.info(
                    "Re-subscribing", attempt=attempt.retry_state.attempt_number
                )
            snapshots = open_stream().__aiter__()
            try:
                async for records in snapshots:
                    on_snapshot(records)
                    delivered += 1
                    if max_snapshots is not None and delivered >= max_snapshots:
                        return delivered
            finally:
                await snapshots.aclose()
    return delivered

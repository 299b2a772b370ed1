"""
RETRY UTILITY
=============

Calls the AI provider and, if the call raises, retries a few times with
exponential backoff so a rate-limit blip or a dropped connection does not fail
the whole chat request. Store operations are never retried.

Example:
  reply = await with_retry_async(lambda: llm.ainvoke(messages), max_retries=3, initial_delay=1.0)
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar


logger = logging.getLogger("J.A.R.V.I.S")

T = TypeVar("T")


async def with_retry_async(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
) -> T:
    """
    Await fn(). If it raises, sleep initial_delay seconds (without blocking the
    event loop) and try again; the delay doubles each retry. After max_retries
    attempts (including the first) the last exception is re-raised.
    """
    delay = initial_delay

    for attempt in range(max_retries):
        try:
            return await fn()
        except Exception as e:
            if attempt == max_retries - 1:
                raise
            logger.warning(
                "AI call attempt %s/%s failed. Retrying in %.1fs: %s",
                attempt + 1,
                max_retries,
                delay,
                e,
            )
            await asyncio.sleep(delay)
            delay *= 2  # 1s, 2s, 4s, ...

    raise RuntimeError("with_retry_async called with max_retries < 1")

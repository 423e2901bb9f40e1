"""Bounded polling shared by every wait point of a deploy run.

All waiting goes through poll_until() or retry(), so timeouts behave the
same everywhere and tests can swap in a clock that never really sleeps.
"""

import asyncio
import logging
import time

from bluegreen.errors import PollTimeout, TransientProviderError

logger = logging.getLogger(__name__)


class SystemClock:
    """Monotonic wall clock backed by asyncio.sleep."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


SYSTEM_CLOCK = SystemClock()


async def poll_until(fetch, done, *, label, resource_id, timeout, interval, clock=None, describe=str):
    """Call *fetch* every *interval* seconds until *done(value)* holds.

    A TransientProviderError raised by *fetch* counts as "not yet". Any other
    exception propagates, which lets fetchers fail fast on terminal states.

    Args:
        fetch: async callable returning the current observation
        done: predicate over the observation
        label: what is being waited for, used in logs and the timeout error
        resource_id: identifier of the resource being watched
        describe: renders an observation as the "last known state"

    Returns:
        The first observation accepted by *done*.

    Raises:
        PollTimeout: the deadline passed first.
    """
    clock = clock or SYSTEM_CLOCK
    start = clock.now()
    last_state = "unknown"
    while True:
        try:
            value = await fetch()
        except TransientProviderError as e:
            logger.warning(f"{label}: transient provider error on {resource_id}: {e}")
        else:
            last_state = describe(value)
            if done(value):
                return value
        elapsed = clock.now() - start
        logger.info(f"{label} {resource_id}: {last_state} (elapsed={elapsed:.0f}s)")
        if elapsed >= timeout:
            raise PollTimeout(label, resource_id, last_state, elapsed)
        await clock.sleep(min(interval, timeout - elapsed))


async def retry(fetch, accept, *, attempts, interval, clock=None):
    """Call *fetch* up to *attempts* times, sleeping *interval* between tries.

    Returns the first accepted value, or the last value if none was accepted.
    Transient provider errors are swallowed and count as an attempt.
    """
    clock = clock or SYSTEM_CLOCK
    value = None
    for attempt in range(1, attempts + 1):
        try:
            value = await fetch()
        except TransientProviderError as e:
            logger.warning(f"Attempt {attempt}/{attempts} failed: {e}")
            value = None
        else:
            if accept(value):
                return value
        if attempt < attempts:
            await clock.sleep(interval)
    return value

"""
distlock - Acquisition Engine

Polling state machine shared by every acquire mode:

    ATTEMPTING -> SUCCEEDED
    ATTEMPTING -> FAILED     (stop condition met)
    ATTEMPTING -> RETRYING -> sleep -> ATTEMPTING

Modes differ only in the stop condition: BLOCKING never stops,
NON_BLOCKING always stops after the first attempt, TIMED_WAIT stops once
the elapsed time reaches the wait budget. Contention and backend errors
take the same transition but are logged and counted separately.

In TIMED_WAIT each attempt is also bounded by the remaining budget plus one
poll interval, so a stalled backend call (an exhausted connection pool, a
slow network) cannot stretch the wait past that bound. A timed-out attempt
counts as a backend failure.

asyncio.CancelledError is never caught here; cancelling the calling task
aborts the loop during a sleep or an attempt.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional

import structlog

from distlock.clock import Clock, SystemClock
from distlock.ownership import (
    validate_jitter_ms,
    validate_poll_interval_ms,
    validate_wait_ms,
)
from distlock.types import (
    AcquireMode,
    AcquireResult,
    AttemptOutcome,
    EngineState,
    StopCondition,
    stop_condition_for,
)

logger = structlog.get_logger(__name__)

Attempt = Callable[[], Awaitable[AttemptOutcome]]


class AcquisitionEngine:
    """
    Retry loop around a single acquisition attempt.

    The engine keeps no state between run() calls and holds no local lock,
    so one engine may serve concurrent run() calls.
    """

    def __init__(
        self,
        attempt: Attempt,
        clock: Optional[Clock] = None,
        poll_interval_ms: int = 100,
        jitter_ms: int = 0,
        rng: Optional[random.Random] = None,
        lock_key: str = "",
    ):
        """
        Args:
            attempt: Coroutine function issuing one conditional set
            clock: Clock implementation (defaults to SystemClock)
            poll_interval_ms: Fixed sleep between attempts
            jitter_ms: Upper bound of extra random sleep per retry
            rng: Random instance for jitter (seed it for deterministic tests)
            lock_key: Key used as log context
        """
        self.attempt = attempt
        self.clock = clock or SystemClock()
        self.poll_interval_ms = validate_poll_interval_ms(poll_interval_ms)
        self.jitter_ms = validate_jitter_ms(jitter_ms)
        self._random = rng or random.Random()
        self.lock_key = lock_key

    def retry_delay_ms(self) -> float:
        """Sleep before the next attempt, before capping to the wait budget."""
        if not self.jitter_ms:
            return float(self.poll_interval_ms)
        return self.poll_interval_ms + self._random.uniform(0, self.jitter_ms)

    def _should_stop(
        self,
        condition: StopCondition,
        elapsed_ms: float,
        wait_ms: Optional[int],
    ) -> bool:
        if condition == StopCondition.NEVER:
            return False
        if condition == StopCondition.ALWAYS:
            return True
        return elapsed_ms >= wait_ms

    async def _bounded_attempt(self, timeout_ms: float, mode: AcquireMode) -> AttemptOutcome:
        try:
            return await asyncio.wait_for(self.attempt(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            # A SET that still lands after this point expires with its lease
            logger.warning(
                "lock_attempt_timed_out",
                lock_key=self.lock_key,
                mode=mode.value,
                timeout_ms=round(timeout_ms, 3),
            )
            return AttemptOutcome.BACKEND_UNAVAILABLE

    async def run(self, mode: AcquireMode, wait_ms: Optional[int] = None) -> AcquireResult:
        """
        Drive attempts until success or the mode's stop condition.

        Args:
            mode: Acquire mode selecting the stop condition
            wait_ms: Wait budget, required for TIMED_WAIT

        Returns:
            AcquireResult with the final state and per-outcome counters
        """
        condition = stop_condition_for(mode)
        if condition == StopCondition.ELAPSED:
            wait_ms = validate_wait_ms(wait_ms)

        result = AcquireResult(mode=mode, state=EngineState.ATTEMPTING)
        started = self.clock.monotonic_ms()

        while True:
            result.state = EngineState.ATTEMPTING
            result.attempts += 1
            if condition == StopCondition.ELAPSED:
                remaining_ms = max(wait_ms - (self.clock.monotonic_ms() - started), 0)
                outcome = await self._bounded_attempt(remaining_ms + self.poll_interval_ms, mode)
            else:
                outcome = await self.attempt()
            result.last_outcome = outcome
            elapsed_ms = self.clock.monotonic_ms() - started

            if outcome == AttemptOutcome.ACQUIRED:
                result.state = EngineState.SUCCEEDED
                result.elapsed_ms = elapsed_ms
                return result

            if outcome == AttemptOutcome.BACKEND_UNAVAILABLE:
                result.backend_failures += 1
                logger.warning(
                    "lock_attempt_backend_unavailable",
                    lock_key=self.lock_key,
                    mode=mode.value,
                    attempt=result.attempts,
                    backend_failures=result.backend_failures,
                )
            else:
                result.contention_failures += 1
                logger.debug(
                    "lock_attempt_contended",
                    lock_key=self.lock_key,
                    mode=mode.value,
                    attempt=result.attempts,
                )

            if self._should_stop(condition, elapsed_ms, wait_ms):
                result.state = EngineState.FAILED
                result.elapsed_ms = elapsed_ms
                return result

            result.state = EngineState.RETRYING
            delay_ms = self.retry_delay_ms()
            if condition == StopCondition.ELAPSED:
                # Last sleep lands on the deadline, not past it
                delay_ms = min(delay_ms, wait_ms - elapsed_ms)
            await self.clock.sleep(delay_ms / 1000)

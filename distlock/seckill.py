"""
distlock - Flash-Sale (Seckill) Scenario

Many buyers race for a small stock of one product. The stock counter is
read and decremented only while holding the product's lock, so the sale
must end with exactly `total` orders and a stock of zero.

Each buyer keeps trying until it either buys or sees the product sold
out; a buyer whose wait budget runs out thinks for a while and retries.
"""

import asyncio
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog

from distlock.backend.base import LockBackend
from distlock.clock import Clock, SystemClock
from distlock.lock import DistLock

logger = structlog.get_logger(__name__)

DEFAULT_WAIT_MS = 30_000
DEFAULT_LEASE_MS = 300_000
DEFAULT_MAX_THINK_MS = 5_000


@dataclass
class SaleReport:
    """Outcome of a flash sale."""
    product: str
    total: int
    remaining: int
    sold: int
    buyers: int
    lock_timeouts: int = 0
    elapsed_ms: float = 0.0
    observed_stock: list[int] = field(default_factory=list)  # Stock seen before each decrement
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def oversold(self) -> bool:
        return self.remaining < 0 or self.sold > self.total

    @property
    def duplicate_observations(self) -> list[int]:
        """Stock values seen by more than one successful buyer."""
        counts = Counter(self.observed_stock)
        return sorted(value for value, seen in counts.items() if seen > 1)

    @property
    def consistent(self) -> bool:
        return (
            not self.oversold
            and not self.duplicate_observations
            and self.sold == self.total - self.remaining
        )

    def to_dict(self) -> dict:
        return {
            "product": self.product,
            "total": self.total,
            "remaining": self.remaining,
            "sold": self.sold,
            "buyers": self.buyers,
            "lock_timeouts": self.lock_timeouts,
            "elapsed_ms": round(self.elapsed_ms, 3),
            "oversold": self.oversold,
            "duplicate_observations": self.duplicate_observations,
            "consistent": self.consistent,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class SecKillService:
    """
    Stock counter guarded by a distributed lock.

    The counter lives in process memory; only the lock is shared through
    the backend.
    """

    def __init__(
        self,
        backend: LockBackend,
        product: str,
        total: int,
        wait_ms: int = DEFAULT_WAIT_MS,
        lease_ms: int = DEFAULT_LEASE_MS,
        poll_interval_ms: Optional[int] = None,
        jitter_ms: Optional[int] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            backend: Lock backend
            product: Product name, also the lock's resource key suffix
            total: Initial stock
            wait_ms: Wait budget per order attempt
            lease_ms: Lease for each held lock
            poll_interval_ms: Lock poll interval (defaults to settings)
            jitter_ms: Lock retry jitter (defaults to settings)
            clock: Clock implementation (defaults to SystemClock)
        """
        if total < 0:
            raise ValueError(f"total must be >= 0, got {total}")
        self.backend = backend
        self.product = product
        self.lock_key = f"seckill:{product}"
        self.total = total
        self.left = total
        self.wait_ms = wait_ms
        self.lease_ms = lease_ms
        self.poll_interval_ms = poll_interval_ms
        self.jitter_ms = jitter_ms
        self.clock = clock or SystemClock()

        self.sold = 0
        self.lock_timeouts = 0
        self.observed_stock: list[int] = []

    def _new_lock(self) -> DistLock:
        return DistLock(
            self.backend,
            self.lock_key,
            lease_ms=self.lease_ms,
            poll_interval_ms=self.poll_interval_ms,
            jitter_ms=self.jitter_ms,
            clock=self.clock,
        )

    async def handle_order(self, buyer: str) -> bool:
        """
        Try to buy one unit.

        Returns:
            True when the buyer is done (bought or sold out),
            False when the lock wait budget ran out
        """
        if self.left <= 0:
            logger.debug("seckill_sold_out", product=self.product, buyer=buyer)
            return True

        lock = self._new_lock()
        if not await lock.acquire_with_timeout(self.wait_ms):
            self.lock_timeouts += 1
            logger.info(
                "seckill_lock_timeout",
                product=self.product,
                buyer=buyer,
                wait_ms=self.wait_ms,
            )
            return False

        try:
            if self.left > 0:
                before = self.left
                # Yield while holding the lock so other buyers run in between
                await asyncio.sleep(0)
                self.left = before - 1
                self.sold += 1
                self.observed_stock.append(before)
                logger.info(
                    "seckill_order_success",
                    product=self.product,
                    buyer=buyer,
                    left=self.left,
                )
            else:
                logger.info("seckill_order_sold_out", product=self.product, buyer=buyer)
        finally:
            await lock.release()
        return True

    def report(
        self,
        buyers: int,
        elapsed_ms: float = 0.0,
        started_at: Optional[datetime] = None,
    ) -> SaleReport:
        return SaleReport(
            product=self.product,
            total=self.total,
            remaining=self.left,
            sold=self.sold,
            buyers=buyers,
            lock_timeouts=self.lock_timeouts,
            elapsed_ms=elapsed_ms,
            observed_stock=list(self.observed_stock),
            started_at=started_at,
            finished_at=self.clock.now(),
        )


async def run_buyer(
    service: SecKillService,
    buyer: str,
    max_think_ms: int = DEFAULT_MAX_THINK_MS,
    rng: Optional[random.Random] = None,
) -> None:
    """Think for a random time, then order, until the buyer is done."""
    rng = rng or random.Random()
    while True:
        await service.clock.sleep(rng.uniform(0, max_think_ms) / 1000)
        if await service.handle_order(buyer):
            return


async def run_flash_sale(
    backend: LockBackend,
    product: str = "foobar",
    total: int = 10,
    buyers: int = 1000,
    wait_ms: int = DEFAULT_WAIT_MS,
    lease_ms: int = DEFAULT_LEASE_MS,
    max_think_ms: int = DEFAULT_MAX_THINK_MS,
    poll_interval_ms: Optional[int] = None,
    jitter_ms: Optional[int] = None,
    clock: Optional[Clock] = None,
    seed: Optional[int] = None,
) -> SaleReport:
    """
    Run a complete flash sale and report the outcome.

    Args:
        backend: Lock backend shared by all buyers
        product: Product name
        total: Initial stock
        buyers: Number of concurrent buyers
        wait_ms: Lock wait budget per order attempt
        lease_ms: Lock lease
        max_think_ms: Upper bound of each buyer's random think time
        poll_interval_ms: Lock poll interval (defaults to settings)
        jitter_ms: Lock retry jitter (defaults to settings)
        clock: Clock implementation (defaults to SystemClock)
        seed: Seed for buyers' think times

    Returns:
        SaleReport for the finished sale
    """
    service = SecKillService(
        backend,
        product,
        total,
        wait_ms=wait_ms,
        lease_ms=lease_ms,
        poll_interval_ms=poll_interval_ms,
        jitter_ms=jitter_ms,
        clock=clock,
    )
    rng = random.Random(seed)

    logger.info(
        "seckill_started",
        product=product,
        total=total,
        buyers=buyers,
        backend=backend.name,
    )
    started_at = service.clock.now()
    started = service.clock.monotonic_ms()

    await asyncio.gather(*(
        run_buyer(
            service,
            f"buyer-{i}",
            max_think_ms=max_think_ms,
            rng=random.Random(rng.random()),
        )
        for i in range(buyers)
    ))

    report = service.report(
        buyers,
        elapsed_ms=service.clock.monotonic_ms() - started,
        started_at=started_at,
    )
    logger.info("seckill_finished", **report.to_dict())
    return report

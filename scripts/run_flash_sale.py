#!/usr/bin/env python3
"""
distlock - Flash-Sale Runner

Runs the seckill scenario: many concurrent buyers race for a small stock
guarded by one distributed lock, then prints the sale report.

Usage:
    python scripts/run_flash_sale.py --memory
    python scripts/run_flash_sale.py --redis-url redis://localhost:6379/0 --buyers 1000 --stock 10

Exit codes:
    0 - stock ended consistent (no oversell, no duplicate observations)
    1 - inconsistent sale
    2 - backend unreachable
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from distlock.backend import backend_lifespan
from distlock.config import Settings, get_settings
from distlock.seckill import (
    DEFAULT_LEASE_MS,
    DEFAULT_MAX_THINK_MS,
    DEFAULT_WAIT_MS,
    run_flash_sale,
)


def configure_logging(level: str) -> None:
    """Filter structlog output below the given level."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level: {level}")
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
    )


def build_settings(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.memory:
        overrides["use_memory_backend"] = True
    if args.redis_url:
        overrides["redis_url"] = args.redis_url
    if args.poll_interval_ms is not None:
        overrides["poll_interval_ms"] = args.poll_interval_ms
    if args.jitter_ms is not None:
        overrides["jitter_ms"] = args.jitter_ms
    return get_settings().model_copy(update=overrides)


async def main():
    parser = argparse.ArgumentParser(
        description="Run a flash sale against a distributed lock",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--product", default="foobar", help="Product name (lock key suffix)")
    parser.add_argument("--stock", type=int, default=10, help="Initial stock")
    parser.add_argument("--buyers", type=int, default=1000, help="Concurrent buyers")
    parser.add_argument("--wait-ms", type=int, default=DEFAULT_WAIT_MS, help="Lock wait budget per order")
    parser.add_argument("--lease-ms", type=int, default=DEFAULT_LEASE_MS, help="Lock lease")
    parser.add_argument(
        "--max-think-ms",
        type=int,
        default=DEFAULT_MAX_THINK_MS,
        help="Upper bound of each buyer's random delay before ordering",
    )
    parser.add_argument("--poll-interval-ms", type=int, default=None, help="Lock poll interval")
    parser.add_argument("--jitter-ms", type=int, default=None, help="Lock retry jitter")
    parser.add_argument("--seed", type=int, default=None, help="Seed for buyer think times")
    parser.add_argument("--memory", action="store_true", help="Use the in-memory backend")
    parser.add_argument("--redis-url", default=None, help="Redis URL (overrides DISTLOCK_REDIS_URL)")
    parser.add_argument("--log-level", default=None, help="debug, info, warning or error")

    args = parser.parse_args()

    settings = build_settings(args)
    configure_logging(args.log_level or settings.log_level)

    async with backend_lifespan(settings=settings) as backend:
        if not await backend.ping():
            print(f"ERROR: {backend.name} backend is not reachable")
            sys.exit(2)

        report = await run_flash_sale(
            backend,
            product=args.product,
            total=args.stock,
            buyers=args.buyers,
            wait_ms=args.wait_ms,
            lease_ms=args.lease_ms,
            max_think_ms=args.max_think_ms,
            poll_interval_ms=settings.poll_interval_ms,
            jitter_ms=settings.jitter_ms,
            seed=args.seed,
        )

    print(json.dumps(report.to_dict(), indent=2))
    if not report.consistent:
        print("ERROR: inconsistent sale")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())

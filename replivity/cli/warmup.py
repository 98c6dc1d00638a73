#!/usr/bin/env python3
"""
Cache Warmup

Pre-populates the cache with common data and, optionally, per-user data.

Usage:
    # Warm common data
    replivity-warmup

    # Warm specific users as well
    replivity-warmup --users "user1,user2,user3"

    # Users only, verbose
    replivity-warmup --no-common --users "user1,user2" --verbose

    # Smaller batches, fail if Redis is not reachable
    replivity-warmup --batch-size 5 --users "user1,user2" --require-redis

Exit codes:
    0  Warmup completed (individual failures are reported, not fatal)
    1  Fatal initialization failure
"""

import argparse
import asyncio
import logging
import sys
from typing import Callable, List, Optional

from dotenv import load_dotenv

from replivity.cache.exceptions import RemoteTierUnavailableError
from replivity.cache.runtime import CacheRuntime
from replivity.cache.warming import WarmupReport
from replivity.database.session import get_db_context
from replivity.utils.config import get_settings
from replivity.utils.formatting import format_bytes, format_duration


logger = logging.getLogger(__name__)


def parse_user_ids(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [user_id.strip() for user_id in raw.split(",") if user_id.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Warm the Replivity query cache"
    )
    parser.add_argument(
        "--no-common",
        action="store_true",
        help="Skip common data warmup"
    )
    parser.add_argument(
        "--users",
        default=None,
        help="Comma-separated list of user IDs to warm up"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=10,
        help="Number of users to process in parallel (default: 10)"
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=5,
        help="Maximum common warmup tasks in flight (default: 5)"
    )
    parser.add_argument(
        "--require-redis",
        action="store_true",
        help="Fail if the Redis tier is not configured or not reachable"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )
    return parser


def configure_logging(verbose: bool):
    level = logging.DEBUG if verbose else get_settings().LOG_LEVEL.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    # Keep client libraries quiet unless something is wrong
    for name in ("redis", "httpx", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _print_report(label: str, report: WarmupReport, verbose: bool):
    mark = "✓" if report.failed == 0 else "⚠"
    print(
        f"{mark} {label}: {report.succeeded} succeeded, {report.failed} failed "
        f"in {format_duration(report.duration_seconds)}"
    )
    if verbose:
        for name, error in report.failures.items():
            print(f"    ✗ {name}: {error}")


async def run_warmup(
    args: argparse.Namespace,
    runtime: Optional[CacheRuntime] = None,
    db_context: Callable = get_db_context,
) -> int:
    """Run the warmup. Returns the process exit code."""
    runtime = runtime or CacheRuntime.create()
    user_ids = parse_user_ids(args.users)
    require_remote = args.require_redis or runtime.config.redis_required

    print(f"\n{'='*60}")
    print("REPLIVITY CACHE WARMUP")
    print(f"{'='*60}")
    print(f"Common data:  {'skip' if args.no_common else 'yes'}")
    print(f"Users:        {len(user_ids)}")
    print(f"Batch size:   {args.batch_size}")
    print(f"Redis:        {'required' if require_remote else 'optional'}")
    print(f"{'='*60}\n")

    try:
        await runtime.start(require_remote=require_remote)
    except RemoteTierUnavailableError as e:
        print(f"ERROR: {e}")
        logger.error(f"Cache initialization failed: {e}")
        return 1

    try:
        with db_context() as db:
            warmer = runtime.warmer(db, concurrency=args.concurrency)

            if not args.no_common:
                print("Warming common data...")
                report = await warmer.warmup_common()
                _print_report("Common data", report, args.verbose)

            if user_ids:
                print(f"Warming data for {len(user_ids)} users...")

                def progress(done: int, total: int):
                    if args.verbose:
                        print(f"   {done}/{total} users processed")

                report = await warmer.warmup_users(
                    user_ids,
                    batch_size=args.batch_size,
                    progress=progress,
                )
                _print_report("User data", report, args.verbose)

        stats = runtime.manager.get_stats()
        health = await runtime.manager.get_health()

        print(f"\n{'='*60}")
        print("CACHE STATISTICS")
        print(f"{'='*60}")
        print(f"Hit Rate:        {stats.hit_rate:.2f}%")
        print(f"Total Hits:      {stats.hits}")
        print(f"Total Misses:    {stats.misses}")
        print(f"Cache Sets:      {stats.sets}")
        print(f"Cache Deletes:   {stats.deletes}")
        print(f"Memory Entries:  {stats.memory_entry_count}")
        print(f"Memory Usage:    {format_bytes(stats.memory_usage)}")
        print("\nHealth:")
        print(f"   Overall: {'✓ Healthy' if health.healthy else '✗ Unhealthy'}")
        if health.remote_configured:
            print(f"   Redis:   {'✓ Connected' if health.remote_up else '✗ Disconnected'}")
        else:
            print("   Redis:   - Not configured")
        print(f"   Memory:  {'✓ Healthy' if health.memory_ok else '✗ Overloaded'}")
        print(f"{'='*60}")
    finally:
        await runtime.stop()

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        return asyncio.run(run_warmup(args))
    except Exception as e:
        logger.exception(f"Cache warmup failed: {e}")
        print(f"ERROR: Cache warmup failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

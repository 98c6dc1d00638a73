#!/usr/bin/env python3
"""
Cache Monitor

Runs cache health checks and prints a performance summary.

Usage:
    # One-shot health report
    replivity-cache-monitor

    # Sample every 10 seconds for 5 minutes
    replivity-cache-monitor --interval 10 --duration 300

    # Machine-readable output
    replivity-cache-monitor --json

Exit codes:
    0  Cache healthy or degraded
    1  Cache unhealthy, or initialization failed
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from replivity.cache.exceptions import RemoteTierUnavailableError
from replivity.cache.monitoring import HealthStatus
from replivity.cache.runtime import CacheRuntime
from replivity.cli.warmup import configure_logging
from replivity.utils.formatting import format_bytes


logger = logging.getLogger(__name__)

STATUS_MARKS = {
    HealthStatus.HEALTHY.value: "✓",
    HealthStatus.DEGRADED.value: "⚠",
    HealthStatus.UNHEALTHY.value: "✗",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Monitor Replivity cache health"
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=0,
        help="Seconds between samples (default: 0, single report)"
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=60,
        help="Total monitoring time in seconds when --interval is set (default: 60)"
    )
    parser.add_argument(
        "--require-redis",
        action="store_true",
        help="Fail if the Redis tier is not configured or not reachable"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )
    return parser


def print_summary(summary: Dict[str, Any]):
    health = summary["health"]
    performance = summary["performance"]
    storage = summary["storage"]
    reliability = summary["reliability"]

    print(f"\n{'='*60}")
    print("CACHE HEALTH")
    print(f"{'='*60}")
    print(f"Status:          {STATUS_MARKS.get(health['status'], '?')} {health['status']}")
    print(f"Issues:          {health['issues_count']} ({health['critical_issues']} critical)")
    for issue in health["issues"]:
        print(f"   - [{issue['severity']}] {issue['message']}")

    print("\nPerformance:")
    print(f"   Hit Rate:     {performance['hit_rate_percent']:.2f}% ({performance['hit_rate_trend']})")
    print(f"   Hits/Misses:  {performance['hits']}/{performance['misses']}")
    print(f"   Sets/Deletes: {performance['sets']}/{performance['deletes']}")

    print("\nStorage:")
    print(f"   Entries:      {storage['memory_entries']}/{storage['memory_max_entries']}")
    print(f"   Memory Usage: {format_bytes(storage['memory_usage_bytes'])}")

    print("\nReliability:")
    print(f"   Errors:       {reliability['errors']}")
    print(f"   Redis:        {'✓ Connected' if reliability['remote_connected'] else '✗ Disconnected'}")

    queries = summary.get("queries")
    if queries and queries["total_queries"]:
        print("\nQueries:")
        print(f"   Timed:        {queries['total_queries']} across {queries['query_kinds']} kinds")
        print(f"   Average:      {queries['avg_query_time_ms']:.2f}ms")

    if summary["recommendations"]:
        print("\nRecommendations:")
        for recommendation in summary["recommendations"]:
            print(f"   • {recommendation}")
    print(f"{'='*60}")


async def run_monitor(
    args: argparse.Namespace,
    runtime: Optional[CacheRuntime] = None,
) -> int:
    """Run the monitor. Returns the process exit code."""
    runtime = runtime or CacheRuntime.create()
    require_remote = args.require_redis or runtime.config.redis_required

    try:
        await runtime.start(require_remote=require_remote)
    except RemoteTierUnavailableError as e:
        print(f"ERROR: {e}")
        logger.error(f"Cache initialization failed: {e}")
        return 1

    try:
        statuses: List[str] = []
        if args.interval > 0:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + args.duration
            while True:
                result = await runtime.monitor.health_check()
                statuses.append(result.status.value)
                if not args.json:
                    print(
                        f"{STATUS_MARKS[result.status.value]} {result.status.value:<10} "
                        f"hit_rate={result.metrics.hit_rate * 100 if result.metrics else 0:.1f}% "
                        f"entries={result.metrics.memory_entries if result.metrics else 0} "
                        f"latency={result.latency_ms:.1f}ms"
                    )
                if loop.time() + args.interval > deadline:
                    break
                await asyncio.sleep(args.interval)

        summary = await runtime.monitor.get_summary()
        statuses.append(summary["health"]["status"])

        if args.json:
            print(json.dumps(summary, indent=2, default=str))
        else:
            print_summary(summary)
    finally:
        await runtime.stop()

    return 1 if statuses[-1] == HealthStatus.UNHEALTHY.value else 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        return asyncio.run(run_monitor(args))
    except Exception as e:
        logger.exception(f"Cache monitor failed: {e}")
        print(f"ERROR: Cache monitor failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

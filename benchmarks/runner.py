#!/usr/bin/env python3
"""Consumer throughput benchmark against the local mock collector.

Queues a fixed number of records, flushes them through each consumer and
reports records per second and per-flush timings as JSON.

Usage:
    python -m benchmarks.runner [--records N] [--runs N] [--threads N]
                                [--latency-ms MS] [--output FILE]

Options:
    --records N      Records queued per run (default: 1000)
    --runs N         Runs per consumer (default: 3)
    --threads N      Workers of the concurrent consumer (default: 4)
    --latency-ms MS  Collector latency per request (default: 5.0)
    --output FILE    Output JSON file (default: benchmark_output.json)
"""

from __future__ import annotations

import argparse
import json
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from statistics import mean, stdev

from batch_ingest import (
    ConcurrentHttpConsumer,
    Consumer,
    ConsumerConfig,
    DeliveryMode,
    EventQueue,
    HttpConsumer,
    SocketConsumer,
)
from benchmarks.mock_collector import BackgroundCollector, MockCollectorConfig

ConsumerBuilder = Callable[[ConsumerConfig], Consumer]


def build_records(count: int) -> list[dict]:
    """Build ``count`` event records of realistic size."""
    return [
        {
            "event": "page_view",
            "properties": {
                "distinct_id": f"user-{i % 97}",
                "path": f"/catalog/item/{i}",
                "seq": i,
            },
        }
        for i in range(count)
    ]


def calculate_stats(durations: list[float], records: int) -> dict:
    """Aggregate timings of several runs.

    Args:
        durations: Flush durations in seconds, one per run.
        records: Records delivered per run.

    Returns:
        Dictionary with aggregate statistics.
    """
    total_time = sum(durations)
    return {
        "runs": len(durations),
        "total_time_sec": total_time,
        "records_per_sec": records * len(durations) / total_time if total_time > 0 else 0,
        "flush_stats": {
            "min_sec": min(durations) if durations else 0,
            "max_sec": max(durations) if durations else 0,
            "mean_sec": mean(durations) if durations else 0,
            "std_dev_sec": stdev(durations) if len(durations) > 1 else 0,
        },
    }


def run_benchmark(
    consumer_name: str,
    build: ConsumerBuilder,
    config: ConsumerConfig,
    records: int,
    runs: int = 3,
) -> dict:
    """Flush ``records`` through a fresh consumer ``runs`` times.

    Returns:
        Dictionary with benchmark results for one consumer.
    """
    print(f"Running {consumer_name} consumer benchmark ({runs} runs)...")
    durations: list[float] = []
    failures = 0

    for i in range(runs):
        print(f"  Run {i + 1}/{runs}...", end=" ", flush=True)
        queue = EventQueue(build(config), max_queue_size=records + 1, flush_on_exit=False)
        queue.enqueue_all(build_records(records))

        start = time.perf_counter()
        if not queue.flush():
            failures += 1
        elapsed = time.perf_counter() - start

        durations.append(elapsed)
        print(f"{elapsed:.3f}s")

    return {
        "consumer": consumer_name,
        "records_per_run": records,
        "failed_runs": failures,
        **calculate_stats(durations, records),
    }


def main() -> int:
    """Main entry point for the benchmark runner.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    parser = argparse.ArgumentParser(description="Consumer throughput benchmark")
    parser.add_argument("--records", type=int, default=1000, help="Records queued per run")
    parser.add_argument("--runs", type=int, default=3, help="Runs per consumer")
    parser.add_argument("--threads", type=int, default=4, help="Concurrent consumer workers")
    parser.add_argument(
        "--latency-ms", type=float, default=5.0, help="Collector latency per request"
    )
    parser.add_argument(
        "--output",
        type=str,
        default="benchmark_output.json",
        help="Output JSON file (default: benchmark_output.json)",
    )
    args = parser.parse_args()

    if args.records < 1 or args.runs < 1 or args.threads < 1:
        print("Error: --records, --runs and --threads must be positive")
        return 1

    collector_config = MockCollectorConfig(base_latency_ms=args.latency_ms)
    with BackgroundCollector(collector_config) as collector:
        base = collector.consumer_config("/track")
        sync_socket = collector.consumer_config("/track", mode=DeliveryMode.SYNC)
        threaded = collector.consumer_config("/track", num_threads=args.threads)

        results = [
            run_benchmark("http", HttpConsumer, base, args.records, args.runs),
            run_benchmark("socket", SocketConsumer, sync_socket, args.records, args.runs),
            run_benchmark(
                "concurrent_http", ConcurrentHttpConsumer, threaded, args.records, args.runs
            ),
        ]
        received = len(collector.collector.records())

    output = {
        "timestamp": datetime.now(UTC).isoformat(),
        "collector_latency_ms": args.latency_ms,
        "records_received": received,
        "consumers": results,
    }

    output_path = Path(args.output)
    output_path.write_text(json.dumps(output, indent=2), encoding="utf-8")

    print("\n=== Benchmark Results ===")
    for result in results:
        print(
            f"{result['consumer']:>16}: {result['records_per_sec']:.0f} records/s "
            f"({result['failed_runs']} failed runs)"
        )
    print(f"\nResults saved to: {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

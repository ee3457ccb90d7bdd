#!/usr/bin/env python3
"""
Concurrent vote burst against a running topic voting API.

Creates a fresh topic, fires many votes at it at once, then compares the
number of acknowledged votes with the tally. Any gap is a lost update:
expected with LEDGER_APPEND_STRATEGY=naive, never with optimistic.

Usage:
    python scripts/vote_burst.py --votes 200 --concurrency 50
    python scripts/vote_burst.py --host http://localhost:5000 --topic burst-1
"""

import argparse
import asyncio
import random
import sys
import time
import uuid
from collections import defaultdict
from typing import Dict, List

import httpx


class BurstMetrics:
    """Collect and report burst metrics."""

    def __init__(self):
        self.accepted = 0
        self.rejected = 0
        self.latencies: List[float] = []
        self.errors: Dict[str, int] = defaultdict(int)
        self.start_time = None
        self.end_time = None

    def record_request(self, latency: float, success: bool, error: str = None):
        """Record a request."""
        self.latencies.append(latency)

        if success:
            self.accepted += 1
        else:
            self.rejected += 1
            if error:
                self.errors[error] += 1

    def calculate_percentile(self, percentile: float) -> float:
        """Calculate latency percentile."""
        if not self.latencies:
            return 0.0

        sorted_latencies = sorted(self.latencies)
        index = int(len(sorted_latencies) * (percentile / 100.0))
        return sorted_latencies[min(index, len(sorted_latencies) - 1)]

    def generate_report(self, tallied: int) -> str:
        """Generate burst report."""
        duration = self.end_time - self.start_time if self.end_time else 0
        lost = self.accepted - tallied

        report = [
            "\n" + "=" * 70,
            "VOTE BURST RESULTS",
            "=" * 70,
            f"Duration: {duration:.2f} seconds",
            f"Accepted votes: {self.accepted:,}",
            f"Rejected votes: {self.rejected:,}",
            f"Tallied votes: {tallied:,}",
            f"Lost updates: {lost:,}",
            "",
            "Latency (ms):",
            f"   - p50: {self.calculate_percentile(50) * 1000:.2f}",
            f"   - p95: {self.calculate_percentile(95) * 1000:.2f}",
            f"   - p99: {self.calculate_percentile(99) * 1000:.2f}",
        ]

        if self.errors:
            report.append("\nErrors:")
            for error, count in sorted(self.errors.items(), key=lambda x: -x[1]):
                report.append(f"   - {error}: {count}")

        report.append("=" * 70 + "\n")
        return "\n".join(report)


async def submit_vote_async(
    client: httpx.AsyncClient,
    topic: str,
    vote: dict,
    metrics: BurstMetrics,
    gate: asyncio.Semaphore
):
    """Submit a single vote and record metrics."""
    async with gate:
        start_time = time.perf_counter()
        try:
            response = await client.post(f"/api/topics/{topic}/vote", json=vote, timeout=10.0)
            latency = time.perf_counter() - start_time
            success = response.status_code == 200
            metrics.record_request(latency, success, None if success else f"HTTP {response.status_code}")
        except httpx.HTTPError as e:
            metrics.record_request(time.perf_counter() - start_time, False, type(e).__name__)


async def run_burst(base_url: str, topic: str, total_votes: int, concurrency: int) -> int:
    """
    Create ``topic``, submit ``total_votes`` votes, and report.

    Returns:
        Number of acknowledged votes missing from the tally
    """
    metrics = BurstMetrics()

    async with httpx.AsyncClient(base_url=base_url) as client:
        response = await client.post(
            "/api/topics",
            json={"topic": topic, "description": "Vote burst"}
        )
        response.raise_for_status()
        print(f"Created topic {topic}: {response.json()['votingUrl']}")

        votes = [
            {"name": f"burst-{i}", "vote": random.choice(["agree", "not_agree"])}
            for i in range(total_votes)
        ]
        gate = asyncio.Semaphore(concurrency)

        metrics.start_time = time.perf_counter()
        await asyncio.gather(*[
            submit_vote_async(client, topic, vote, metrics, gate) for vote in votes
        ])
        metrics.end_time = time.perf_counter()

        results = (await client.get(f"/api/topics/{topic}/results")).json()

    tallied = results["countAgree"] + results["countNotAgree"]
    print(metrics.generate_report(tallied))
    return metrics.accepted - tallied


def main():
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(description="Check the voting API for lost updates")
    parser.add_argument(
        '--votes',
        type=int,
        default=200,
        help='Total number of votes to submit (default: 200)'
    )
    parser.add_argument(
        '--concurrency',
        type=int,
        default=50,
        help='Maximum votes in flight at once (default: 50)'
    )
    parser.add_argument(
        '--topic',
        type=str,
        default=None,
        help='Topic name to create (default: random)'
    )
    parser.add_argument(
        '--host',
        type=str,
        default='http://localhost:5000',
        help='API host URL (default: http://localhost:5000)'
    )
    args = parser.parse_args()

    topic = args.topic or f"burst-{uuid.uuid4().hex[:8]}"
    lost = asyncio.run(run_burst(args.host, topic, args.votes, args.concurrency))
    sys.exit(1 if lost else 0)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Prometheus metrics integration example.

Runs a few searches against in-memory sources, one of which keeps failing,
and exposes the resulting reliability metrics for Prometheus scraping.
"""

import asyncio
import time

from anime_sources import Anime, MockSource, Settings, SourceManager
from anime_sources.metrics import PrometheusMetrics


async def simulate_searches(manager: SourceManager, num_requests: int = 10):
    """Search repeatedly so failovers and latencies get recorded."""
    print(f"\nRunning {num_requests} searches...")
    for i in range(num_requests):
        await manager.search("naruto")
        # restore the flaky source so every search starts there again
        manager.registry.set_available("Flaky", True)
        if (i + 1) % 5 == 0:
            print(f"  ✓ Processed {i + 1} searches")


def main():
    """Demonstrate Prometheus metrics integration."""
    print("Anime Sources Metrics - Prometheus Integration Example\n")
    print("=" * 60)

    try:
        from prometheus_client import REGISTRY, generate_latest, start_http_server
        print("\n✓ prometheus_client is installed")
    except ImportError:
        print("\n✗ prometheus_client not installed")
        print("  Install with: pip install anime-sources[prometheus]")
        return

    print("\n1. Initialize manager with Prometheus metrics")
    print("-" * 60)
    settings = Settings(health={"enabled": False}, catalog={"enabled": False})
    sources = [
        MockSource("Flaky", responses={"search": ConnectionError("connection reset")}),
        MockSource("Stable", catalog=[Anime(id="stable-1", title="Naruto")]),
    ]
    manager = SourceManager(sources, settings=settings, metrics=PrometheusMetrics())
    print("✓ SourceManager created with PrometheusMetrics")

    print("\n2. Record Metrics")
    print("-" * 60)
    asyncio.run(simulate_searches(manager, num_requests=10))

    print("\n3. Start Metrics HTTP Server")
    print("-" * 60)
    port = 8000
    try:
        start_http_server(port)
        print(f"✓ Metrics available at http://localhost:{port}/metrics")
    except OSError as e:
        print(f"✗ Failed to start metrics server: {e}")

    print("\n4. Sample Metrics Output")
    print("-" * 60)
    for line in generate_latest(REGISTRY).decode("utf-8").split("\n"):
        if line.startswith("anime_sources_"):
            print(f"  {line}")

    print("\nPress Ctrl+C to stop the server")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n✓ Server stopped")


if __name__ == "__main__":
    main()

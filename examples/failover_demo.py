#!/usr/bin/env python3
"""Example: failover, aggregation and streaming lookups over in-memory sources."""

import asyncio

from anime_sources import (
    Anime,
    Capability,
    MockSource,
    Settings,
    SourceManager,
    StreamingData,
    configure_logging,
)
from anime_sources.types import VideoSource


CATALOG = [
    Anime(id="hianime-naruto-677", title="Naruto", rating=7.9, year=2002),
    Anime(id="hianime-naruto-shippuden-355", title="Naruto: Shippuden", rating=8.2, year=2007),
    Anime(id="hianime-bleach-806", title="Bleach", rating=7.8, year=2004),
]


def stream_for(episode_id, server, category):
    return StreamingData(sources=[VideoSource(url=f"https://cdn.example/{episode_id}/master.m3u8", is_m3u8=True)])


async def main():
    configure_logging("INFO")

    settings = Settings(health={"enabled": False}, catalog={"enabled": False})
    direct = MockSource("HiAnimeDirect", responses={"search": ConnectionError("connection refused")})
    hianime = MockSource(
        "HiAnime",
        catalog=CATALOG,
        capabilities=[Capability.STREAMING_LINKS],
        responses={"get_streaming_links": stream_for},
    )

    async with SourceManager([direct, hianime], settings=settings) as manager:
        print("\n1. Search with failover")
        result = await manager.search("naruto")
        print(f"   answered by {result.source}: {[a.title for a in result.results]}")

        print("\n2. Aggregate across sources")
        combined = await manager.search_all("naruto")
        print(f"   {combined.source}, messages={combined.messages}")

        print("\n3. Streaming links")
        data = await manager.get_streaming_links("hianime-naruto-677?ep=1")
        print(f"   {data.source}: {data.sources[0].url}")

        print("\n4. Source status")
        for row in manager.get_source_status():
            print(f"   {row['name']}: available={row['available']} reason={row['reason']}")


if __name__ == "__main__":
    asyncio.run(main())

"""Example: Using Anime Sources Settings"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
from anime_sources import get_settings

settings = get_settings()
print(f"Environment: {settings.environment}")
print(f"Priority: {settings.orchestrator.priority}")
print(f"Timeout per attempt: {settings.reliability.timeout}s")
print(f"Sources: {[source.get('name') for source in settings.sources]}")

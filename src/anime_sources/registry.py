"""
Source Registry

Holds the registered sources in registration order, the priority order, each
source's availability flag and the latest health snapshot. The registry is
owned by one SourceManager; there is no module-level state.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from .events import SourceEvents
from .exceptions import SourceConfigError
from .log_config import get_context_logger
from .sources.base import ContentSource, resolve_capabilities, validate_source
from .types import Capability, HealthStatus, SourceHealth


@dataclass
class RegisteredSource:
    """A source adapter plus the state the registry keeps about it."""

    adapter: ContentSource
    capabilities: frozenset[Capability]
    is_available: bool = True
    unavailable_reason: str | None = None

    @property
    def name(self) -> str:
        return self.adapter.name

    def supports(self, capability: Capability | None) -> bool:
        return capability is None or capability in self.capabilities


class SourceRegistry:
    """
    Ordered source registry with priority-based selection.

    Selection order for ``select(preferred)``:
        1. ``preferred``, if registered and available
        2. the first available source in priority order
        3. the first available source in registration order
        4. None

    Isolated sources are skipped in steps 2 and 3; they are reachable only
    as the explicit ``preferred`` source or through identifier routing.

    Examples:
        >>> registry = SourceRegistry([a, b, c], priority=["B", "A"])
        >>> registry.select().name
        'B'
        >>> registry.promote("C")
        True
        >>> registry.priority_order
        ['C', 'B', 'A']
    """

    def __init__(
        self,
        sources: Iterable[ContentSource] = (),
        priority: Iterable[str] | None = None,
        isolated: Iterable[str] = (),
    ):
        self.logger = get_context_logger("source_registry")
        self.isolated = frozenset(isolated)
        self._sources: dict[str, RegisteredSource] = {}
        self._priority: list[str] = []
        self._health: dict[str, SourceHealth] = {}

        for source in sources:
            self.register(source)
        if priority is not None:
            self.set_priority(priority)

    # ----- registration -------------------------------------------------

    def register(self, adapter: ContentSource) -> RegisteredSource:
        """
        Register a source and resolve its optional capabilities.

        Raises:
            SourceConfigError: If the adapter is invalid or the name is taken
        """
        validate_source(adapter)
        if adapter.name in self._sources:
            raise SourceConfigError(
                f"Source {adapter.name} is already registered", config_key="name"
            )

        entry = RegisteredSource(adapter=adapter, capabilities=resolve_capabilities(adapter))
        self._sources[adapter.name] = entry
        self._priority.append(adapter.name)
        self._health[adapter.name] = SourceHealth(name=adapter.name)

        self.logger.debug(
            "Source registered",
            source=adapter.name,
            capabilities=sorted(cap.value for cap in entry.capabilities),
        )
        return entry

    def set_priority(self, names: Iterable[str]) -> None:
        """
        Replace the priority order.

        Duplicates are dropped. Registered sources not listed remain
        reachable through the registration-order fallback.

        Raises:
            SourceConfigError: If a name is not registered
        """
        order: list[str] = []
        for name in names:
            if name not in self._sources:
                raise SourceConfigError(
                    f"Unknown source in priority order: {name}", config_key="priority"
                )
            if name not in order:
                order.append(name)
        self._priority = order

    def promote(self, name: str) -> bool:
        """Move ``name`` to the front of the priority order."""
        if name not in self._sources:
            return False
        self._priority = [name] + [n for n in self._priority if n != name]
        self.logger.info("Preferred source set", source=name, priority=self._priority)
        return True

    # ----- lookup ---------------------------------------------------------

    def get(self, name: str) -> RegisteredSource | None:
        return self._sources.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self) -> Iterator[RegisteredSource]:
        return iter(self._sources.values())

    @property
    def names(self) -> list[str]:
        """Source names in registration order."""
        return list(self._sources)

    @property
    def priority_order(self) -> list[str]:
        return list(self._priority)

    # ----- availability ---------------------------------------------------

    def is_available(self, name: str) -> bool:
        entry = self._sources.get(name)
        return entry is not None and entry.is_available

    def set_available(self, name: str, available: bool, reason: str | None = None) -> None:
        entry = self._sources.get(name)
        if entry is None:
            return
        entry.is_available = available
        entry.unavailable_reason = None if available else reason

    def mark_unavailable(self, name: str, reason: str | None = None) -> None:
        """Take a source out of selection until the next health probe restores it."""
        if self.is_available(name):
            self.logger.warning(SourceEvents.SOURCE_MARKED_UNAVAILABLE, source=name, reason=reason)
        self.set_available(name, False, reason)

    def available(self) -> list[RegisteredSource]:
        return [entry for entry in self._sources.values() if entry.is_available]

    # ----- selection ------------------------------------------------------

    def candidates(
        self,
        *,
        exclude: Iterable[str] = (),
        capability: Capability | None = None,
        include_isolated: bool = False,
    ) -> list[RegisteredSource]:
        """
        Available sources in selection order: priority first, then registration order.

        Isolated sources are left out unless ``include_isolated`` is set.
        """
        excluded = set(exclude)
        if not include_isolated:
            excluded |= self.isolated
        ordered = self._priority + [n for n in self._sources if n not in self._priority]
        return [
            self._sources[name]
            for name in ordered
            if name not in excluded
            and self._sources[name].is_available
            and self._sources[name].supports(capability)
        ]

    def select(
        self,
        preferred: str | None = None,
        *,
        exclude: Iterable[str] = (),
        capability: Capability | None = None,
    ) -> RegisteredSource | None:
        """Pick the source for a request, or None if nothing is available."""
        excluded = set(exclude)
        if preferred is not None and preferred not in excluded:
            entry = self._sources.get(preferred)
            if entry is not None and entry.is_available and entry.supports(capability):
                return entry

        candidates = self.candidates(exclude=excluded, capability=capability)
        return candidates[0] if candidates else None

    # ----- health ---------------------------------------------------------

    def publish_health(self, snapshot: dict[str, SourceHealth]) -> None:
        """
        Replace the health snapshot wholesale and flip availability to match.

        Sources missing from ``snapshot`` keep their previous entry so there
        is always exactly one entry per registered source.
        """
        new_health = {
            name: snapshot.get(name) or self._health.get(name) or SourceHealth(name=name)
            for name in self._sources
        }
        self._health = new_health
        for name, health in new_health.items():
            self.set_available(
                name,
                health.status != HealthStatus.OFFLINE,
                reason=health.error or health.status.value,
            )

    def health(self) -> list[SourceHealth]:
        return [self._health[name] for name in self._sources]

    def status(self) -> list[dict[str, Any]]:
        """Per-source availability and capability table."""
        return [
            {
                "name": entry.name,
                "available": entry.is_available,
                "reason": entry.unavailable_reason,
                "priority": (
                    self._priority.index(entry.name) if entry.name in self._priority else None
                ),
                "capabilities": sorted(cap.value for cap in entry.capabilities),
                "health": self._health[entry.name].to_dict(),
            }
            for entry in self._sources.values()
        ]


__all__ = ["RegisteredSource", "SourceRegistry"]

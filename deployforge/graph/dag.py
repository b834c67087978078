from __future__ import annotations

from dataclasses import dataclass

from deployforge.config.types import RegistryConfig

from .types import CycleError


@dataclass(frozen=True)
class PrerequisiteGraph:
    """
    Task name -> the one task it requires (or None).

    With a single prerequisite per task the graph is a set of chains, so
    walking a chain is enough to find both the closure and any cycle.
    """

    _requires: dict[str, str | None]

    @classmethod
    def from_registry(cls, registry: RegistryConfig) -> PrerequisiteGraph:
        return cls({task.name: task.prerequisite for task in registry})

    def chain(self, name: str) -> list[str]:
        """`name` followed by its prerequisites, nearest first."""
        if name not in self._requires:
            raise KeyError(name)

        chain = [name]
        current = self._requires[name]
        while current is not None:
            if current in chain:
                raise CycleError(chain[chain.index(current):] + [current])
            chain.append(current)
            current = self._requires.get(current)
        return chain

    def check_acyclic(self) -> None:
        cleared: set[str] = set()
        for name in self._requires:
            if name not in cleared:
                cleared.update(self.chain(name))

    def closure(self, targets: list[str]) -> set[str]:
        """Targets plus everything they transitively require."""
        needed: set[str] = set()
        for target in targets:
            needed.update(self.chain(target))
        return needed

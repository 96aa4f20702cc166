from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import networkx as nx

from ..models.diagnostics import Diagnostics
from ..models.sheet import Sheet

"""Dependency-ordered load scheduling.

Sheets reference each other through foreign keys. A table with a not-null
foreign key column can only be loaded after the referenced table, so the
scheduler orders the sheets such that every mandatory dependency precedes
its dependent. Optional (nullable) foreign keys never block ordering; they
are reconciled by the loader's update pass.

Each schedule() call builds a fresh ``nx.DiGraph`` with one node per table
and an edge ``dependency -> dependent`` per mandatory foreign key, then:

1. discover: ask the introspector for every table's dependencies; a table
   that cannot be inspected is reported and dropped.
2. prune: drop tables whose mandatory dependencies are not provided, then
   transitively every table depending on a dropped one.
3. cycles: members of a strongly connected component are reported with the
   component they belong to and dropped, together with their dependents.
4. order: topological generations, input order within a generation.

A not-null self-reference (a tree stored in one table) is not an ordering
constraint; rows of such a table are inserted in sheet order.

Table names are compared upper-cased.
"""

__all__ = [
    "DependencyIntrospector",
    "ScheduleResult",
    "DependencyScheduler",
    "SimpleScheduler",
]

logger = logging.getLogger(__name__)

CANNOT_ACCESS = 'Cannot access table "{table}": {cause}'
NOT_PROVIDED = 'Table "{table}" depends on table "{missing}" which is not provided.'
DEPENDS_ON_REMOVED = 'Table "{table}" depends on removed table "{removed}".'
CYCLE = 'Table "{table}" cannot be ordered, mandatory dependency cycle among {tables}.'


class DependencyIntrospector(Protocol):
    def depends_on(self, table: str) -> set[str]: ...

    def depends_mandatory_on(self, table: str) -> set[str]: ...


def _key(table: str) -> str:
    return table.strip().upper()


@dataclass(frozen=True)
class ScheduleResult:
    """Ordered sheets plus the faults of tables that were excluded.

    ``graph`` holds the mandatory dependencies among the ordered tables
    (upper-cased keys, the sheet's spelling in the ``table`` node attribute).
    """
    ordered: list[Sheet] = field(default_factory=list)
    diagnostics: Diagnostics = Diagnostics()
    excluded: list[str] = field(default_factory=list)  # table names in detection order
    graph: nx.DiGraph = field(default_factory=nx.DiGraph, compare=False, repr=False)

    def __iter__(self):
        # allows ``ordered, diagnostics = scheduler.schedule(sheets)``
        return iter((self.ordered, self.diagnostics))

    def dependents_of(self, tables: Iterable[str]) -> list[tuple[str, str]]:
        """(dependent, dependency) pairs of the ordered tables that need one of
        ``tables``, directly or through another such dependent."""
        removed = {_key(t) for t in tables}
        pairs: list[tuple[str, str]] = []
        seen: set[str] = set()
        for sheet in self.ordered:
            key = _key(sheet.table)
            if key in seen or key in removed or key not in self.graph:
                continue
            seen.add(key)
            lost = sorted(p for p in self.graph.predecessors(key) if p in removed)
            if lost:
                pairs.extend((sheet.table, self.graph.nodes[p]["table"]) for p in lost)
                removed.add(key)
        return pairs


class SimpleScheduler:
    """Keeps the input order; used when no database is available."""

    def schedule(self, sheets: Sequence[Sheet] | None) -> ScheduleResult:
        return ScheduleResult(ordered=list(sheets or []))


class DependencyScheduler:
    """Orders sheets by mandatory foreign key dependencies."""

    def __init__(self, introspector: DependencyIntrospector) -> None:
        self.introspector = introspector

    def schedule(self, sheets: Sequence[Sheet] | None) -> ScheduleResult:
        if not sheets:
            return ScheduleResult()
        diagnostics = Diagnostics()
        excluded: list[str] = []

        # input order of distinct tables, used for deterministic ties
        tables: list[str] = []
        display: dict[str, str] = {}
        for sheet in sheets:
            key = _key(sheet.table)
            if key not in display:
                display[key] = sheet.table
                tables.append(key)
        position = {key: i for i, key in enumerate(tables)}

        # 1. discover
        graph = nx.DiGraph()
        mandatory: dict[str, set[str]] = {}
        for key in tables:
            name = display[key]
            try:
                depends = {_key(t) for t in self.introspector.depends_on(name)}
                required = {_key(t) for t in self.introspector.depends_mandatory_on(name)}
            except Exception as e:
                logger.warning("cannot access table %s: %s", name, e)
                diagnostics += Diagnostics.error(CANNOT_ACCESS.format(table=name, cause=e))
                excluded.append(name)
                continue
            if key in required:
                logger.debug("table %s references itself, ignored for ordering", name)
            required.discard(key)
            optional = (depends - required) - {key}
            if optional:
                logger.debug(
                    "table %s has optional references to %s, reconciled by update pass",
                    name,
                    sorted(optional),
                )
            mandatory[key] = required
            graph.add_node(key, table=name)
        for key, required in mandatory.items():
            graph.add_edges_from((dependency, key) for dependency in required if dependency in graph)

        # 2. prune unsatisfiable tables
        removed: set[str] = set()
        for key in [t for t in tables if t in graph]:
            missing = sorted(d for d in mandatory[key] if d not in graph)
            for dependency in missing:
                diagnostics += Diagnostics.error(
                    NOT_PROVIDED.format(table=display[key], missing=display.get(dependency, dependency))
                )
            if missing:
                removed.add(key)
                excluded.append(display[key])
        diagnostics = self._drop(graph, removed, tables, diagnostics, excluded)

        # 3. break mandatory cycles
        cycles = [c for c in nx.strongly_connected_components(graph) if len(c) > 1]
        cycles.sort(key=lambda c: min(position[t] for t in c))
        cyclic: set[str] = set()
        for component in cycles:
            members = sorted(component, key=position.get)
            names = ", ".join(f'"{display[t]}"' for t in members)
            logger.warning("mandatory dependency cycle among %s", names)
            for key in members:
                diagnostics += Diagnostics.error(CYCLE.format(table=display[key], tables=names))
                excluded.append(display[key])
            cyclic.update(component)
        diagnostics = self._drop(graph, cyclic, tables, diagnostics, excluded)

        # 4. order
        ordered_tables: list[str] = []
        for generation in nx.topological_generations(graph):
            ordered_tables.extend(sorted(generation, key=position.get))

        ordered: list[Sheet] = []
        for key in ordered_tables:
            ordered.extend(s for s in sheets if _key(s.table) == key)
        return ScheduleResult(ordered=ordered, diagnostics=diagnostics, excluded=excluded, graph=graph)

    @staticmethod
    def _drop(
        graph: nx.DiGraph,
        removed: set[str],
        tables: list[str],
        diagnostics: Diagnostics,
        excluded: list[str],
    ) -> Diagnostics:
        """Remove ``removed`` (already reported) and, transitively, their dependents."""
        while removed:
            orphaned = {s for r in removed for s in graph.successors(r)} - removed
            orphaned = [t for t in tables if t in orphaned]
            for key in orphaned:
                for dependency in sorted(p for p in graph.predecessors(key) if p in removed):
                    diagnostics += Diagnostics.error(
                        DEPENDS_ON_REMOVED.format(
                            table=graph.nodes[key]["table"], removed=graph.nodes[dependency]["table"]
                        )
                    )
                excluded.append(graph.nodes[key]["table"])
            graph.remove_nodes_from(removed)
            removed = set(orphaned)
        return diagnostics

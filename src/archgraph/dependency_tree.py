# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Nested dependency trees for components.

Two entry points share the same output shape:
- build_all(): every component gets its dependency list replaced by nested,
  already-resolved dependencies. Components are processed in topological
  order so each dependency is fully built before its dependents.
- build_one(): a single root is resolved by depth-first recursion.

Algorithm Overview (build_all):
1. Count each component's own dependencies (its "remaining" count)
2. Seed a FIFO queue with components whose count is zero
3. Pop a component, mark it processed, build its nested form from the
   already-processed versions of its dependencies
4. Decrement the count of every component that lists it as a dependency and
   enqueue the ones that reach zero (no duplicates)
5. When the queue empties with components left over, a cycle (or a
   dependency outside the input set) exists: log it, flag it, and append the
   remainder as-is instead of aborting

Cycle handling favours a complete traversal over strict resolution. Results
carry ``had_cycle`` so callers can react without scraping logs.

Unloaded dependency collections (NOT_LOADED) count as zero dependencies.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, FrozenSet, List, Optional, Set, Tuple

from archgraph.models import Component, loaded_or_empty

logger = logging.getLogger(__name__)


@dataclass
class DependencyTreeResult:
    """Output of a dependency tree build.

    Attributes:
        components: Components with nested dependencies. For build_all this is
            in processing order; for build_one it holds the single root.
        order: Component ids in the order they were processed.
        had_cycle: True if a cycle was detected and broken.
        unresolved_ids: Ids that could not be placed in topological order.
    """

    components: List[Component]
    order: List[str] = field(default_factory=list)
    had_cycle: bool = False
    unresolved_ids: List[str] = field(default_factory=list)

    @property
    def root(self) -> Optional[Component]:
        """The first component, i.e. the root of a build_one call."""
        return self.components[0] if self.components else None

    def by_id(self) -> Dict[str, Component]:
        """Index the resulting components by id."""
        return {component.id: component for component in self.components}


def _dependency_ids(component: Component) -> List[str]:
    """Distinct dependency ids in declaration order."""
    seen: Set[str] = set()
    ids: List[str] = []
    for dep in loaded_or_empty(component.dependencies):
        if dep.id not in seen:
            seen.add(dep.id)
            ids.append(dep.id)
    return ids


def topological_sort(components: List[Component]) -> Tuple[List[Component], bool]:
    """Order components so that each comes after the dependencies it lists.

    The count driving the queue is the number of the component's own
    dependencies, so leaves are processed first.

    Args:
        components: Components with dependency lists (or NOT_LOADED).

    Returns:
        Tuple of (ordered components, had_cycle). On a cycle the unprocessed
        remainder is appended in input order.
    """
    ordered, leftover = _kahn_order(components)
    if not leftover:
        return ordered, False

    _log_cycle(leftover)
    return ordered + leftover, True


def _log_cycle(leftover: List[Component]) -> None:
    logger.warning(
        f"Dependency cycle detected, processing remaining components: "
        f"{[c.module_name for c in leftover]}"
    )


def _kahn_order(components: List[Component]) -> Tuple[List[Component], List[Component]]:
    """Split components into (topologically ordered, unprocessable remainder)."""
    if not components:
        return [], []

    remaining: Dict[str, int] = {}
    dependents: Dict[str, List[Component]] = {}
    for component in components:
        dep_ids = _dependency_ids(component)
        remaining[component.id] = len(dep_ids)
        for dep_id in dep_ids:
            dependents.setdefault(dep_id, []).append(component)

    queue: Deque[Component] = deque(c for c in components if remaining[c.id] == 0)
    queued: Set[str] = {c.id for c in queue}
    processed: Set[str] = set()
    result: List[Component] = []

    while queue:
        current = queue.popleft()
        queued.discard(current.id)
        if current.id in processed:
            continue

        processed.add(current.id)
        result.append(current)

        for dependent in dependents.get(current.id, []):
            remaining[dependent.id] = max(0, remaining[dependent.id] - 1)
            if (
                remaining[dependent.id] == 0
                and dependent.id not in processed
                and dependent.id not in queued
            ):
                queue.append(dependent)
                queued.add(dependent.id)

    leftover = [c for c in components if c.id not in processed]
    return result, leftover


def build_all(components: List[Component]) -> DependencyTreeResult:
    """Annotate every component with its nested dependency tree.

    Each dependency reference is replaced by the already-processed version
    of that component when one exists, otherwise the raw reference is kept.
    Input components are not mutated.

    Args:
        components: Flat component list with dependency associations.

    Returns:
        DependencyTreeResult with components in processing order.
    """
    if not components:
        return DependencyTreeResult(components=[])

    ordered, leftover = _kahn_order(components)
    if leftover:
        _log_cycle(leftover)

    processed: Dict[str, Component] = {}
    result: List[Component] = []
    for component in ordered + leftover:
        nested = [
            processed.get(dep.id, dep) for dep in loaded_or_empty(component.dependencies)
        ]
        updated = component.with_changes(dependencies=nested)
        processed[component.id] = updated
        result.append(updated)

    unresolved = [c.id for c in leftover]

    logger.debug(
        f"Built dependency trees for {len(result)} components"
        + (f" ({len(unresolved)} unresolved)" if unresolved else "")
    )

    return DependencyTreeResult(
        components=result,
        order=[c.id for c in result],
        had_cycle=bool(leftover),
        unresolved_ids=unresolved,
    )


def build_one(component: Component, all_components: List[Component]) -> DependencyTreeResult:
    """Build the nested dependency tree for a single component.

    Depth-first recursion over ``all_components``. A component already on the
    current path is a cycle: its dependency list is replaced by an empty list
    and a warning is logged, so the call terminates on any graph.

    Args:
        component: Root component.
        all_components: Snapshot used to look up dependencies by id.

    Returns:
        DependencyTreeResult whose ``root`` is the nested component.
    """
    component_map = {c.id: c for c in all_components}
    cycles: List[str] = []
    root = _build_nested_tree(component, component_map, frozenset(), cycles)
    return DependencyTreeResult(
        components=[root],
        order=[root.id],
        had_cycle=bool(cycles),
        unresolved_ids=cycles,
    )


def _build_nested_tree(
    component: Component,
    component_map: Dict[str, Component],
    visited: FrozenSet[str],
    cycles: List[str],
) -> Component:
    if component.id in visited:
        logger.warning(
            f"Cycle detected for component {component.module_name} ({component.id}), "
            "breaking cycle"
        )
        cycles.append(component.id)
        return component.with_changes(dependencies=[])

    path = visited | {component.id}
    nested: List[Component] = []
    for dep in loaded_or_empty(component.dependencies):
        found = component_map.get(dep.id)
        if found is None:
            nested.append(dep)
        else:
            nested.append(_build_nested_tree(found, component_map, path, cycles))
    return component.with_changes(dependencies=nested)

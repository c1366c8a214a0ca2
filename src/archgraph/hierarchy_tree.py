# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Nested parent/child trees for components.

Hierarchy edges come from ``parent_component_id``, which the reconciler
derives from dotted module names. Children are always found by scanning the
snapshot for a matching ``parent_component_id``; a possibly-unloaded
``child_components`` association is never trusted. This keeps the builder
correct on partially populated inputs.

The hierarchy is expected to be acyclic. A component seen twice on the same
path gets an empty child list and a logged warning instead of unbounded
recursion, and results report it through ``had_cycle``.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set

from archgraph.models import Component

logger = logging.getLogger(__name__)


@dataclass
class HierarchyTreeResult:
    """Output of a hierarchy tree build.

    Attributes:
        components: Root components (build_all) or the single subtree root
            (build_one), each with nested ``child_components``.
        had_cycle: True if a cycle was detected and broken.
        cycle_ids: Ids at which a cycle was broken.
    """

    components: List[Component]
    had_cycle: bool = False
    cycle_ids: List[str] = field(default_factory=list)

    @property
    def root(self) -> Optional[Component]:
        """The first component, i.e. the root of a build_one call."""
        return self.components[0] if self.components else None


class _ChildIndex:
    """parent id -> children, preserving input order."""

    def __init__(self, components: List[Component]) -> None:
        self.by_id: Dict[str, Component] = {}
        self.children: Dict[str, List[Component]] = {}
        for component in components:
            self.by_id[component.id] = component
        for component in self.by_id.values():
            if component.parent_component_id is not None:
                self.children.setdefault(component.parent_component_id, []).append(component)

    def children_of(self, component_id: str) -> List[Component]:
        return self.children.get(component_id, [])


def build_all(components: List[Component]) -> HierarchyTreeResult:
    """Build nested trees for every root component.

    Roots are components without a parent. Running this twice on the same
    flat list yields structurally identical output.

    Args:
        components: Flat component list.

    Returns:
        HierarchyTreeResult holding only the roots.
    """
    if not components:
        return HierarchyTreeResult(components=[])

    index = _ChildIndex(components)
    cycles: List[str] = []
    roots = [
        _build_nested_tree(component, index, frozenset(), cycles)
        for component in components
        if component.parent_component_id is None
    ]
    return HierarchyTreeResult(components=roots, had_cycle=bool(cycles), cycle_ids=cycles)


def build_one(component: Component, all_components: List[Component]) -> HierarchyTreeResult:
    """Build the nested subtree rooted at ``component``."""
    index = _ChildIndex(all_components)
    cycles: List[str] = []
    root = _build_nested_tree(component, index, frozenset(), cycles)
    return HierarchyTreeResult(components=[root], had_cycle=bool(cycles), cycle_ids=cycles)


def _build_nested_tree(
    component: Component,
    index: _ChildIndex,
    visited: FrozenSet[str],
    cycles: List[str],
) -> Component:
    if component.id in visited:
        logger.warning(
            f"Cycle detected in hierarchy for component {component.module_name} "
            f"({component.id}), breaking cycle"
        )
        cycles.append(component.id)
        return component.with_changes(child_components=[])

    path = visited | {component.id}
    children = [
        _build_nested_tree(child, index, path, cycles) for child in index.children_of(component.id)
    ]
    return component.with_changes(child_components=children)


def descendants(component: Component, all_components: List[Component]) -> List[Component]:
    """Return all transitive children of ``component``.

    Breadth-first; every component appears at most once and the component
    itself is never included.
    """
    index = _ChildIndex(all_components)
    visited: Set[str] = {component.id}
    result: List[Component] = []
    frontier = [component]

    while frontier:
        next_frontier: List[Component] = []
        for node in frontier:
            for child in index.children_of(node.id):
                if child.id in visited:
                    continue
                visited.add(child.id)
                result.append(child)
                next_frontier.append(child)
        frontier = next_frontier

    return result


def path_to_root(component: Component, all_components: List[Component]) -> List[Component]:
    """Return the ancestry of ``component``, root first, component last.

    Follows ``parent_component_id`` until it is None or names a component
    missing from ``all_components``. A repeated id also ends the walk.
    """
    by_id = {c.id: c for c in all_components}
    path = [component]
    seen = {component.id}
    current = component

    while current.parent_component_id is not None:
        parent = by_id.get(current.parent_component_id)
        if parent is None:
            break
        if parent.id in seen:
            logger.warning(
                f"Cycle detected in hierarchy above component {component.module_name}, "
                "stopping at last distinct ancestor"
            )
            break
        path.append(parent)
        seen.add(parent.id)
        current = parent

    path.reverse()
    return path


def is_ancestor(
    candidate: Component, component: Component, all_components: List[Component]
) -> bool:
    """Return True if ``candidate`` is an ancestor of ``component``.

    A component is never its own ancestor.
    """
    if candidate.id == component.id:
        return False
    return any(node.id == candidate.id for node in path_to_root(component, all_components))

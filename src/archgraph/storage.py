# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Storage abstraction for component and dependency persistence.

The reconciler and the read path talk to persistence only through
ComponentStore, so a database-backed store can replace the in-memory one
without touching business logic.

Components:
- ComponentStore: Abstract interface for storage backends
- InMemoryComponentStore: In-memory implementation
- GraphExport: Type definition for graph export format
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from archgraph.models import (
    NOT_LOADED,
    Component,
    ComponentValidationError,
    Dependency,
    component_id,
)

# Type alias for graph export format
GraphExport = Dict[str, Any]

# Fields callers may set through upsert/update
WRITABLE_FIELDS = (
    "name",
    "type",
    "module_name",
    "description",
    "priority",
    "synced_at",
    "parent_component_id",
)


class StoreError(Exception):
    """Raised when a storage operation violates a constraint."""

    pass


class ComponentStore(ABC):
    """Abstract storage interface for components and dependency edges.

    All operations are scoped to a project id. Returned components carry
    NOT_LOADED associations unless the method says otherwise.
    """

    @abstractmethod
    def list_components(self, project_id: str) -> List[Component]:
        """List all components in a project."""
        pass

    @abstractmethod
    def get_component(self, project_id: str, id: str) -> Optional[Component]:
        """Get a component by id, or None."""
        pass

    @abstractmethod
    def get_component_by_module_name(
        self, project_id: str, module_name: str
    ) -> Optional[Component]:
        """Get a component by its module name, or None."""
        pass

    @abstractmethod
    def upsert_component(self, project_id: str, attrs: Dict[str, Any]) -> Component:
        """Create or update the component identified by ``attrs['module_name']``.

        The id is derived from (project_id, module_name).

        Raises:
            StoreError: If the attributes are invalid.
        """
        pass

    @abstractmethod
    def update_component(
        self, project_id: str, component: Component, attrs: Dict[str, Any]
    ) -> Component:
        """Update fields of an existing component.

        Raises:
            StoreError: If the component is missing or the update is invalid.
        """
        pass

    @abstractmethod
    def delete_component(self, project_id: str, component: Component) -> None:
        """Delete a component and every dependency edge touching it."""
        pass

    @abstractmethod
    def add_dependency(self, project_id: str, dependency: Dependency) -> Dependency:
        """Persist a dependency edge between two components of the project.

        Raises:
            StoreError: If either endpoint is missing.
        """
        pass

    @abstractmethod
    def remove_dependency(self, project_id: str, dependency: Dependency) -> None:
        """Delete a dependency edge (no-op if absent)."""
        pass

    @abstractmethod
    def list_dependencies(self, project_id: str) -> List[Dependency]:
        """List all dependency edges in a project."""
        pass

    @abstractmethod
    def list_components_with_dependencies(self, project_id: str) -> List[Component]:
        """List components with ``dependencies`` and ``outgoing_dependencies`` loaded.

        Nested dependency components carry NOT_LOADED associations;
        ``child_components`` stays NOT_LOADED.
        """
        pass

    @abstractmethod
    def export_graph(self, project_id: str) -> GraphExport:
        """Export components and edges to a JSON-compatible dict."""
        pass


class InMemoryComponentStore(ComponentStore):
    """In-memory storage implementation.

    Features:
    - O(1) lookups by id and by module name
    - Stored and returned components are copies; callers cannot alias state

    Limitations:
    - NOT thread-safe: Designed for single-threaded use only
    - No persistence across sessions
    """

    def __init__(self) -> None:
        """Initialize empty in-memory store."""
        # project_id -> component id -> Component
        self._components: Dict[str, Dict[str, Component]] = {}
        # project_id -> module name -> component id
        self._by_module: Dict[str, Dict[str, str]] = {}
        # project_id -> list of edges
        self._dependencies: Dict[str, List[Dependency]] = {}

    def _project(self, project_id: str) -> Dict[str, Component]:
        return self._components.setdefault(project_id, {})

    @staticmethod
    def _detached(component: Component) -> Component:
        return component.with_changes(
            dependencies=NOT_LOADED,
            child_components=NOT_LOADED,
            outgoing_dependencies=NOT_LOADED,
            requirements=NOT_LOADED,
        )

    def _validated(self, project_id: str, component: Component) -> Component:
        try:
            component.validate()
        except ComponentValidationError as e:
            raise StoreError(str(e)) from e

        parent_id = component.parent_component_id
        if parent_id is not None and parent_id not in self._project(project_id):
            raise StoreError(f"Parent component {parent_id} does not exist")

        owner = self._by_module.get(project_id, {}).get(component.module_name)
        if owner is not None and owner != component.id:
            raise StoreError(f"module_name {component.module_name!r} is already taken")
        return component

    def _save(self, project_id: str, component: Component) -> Component:
        stored = self._detached(component)
        previous = self._project(project_id).get(stored.id)
        modules = self._by_module.setdefault(project_id, {})
        if previous is not None and previous.module_name != stored.module_name:
            modules.pop(previous.module_name, None)
        self._project(project_id)[stored.id] = stored
        modules[stored.module_name] = stored.id
        return self._detached(stored)

    def list_components(self, project_id: str) -> List[Component]:
        return [self._detached(c) for c in self._project(project_id).values()]

    def get_component(self, project_id: str, id: str) -> Optional[Component]:
        component = self._project(project_id).get(id)
        return self._detached(component) if component is not None else None

    def get_component_by_module_name(
        self, project_id: str, module_name: str
    ) -> Optional[Component]:
        id = self._by_module.get(project_id, {}).get(module_name)
        return self.get_component(project_id, id) if id is not None else None

    def upsert_component(self, project_id: str, attrs: Dict[str, Any]) -> Component:
        module_name = attrs.get("module_name")
        if not module_name:
            raise StoreError("module_name is required")

        changes = {k: v for k, v in attrs.items() if k in WRITABLE_FIELDS}
        id = component_id(project_id, module_name)
        existing = self._project(project_id).get(id)
        if existing is not None:
            component = existing.with_changes(**changes)
        else:
            changes.setdefault("name", module_name.split(".")[-1])
            component = Component(id=id, project_id=project_id, **changes)

        return self._save(project_id, self._validated(project_id, component))

    def update_component(
        self, project_id: str, component: Component, attrs: Dict[str, Any]
    ) -> Component:
        existing = self._project(project_id).get(component.id)
        if existing is None:
            raise StoreError(f"Component {component.id} does not exist")

        changes = {k: v for k, v in attrs.items() if k in WRITABLE_FIELDS}
        updated = existing.with_changes(**changes)
        return self._save(project_id, self._validated(project_id, updated))

    def delete_component(self, project_id: str, component: Component) -> None:
        components = self._project(project_id)
        removed = components.pop(component.id, None)
        if removed is None:
            return

        modules = self._by_module.get(project_id, {})
        if modules.get(removed.module_name) == removed.id:
            del modules[removed.module_name]

        # Nilify children and drop edges touching the deleted component
        for child_id, child in list(components.items()):
            if child.parent_component_id == removed.id:
                components[child_id] = child.with_changes(parent_component_id=None)
        self._dependencies[project_id] = [
            dep
            for dep in self._dependencies.get(project_id, [])
            if removed.id not in (dep.source_component_id, dep.target_component_id)
        ]

    def add_dependency(self, project_id: str, dependency: Dependency) -> Dependency:
        components = self._project(project_id)
        for endpoint in (dependency.source_component_id, dependency.target_component_id):
            if endpoint not in components:
                raise StoreError(f"Component {endpoint} does not exist in project {project_id}")

        edges = self._dependencies.setdefault(project_id, [])
        if dependency not in edges:
            edges.append(dependency)
        return dependency

    def remove_dependency(self, project_id: str, dependency: Dependency) -> None:
        edges = self._dependencies.get(project_id, [])
        if dependency in edges:
            edges.remove(dependency)

    def list_dependencies(self, project_id: str) -> List[Dependency]:
        return list(self._dependencies.get(project_id, []))

    def list_components_with_dependencies(self, project_id: str) -> List[Component]:
        components = self._project(project_id)
        outgoing: Dict[str, List[Dependency]] = {}
        for dep in self._dependencies.get(project_id, []):
            outgoing.setdefault(dep.source_component_id, []).append(dep)

        result = []
        for component in components.values():
            edges = outgoing.get(component.id, [])
            targets: List[Component] = []
            seen = set()
            for edge in edges:
                if edge.target_component_id in seen:
                    continue
                seen.add(edge.target_component_id)
                targets.append(self._detached(components[edge.target_component_id]))
            result.append(
                self._detached(component).with_changes(
                    dependencies=targets, outgoing_dependencies=list(edges)
                )
            )
        return result

    def export_graph(self, project_id: str) -> GraphExport:
        components = list(self._project(project_id).values())
        edges = self._dependencies.get(project_id, [])

        metadata: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "project_id": project_id,
            "total_components": len(components),
            "total_dependencies": len(edges),
        }

        # Most depended-upon components
        dependent_counts: Dict[str, int] = {}
        for dep in edges:
            dependent_counts[dep.target_component_id] = (
                dependent_counts.get(dep.target_component_id, 0) + 1
            )
        sorted_counts: List[Tuple[str, int]] = sorted(
            dependent_counts.items(), key=lambda x: x[1], reverse=True
        )[:10]
        names = {c.id: c.module_name for c in components}

        return {
            "metadata": metadata,
            "components": [
                c.to_dict(include_associations=False)
                for c in sorted(components, key=lambda c: c.module_name)
            ],
            "dependencies": [dep.to_dict() for dep in edges],
            "graph_metadata": {
                "most_depended_upon": [
                    {"module_name": names[cid], "dependent_count": count}
                    for cid, count in sorted_counts
                ],
            },
        }

    def clear(self) -> None:
        """Clear all stored components and edges."""
        self._components.clear()
        self._by_module.clear()
        self._dependencies.clear()

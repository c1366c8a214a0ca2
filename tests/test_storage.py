# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Unit tests for storage abstraction layer.

Tests cover:
- ComponentStore interface contract
- InMemoryComponentStore upsert/update/delete semantics
- Constraint violations raising StoreError
- Loading components with dependencies
- Graph export functionality
"""

import pytest

from archgraph.models import NOT_LOADED, ComponentType, Dependency, DependencyType, component_id
from archgraph.storage import ComponentStore, InMemoryComponentStore, StoreError

PROJECT = "proj-1"


def _upsert(store, module_name, **attrs):
    return store.upsert_component(PROJECT, {"module_name": module_name, **attrs})


class TestInMemoryComponentStore:
    """Tests for InMemoryComponentStore implementation."""

    def test_initialization(self, store):
        """Test store initializes empty."""
        assert store.list_components(PROJECT) == []
        assert store.list_dependencies(PROJECT) == []

    def test_is_component_store(self, store):
        assert isinstance(store, ComponentStore)

    def test_upsert_creates_with_derived_id(self, store):
        component = _upsert(store, "App.Accounts", type=ComponentType.CONTEXT)

        assert component.id == component_id(PROJECT, "App.Accounts")
        assert component.name == "Accounts"
        assert component.type == ComponentType.CONTEXT
        assert store.get_component(PROJECT, component.id) == component

    def test_upsert_updates_existing(self, store):
        _upsert(store, "App.Accounts", description="old")
        updated = _upsert(store, "App.Accounts", description="new")

        assert updated.description == "new"
        assert len(store.list_components(PROJECT)) == 1

    def test_upsert_ignores_unknown_fields(self, store):
        component = _upsert(store, "App.Accounts", id="forged", color="red")
        assert component.id == component_id(PROJECT, "App.Accounts")

    def test_upsert_requires_module_name(self, store):
        with pytest.raises(StoreError):
            store.upsert_component(PROJECT, {"name": "Nameless"})

    def test_upsert_rejects_invalid_module_name(self, store):
        with pytest.raises(StoreError):
            _upsert(store, "lowercase.name")

    def test_projects_are_isolated(self, store):
        _upsert(store, "App.Accounts")
        assert store.list_components("other") == []
        assert store.get_component_by_module_name("other", "App.Accounts") is None

    def test_get_by_module_name(self, store):
        component = _upsert(store, "App.Accounts")
        assert store.get_component_by_module_name(PROJECT, "App.Accounts") == component
        assert store.get_component_by_module_name(PROJECT, "App.Missing") is None

    def test_returned_components_are_copies(self, store):
        component = _upsert(store, "App.Accounts")
        component.description = "mutated"
        assert store.get_component(PROJECT, component.id).description is None

    def test_update_parent(self, store):
        parent = _upsert(store, "App")
        child = _upsert(store, "App.Accounts")

        updated = store.update_component(PROJECT, child, {"parent_component_id": parent.id})

        assert updated.parent_component_id == parent.id

    def test_update_rejects_missing_parent(self, store):
        child = _upsert(store, "App.Accounts")
        with pytest.raises(StoreError, match="Parent"):
            store.update_component(PROJECT, child, {"parent_component_id": "nope"})

    def test_update_rejects_self_parent(self, store):
        child = _upsert(store, "App.Accounts")
        with pytest.raises(StoreError):
            store.update_component(PROJECT, child, {"parent_component_id": child.id})

    def test_update_missing_component(self, store):
        ghost = _upsert(store, "App.Ghost")
        store.delete_component(PROJECT, ghost)
        with pytest.raises(StoreError):
            store.update_component(PROJECT, ghost, {"description": "x"})

    def test_update_rejects_taken_module_name(self, store):
        _upsert(store, "App.A")
        b = _upsert(store, "App.B")
        with pytest.raises(StoreError, match="already taken"):
            store.update_component(PROJECT, b, {"module_name": "App.A"})

    def test_delete_cascades(self, store):
        parent = _upsert(store, "App")
        child = _upsert(store, "App.Accounts")
        other = _upsert(store, "App.Billing")
        child = store.update_component(PROJECT, child, {"parent_component_id": parent.id})
        store.add_dependency(PROJECT, Dependency(DependencyType.CALL, child.id, parent.id))
        store.add_dependency(PROJECT, Dependency(DependencyType.CALL, other.id, child.id))

        store.delete_component(PROJECT, parent)

        assert store.get_component(PROJECT, parent.id) is None
        assert store.get_component(PROJECT, child.id).parent_component_id is None
        assert store.list_dependencies(PROJECT) == [
            Dependency(DependencyType.CALL, other.id, child.id)
        ]

    def test_delete_missing_is_noop(self, store):
        ghost = _upsert(store, "App.Ghost")
        store.delete_component(PROJECT, ghost)
        store.delete_component(PROJECT, ghost)
        assert store.list_components(PROJECT) == []

    def test_add_dependency_requires_endpoints(self, store):
        a = _upsert(store, "App.A")
        with pytest.raises(StoreError):
            store.add_dependency(PROJECT, Dependency(DependencyType.CALL, a.id, "missing"))

    def test_add_dependency_is_idempotent(self, store):
        a = _upsert(store, "App.A")
        b = _upsert(store, "App.B")
        edge = Dependency(DependencyType.ALIAS, a.id, b.id)
        store.add_dependency(PROJECT, edge)
        store.add_dependency(PROJECT, edge)
        assert store.list_dependencies(PROJECT) == [edge]

    def test_remove_dependency(self, store):
        a = _upsert(store, "App.A")
        b = _upsert(store, "App.B")
        edge = Dependency(DependencyType.ALIAS, a.id, b.id)
        store.add_dependency(PROJECT, edge)
        store.remove_dependency(PROJECT, edge)
        store.remove_dependency(PROJECT, edge)
        assert store.list_dependencies(PROJECT) == []

    def test_list_components_with_dependencies(self, store):
        a = _upsert(store, "App.A")
        b = _upsert(store, "App.B")
        c = _upsert(store, "App.C")
        store.add_dependency(PROJECT, Dependency(DependencyType.CALL, a.id, b.id))
        store.add_dependency(PROJECT, Dependency(DependencyType.ALIAS, a.id, b.id))
        store.add_dependency(PROJECT, Dependency(DependencyType.CALL, a.id, c.id))

        loaded = {c.id: c for c in store.list_components_with_dependencies(PROJECT)}

        assert [d.id for d in loaded[a.id].dependencies] == [b.id, c.id]
        assert len(loaded[a.id].outgoing_dependencies) == 3
        assert loaded[a.id].child_components is NOT_LOADED
        assert loaded[a.id].dependencies[0].dependencies is NOT_LOADED
        assert loaded[b.id].dependencies == []

    def test_export_graph(self, store):
        a = _upsert(store, "App.A")
        b = _upsert(store, "App.B")
        store.add_dependency(PROJECT, Dependency(DependencyType.CALL, a.id, b.id))

        export = store.export_graph(PROJECT)

        assert export["metadata"]["project_id"] == PROJECT
        assert export["metadata"]["total_components"] == 2
        assert export["metadata"]["total_dependencies"] == 1
        assert [c["module_name"] for c in export["components"]] == ["App.A", "App.B"]
        assert export["graph_metadata"]["most_depended_upon"] == [
            {"module_name": "App.B", "dependent_count": 1}
        ]

    def test_clear(self, store):
        _upsert(store, "App.A")
        store.clear()
        assert store.list_components(PROJECT) == []

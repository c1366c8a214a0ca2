# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for parent/child hierarchy trees."""

from archgraph import hierarchy_tree
from archgraph.models import NOT_LOADED, Component

PROJECT = "proj-1"


def _component(module_name, parent=None):
    return Component.new(
        PROJECT, module_name, parent_component_id=parent.id if parent is not None else None
    )


def _family():
    root = _component("App")
    accounts = _component("App.Accounts", root)
    user = _component("App.Accounts.User", accounts)
    billing = _component("App.Billing", root)
    return root, accounts, user, billing


class TestBuildAll:
    """Tests for build_all()."""

    def test_empty(self):
        result = hierarchy_tree.build_all([])
        assert result.components == []
        assert not result.had_cycle

    def test_returns_nested_roots(self):
        root, accounts, user, billing = _family()
        result = hierarchy_tree.build_all([user, billing, accounts, root])

        assert [c.id for c in result.components] == [root.id]
        tree = result.root
        assert [c.id for c in tree.child_components] == [billing.id, accounts.id]
        nested_accounts = tree.child_components[1]
        assert [c.id for c in nested_accounts.child_components] == [user.id]
        assert nested_accounts.child_components[0].child_components == []

    def test_ignores_preloaded_child_lists(self):
        """Children come from parent ids, never from the association."""
        root, accounts, _, _ = _family()
        stale = root.with_changes(child_components=[])
        result = hierarchy_tree.build_all([stale, accounts])
        assert [c.id for c in result.root.child_components] == [accounts.id]

    def test_idempotent(self):
        components = list(_family())
        first = hierarchy_tree.build_all(components)
        second = hierarchy_tree.build_all(components)
        assert [c.to_dict() for c in first.components] == [c.to_dict() for c in second.components]

    def test_inputs_not_mutated(self):
        components = list(_family())
        hierarchy_tree.build_all(components)
        assert all(c.child_components is NOT_LOADED for c in components)


class TestBuildOne:
    """Tests for build_one()."""

    def test_subtree(self):
        root, accounts, user, billing = _family()
        result = hierarchy_tree.build_one(accounts, [root, accounts, user, billing])
        assert result.root.id == accounts.id
        assert [c.id for c in result.root.child_components] == [user.id]

    def test_cycle_is_broken(self):
        a = Component.new(PROJECT, "App.A")
        b = Component.new(PROJECT, "App.B", parent_component_id=a.id)
        a = a.with_changes(parent_component_id=b.id)

        result = hierarchy_tree.build_one(a, [a, b])

        nested_b = result.root.child_components[0]
        assert nested_b.id == b.id
        assert nested_b.child_components[0].id == a.id
        assert nested_b.child_components[0].child_components == []
        assert result.had_cycle
        assert result.cycle_ids == [a.id]


class TestTraversals:
    """Tests for descendants(), path_to_root() and is_ancestor()."""

    def test_descendants(self):
        root, accounts, user, billing = _family()
        everything = [root, accounts, user, billing]
        found = hierarchy_tree.descendants(root, everything)
        assert sorted(c.id for c in found) == sorted([accounts.id, user.id, billing.id])
        assert hierarchy_tree.descendants(user, everything) == []

    def test_descendants_visit_each_node_once_on_cycle(self):
        a = Component.new(PROJECT, "App.A")
        b = Component.new(PROJECT, "App.B", parent_component_id=a.id)
        a = a.with_changes(parent_component_id=b.id)
        found = hierarchy_tree.descendants(a, [a, b])
        assert [c.id for c in found] == [b.id]

    def test_path_to_root(self):
        root, accounts, user, billing = _family()
        path = hierarchy_tree.path_to_root(user, [root, accounts, user, billing])
        assert [c.id for c in path] == [root.id, accounts.id, user.id]

    def test_path_to_root_stops_at_missing_parent(self):
        root, accounts, user, _ = _family()
        path = hierarchy_tree.path_to_root(user, [accounts, user])
        assert [c.id for c in path] == [accounts.id, user.id]

    def test_path_to_root_of_root(self):
        root = _component("App")
        assert hierarchy_tree.path_to_root(root, [root]) == [root]

    def test_is_ancestor(self):
        root, accounts, user, billing = _family()
        everything = [root, accounts, user, billing]
        assert hierarchy_tree.is_ancestor(root, user, everything)
        assert hierarchy_tree.is_ancestor(accounts, user, everything)
        assert not hierarchy_tree.is_ancestor(billing, user, everything)
        assert not hierarchy_tree.is_ancestor(user, user, everything)

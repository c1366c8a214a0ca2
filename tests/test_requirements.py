# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for the requirement registry and checkers."""

from archgraph.models import (
    NOT_LOADED,
    Component,
    ComponentStatus,
    ComponentType,
    Requirement,
)
from archgraph.requirements import (
    CHILDREN_COMPLETE,
    CHILDREN_DESIGNS,
    CHILDREN_TESTS,
    DEPENDENCIES_SATISFIED,
    DESIGN_FILE,
    TESTS_PASSING,
    HierarchicalChecker,
    RequirementSpec,
    RequirementType,
    check_requirement,
    check_requirements,
    get_type,
    requirements_for_type,
)

PROJECT = "proj-1"

EXPECTED = {
    "design_file": "docs/design/a.md",
    "code_file": "lib/a.ex",
    "test_file": "test/a_test.exs",
}


def _component(module_name="App.Thing", files=(), failing=(), **attrs):
    status = ComponentStatus.compute(EXPECTED, files, failing)
    return Component.new(PROJECT, module_name, component_status=status, **attrs)


def _requirement(name, satisfied):
    return Requirement(name=name, type="file_existence", description="", satisfied=satisfied)


class TestRegistry:
    """Tests for per-type requirement specs."""

    def test_default_requirements(self):
        names = [spec.name for spec in requirements_for_type(ComponentType.MODULE)]
        assert names == ["design_file", "test_file", "implementation_file", "tests_passing"]

    def test_context_requirements_include_dependencies_and_children(self):
        names = [spec.name for spec in requirements_for_type(ComponentType.CONTEXT)]
        assert DEPENDENCIES_SATISFIED in names
        assert CHILDREN_DESIGNS in names

    def test_schema_requires_only_files(self):
        names = [spec.name for spec in requirements_for_type(ComponentType.SCHEMA)]
        assert names == ["design_file", "implementation_file"]

    def test_unknown_type_falls_back(self):
        assert get_type("gadget").display_name == "Unknown"
        assert get_type(None).requirements == get_type("gadget").requirements


class TestFileAndTestCheckers:
    """Tests for file existence and test status checks."""

    def test_all_satisfied(self):
        component = _component(files=EXPECTED.values())
        requirements = check_requirements(component)
        assert all(r.satisfied for r in requirements)
        assert requirements[0].type == RequirementType.FILE_EXISTENCE
        assert requirements[0].description == "Component design documentation exists"
        assert requirements[0].checked_at is not None

    def test_missing_design(self):
        component = _component(files=[EXPECTED["code_file"]])
        by_name = {r.name: r for r in check_requirements(component)}
        assert not by_name[DESIGN_FILE].satisfied
        assert by_name[DESIGN_FILE].details["reason"] == "design_file missing"
        assert by_name["implementation_file"].satisfied

    def test_failing_tests(self):
        component = _component(files=EXPECTED.values(), failing=["it fails"])
        by_name = {r.name: r for r in check_requirements(component)}
        assert not by_name[TESTS_PASSING].satisfied
        assert by_name[TESTS_PASSING].details["failing_tests"] == ["it fails"]

    def test_missing_status(self):
        component = Component.new(PROJECT, "App.Thing")
        requirements = check_requirements(component)
        assert not any(r.satisfied for r in requirements)
        assert requirements[0].details["reason"] == "Component status not computed"

    def test_include_and_exclude(self):
        component = _component(files=EXPECTED.values())
        included = check_requirements(component, include=[TESTS_PASSING])
        assert [r.name for r in included] == [TESTS_PASSING]
        excluded = check_requirements(component, exclude=[TESTS_PASSING, DESIGN_FILE])
        assert [r.name for r in excluded] == ["test_file", "implementation_file"]


class TestDependencyChecker:
    """Tests for dependencies_satisfied."""

    def _check(self, component):
        return check_requirements(component, include=[DEPENDENCIES_SATISFIED])[0]

    def test_no_dependencies(self):
        context = _component(type=ComponentType.CONTEXT)
        assert self._check(context).satisfied

    def test_satisfied_dependencies(self):
        dep = Component.new(PROJECT, "App.Dep", requirements=[_requirement(DESIGN_FILE, True)])
        context = _component(type=ComponentType.CONTEXT, dependencies=[dep])
        assert self._check(context).satisfied

    def test_unsatisfied_or_unchecked_dependencies(self):
        failing = Component.new(PROJECT, "App.Bad", requirements=[_requirement(DESIGN_FILE, False)])
        unchecked = Component.new(PROJECT, "App.Unchecked")
        context = _component(type=ComponentType.CONTEXT, dependencies=[failing, unchecked])

        requirement = self._check(context)

        assert not requirement.satisfied
        assert requirement.details["unsatisfied"] == ["App.Bad", "App.Unchecked"]


class TestHierarchicalChecker:
    """Tests for children_* requirements."""

    def _check(self, name, component):
        return check_requirement(RequirementSpec(name, HierarchicalChecker()), component)

    def test_children_not_loaded(self):
        component = _component(child_components=NOT_LOADED)
        requirement = self._check(CHILDREN_DESIGNS, component)
        assert not requirement.satisfied
        assert requirement.details["reason"] == "Child components not loaded"
        assert requirement.type == RequirementType.HIERARCHY

    def test_no_children(self):
        requirement = self._check(CHILDREN_DESIGNS, _component(child_components=[]))
        assert requirement.satisfied
        assert requirement.details["count"] == 0

    def test_children_checked_recursively(self):
        grandchild = Component.new(
            PROJECT, "App.A.B", requirements=[_requirement(DESIGN_FILE, False)]
        )
        child = Component.new(
            PROJECT,
            "App.A",
            requirements=[_requirement(DESIGN_FILE, True)],
            child_components=[grandchild],
        )
        parent = _component("App", child_components=[child])

        assert not self._check(CHILDREN_DESIGNS, parent).satisfied

        fixed = grandchild.with_changes(requirements=[_requirement(DESIGN_FILE, True)])
        child = child.with_changes(child_components=[fixed])
        parent = parent.with_changes(child_components=[child])
        assert self._check(CHILDREN_DESIGNS, parent).satisfied

    def test_children_tests(self):
        child = Component.new(PROJECT, "App.A", requirements=[_requirement(DESIGN_FILE, True)])
        parent = _component("App", child_components=[child])
        requirement = self._check(CHILDREN_TESTS, parent)
        assert not requirement.satisfied
        assert requirement.details["reason"] == "Some child components missing test_file"

    def test_children_complete(self):
        done = Component.new(PROJECT, "App.A", requirements=[_requirement(DESIGN_FILE, True)])
        unchecked = Component.new(PROJECT, "App.B")
        assert self._check(CHILDREN_COMPLETE, _component("App", child_components=[done])).satisfied
        assert not self._check(
            CHILDREN_COMPLETE, _component("App", child_components=[done, unchecked])
        ).satisfied

    def test_unknown_name(self):
        requirement = self._check("children_reviews", _component(child_components=[]))
        assert not requirement.satisfied
        assert requirement.details["reason"] == "Invalid hierarchical requirement type"

# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Requirement registry and checkers.

Every component type has an ordered list of requirement specs. A spec names
the requirement, the checker that evaluates it, and (optionally) the workflow
that can satisfy it. Checking a component runs each spec's checker and
returns Requirement records with the computed satisfaction.

Checkers are stateless plugins:
- FileExistenceChecker: design, implementation and test files exist
- TestStatusChecker: the component's tests pass
- DependencyChecker: every loaded dependency has all requirements satisfied
- HierarchicalChecker: child components satisfy a requirement (recursively)

Checkers never raise on missing data. Missing status, unloaded children and
unloaded dependency requirements all yield an unsatisfied requirement with a
``reason`` in its details.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from archgraph.models import (
    Component,
    ComponentType,
    Requirement,
    TestStatus,
    is_loaded,
    loaded_or_empty,
)

logger = logging.getLogger(__name__)

# Requirement names
DESIGN_FILE = "design_file"
IMPLEMENTATION_FILE = "implementation_file"
TEST_FILE = "test_file"
TESTS_PASSING = "tests_passing"
DEPENDENCIES_SATISFIED = "dependencies_satisfied"
CHILDREN_DESIGNS = "children_designs"
CHILDREN_IMPLEMENTATIONS = "children_implementations"
CHILDREN_TESTS = "children_tests"
CHILDREN_COMPLETE = "children_complete"

CheckResult = Tuple[bool, Dict[str, Any]]


class RequirementType:
    """Categories of requirements."""

    FILE_EXISTENCE = "file_existence"
    TEST_STATUS = "test_status"
    DEPENDENCIES_SATISFIED = "dependencies_satisfied"
    HIERARCHY = "hierarchy"


class RequirementChecker(ABC):
    """Abstract base class for requirement checkers."""

    @abstractmethod
    def check(self, spec: "RequirementSpec", component: Component) -> CheckResult:
        """Evaluate one requirement against a component.

        Returns:
            Tuple of (satisfied, details). Must not raise for missing data.
        """
        pass

    @abstractmethod
    def requirement_type(self) -> str:
        """Return the RequirementType produced by this checker."""
        pass

    def describe(self, name: str) -> str:
        """Human-readable description of a requirement name."""
        return f"Requirement {name} is satisfied"


class FileExistenceChecker(RequirementChecker):
    """Checks that one of the component's expected files exists."""

    _FLAGS = {
        DESIGN_FILE: "design_exists",
        IMPLEMENTATION_FILE: "code_exists",
        TEST_FILE: "test_exists",
    }

    _DESCRIPTIONS = {
        DESIGN_FILE: "Component design documentation exists",
        IMPLEMENTATION_FILE: "Component implementation file exists",
        TEST_FILE: "Component test file exists",
    }

    def check(self, spec: "RequirementSpec", component: Component) -> CheckResult:
        status = component.component_status
        if status is None:
            return False, {"reason": "Component status not computed"}

        flag = self._FLAGS.get(spec.name)
        if flag is None:
            logger.error(f"FileExistenceChecker was passed an unknown requirement {spec.name}")
            return False, {"reason": "Invalid file requirement"}

        exists = getattr(status, flag)
        if exists:
            return True, {"status": f"{spec.name} exists"}
        return False, {"reason": f"{spec.name} missing"}

    def requirement_type(self) -> str:
        return RequirementType.FILE_EXISTENCE

    def describe(self, name: str) -> str:
        return self._DESCRIPTIONS.get(name, super().describe(name))


class TestStatusChecker(RequirementChecker):
    """Checks that the component's tests pass."""

    __test__ = False  # not a pytest test class

    def check(self, spec: "RequirementSpec", component: Component) -> CheckResult:
        status = component.component_status
        if status is None:
            return False, {"reason": "Component status not computed"}
        if status.test_status == TestStatus.PASSING:
            return True, {"status": "Tests passing"}
        return False, {
            "reason": f"Tests {status.test_status}",
            "failing_tests": list(status.failing_tests),
        }

    def requirement_type(self) -> str:
        return RequirementType.TEST_STATUS

    def describe(self, name: str) -> str:
        return "Component tests are passing"


class DependencyChecker(RequirementChecker):
    """Checks that every dependency has all of its requirements satisfied."""

    def check(self, spec: "RequirementSpec", component: Component) -> CheckResult:
        dependencies = loaded_or_empty(component.dependencies)
        if not dependencies:
            return True, {"status": "No dependencies to check", "count": 0}

        unsatisfied = [dep.module_name for dep in dependencies if not _fully_complete(dep)]
        if unsatisfied:
            return False, {
                "reason": "Some dependencies are not satisfied",
                "unsatisfied": unsatisfied,
            }
        return True, {"status": "All dependencies satisfied", "count": len(dependencies)}

    def requirement_type(self) -> str:
        return RequirementType.DEPENDENCIES_SATISFIED

    def describe(self, name: str) -> str:
        return "All component dependencies are satisfied"


class HierarchicalChecker(RequirementChecker):
    """Checks requirements across child components, recursively."""

    _CHILD_REQUIREMENT = {
        CHILDREN_DESIGNS: DESIGN_FILE,
        CHILDREN_IMPLEMENTATIONS: IMPLEMENTATION_FILE,
        CHILDREN_TESTS: TEST_FILE,
    }

    _DESCRIPTIONS = {
        CHILDREN_DESIGNS: "All child component design files exist",
        CHILDREN_IMPLEMENTATIONS: "All child component implementation files exist",
        CHILDREN_TESTS: "All child component test files exist",
        CHILDREN_COMPLETE: "All child components are fully implemented and tested",
    }

    def check(self, spec: "RequirementSpec", component: Component) -> CheckResult:
        if spec.name != CHILDREN_COMPLETE and spec.name not in self._CHILD_REQUIREMENT:
            logger.error(f"HierarchicalChecker was passed an unknown requirement {spec.name}")
            return False, {"reason": "Invalid hierarchical requirement type"}

        if not is_loaded(component.child_components):
            logger.debug(
                f"Child components not loaded for {component.module_name}, "
                f"cannot check {spec.name}"
            )
            return False, {"reason": "Child components not loaded"}

        children = loaded_or_empty(component.child_components)
        if not children:
            return True, {"status": "No child components to check", "count": 0}

        if spec.name == CHILDREN_COMPLETE:
            if all(_fully_complete(child) for child in _walk(children)):
                return True, {"status": "All child components fully complete"}
            return False, {"reason": "Some child components not fully complete"}

        required = self._CHILD_REQUIREMENT[spec.name]
        if all(_has_satisfied(child, required) for child in _walk(children)):
            return True, {"status": f"All child components have required {required}"}
        return False, {"reason": f"Some child components missing {required}"}

    def requirement_type(self) -> str:
        return RequirementType.HIERARCHY

    def describe(self, name: str) -> str:
        return self._DESCRIPTIONS.get(name, f"Hierarchical requirement {name} is satisfied")


def _walk(children: List[Component]) -> Iterable[Component]:
    """Children and their loaded descendants, depth-first."""
    for child in children:
        yield child
        yield from _walk(loaded_or_empty(child.child_components))


def _has_satisfied(component: Component, name: str) -> bool:
    requirements = loaded_or_empty(component.requirements)
    return any(req.name == name and req.satisfied for req in requirements)


def _fully_complete(component: Component) -> bool:
    if not is_loaded(component.requirements):
        return False
    return all(req.satisfied for req in loaded_or_empty(component.requirements))


@dataclass(frozen=True)
class RequirementSpec:
    """Registry entry: a named requirement and the checker that evaluates it."""

    name: str
    checker: RequirementChecker
    satisfied_by: Optional[str] = None  # workflow able to satisfy the requirement


@dataclass(frozen=True)
class TypeDefinition:
    """Requirements and display metadata for one component type."""

    display_name: str
    description: str
    requirements: Tuple[RequirementSpec, ...] = ()


_FILES = FileExistenceChecker()
_TESTS = TestStatusChecker()
_DEPENDENCIES = DependencyChecker()
_HIERARCHY = HierarchicalChecker()

_DESIGN_FILE = RequirementSpec(DESIGN_FILE, _FILES, "ComponentDesignSessions")
_CONTEXT_DESIGN_FILE = RequirementSpec(DESIGN_FILE, _FILES, "ContextDesignSessions")
_IMPLEMENTATION_FILE = RequirementSpec(IMPLEMENTATION_FILE, _FILES, "ComponentCodingSessions")
_TEST_FILE = RequirementSpec(TEST_FILE, _FILES, "ComponentTestSessions")
_TESTS_PASSING = RequirementSpec(TESTS_PASSING, _TESTS)
_DEPENDENCIES_SATISFIED = RequirementSpec(DEPENDENCIES_SATISFIED, _DEPENDENCIES)
_CHILDREN_DESIGNS = RequirementSpec(
    CHILDREN_DESIGNS, _HIERARCHY, "ContextComponentsDesignSessions"
)
_CHILDREN_IMPLEMENTATIONS = RequirementSpec(
    CHILDREN_IMPLEMENTATIONS, _HIERARCHY, "ContextCodingSessions"
)

DEFAULT_REQUIREMENTS = (_DESIGN_FILE, _TEST_FILE, _IMPLEMENTATION_FILE, _TESTS_PASSING)

CONTEXT_REQUIREMENTS = (
    _CONTEXT_DESIGN_FILE,
    _CHILDREN_DESIGNS,
    _CHILDREN_IMPLEMENTATIONS,
    _DEPENDENCIES_SATISFIED,
    _IMPLEMENTATION_FILE,
    _TEST_FILE,
    _TESTS_PASSING,
)

TYPE_DEFINITIONS: Dict[str, TypeDefinition] = {
    ComponentType.MODULE: TypeDefinition(
        "Module", "General purpose module", DEFAULT_REQUIREMENTS
    ),
    ComponentType.GENSERVER: TypeDefinition(
        "GenServer",
        "Stateful process that handles requests and maintains state",
        DEFAULT_REQUIREMENTS,
    ),
    ComponentType.CONTEXT: TypeDefinition(
        "Context", "Application domain boundary providing public API", CONTEXT_REQUIREMENTS
    ),
    ComponentType.COORDINATION_CONTEXT: TypeDefinition(
        "Coordination Context",
        "Context that coordinates between multiple domains",
        CONTEXT_REQUIREMENTS,
    ),
    ComponentType.SCHEMA: TypeDefinition(
        "Schema",
        "Data structure definition with validation rules",
        (_DESIGN_FILE, _IMPLEMENTATION_FILE),
    ),
    ComponentType.REPOSITORY: TypeDefinition(
        "Repository", "Data access layer abstracting database operations", DEFAULT_REQUIREMENTS
    ),
    ComponentType.TASK: TypeDefinition(
        "Task", "Background job or one-time operation", DEFAULT_REQUIREMENTS
    ),
    ComponentType.REGISTRY: TypeDefinition(
        "Registry", "Process registry for dynamic process lookup", DEFAULT_REQUIREMENTS
    ),
    ComponentType.BEHAVIOUR: TypeDefinition(
        "Behaviour",
        "Behaviour that defines callbacks for other modules",
        (_DESIGN_FILE, _IMPLEMENTATION_FILE),
    ),
    ComponentType.LIVE_VIEW: TypeDefinition(
        "LiveView", "Interactive server-rendered view", DEFAULT_REQUIREMENTS
    ),
    ComponentType.OTHER: TypeDefinition("Other", "Custom component type", DEFAULT_REQUIREMENTS),
}

UNKNOWN_TYPE = TypeDefinition("Unknown", "Component type not yet defined", DEFAULT_REQUIREMENTS)


def get_type(component_type: Optional[str]) -> TypeDefinition:
    """Type definition for a component type; unknown types get the defaults."""
    if component_type is None:
        return UNKNOWN_TYPE
    return TYPE_DEFINITIONS.get(component_type, UNKNOWN_TYPE)


def requirements_for_type(component_type: Optional[str]) -> List[RequirementSpec]:
    """Ordered requirement specs for a component type."""
    return list(get_type(component_type).requirements)


def check_requirement(spec: RequirementSpec, component: Component) -> Requirement:
    """Run one spec's checker and wrap the outcome in a Requirement."""
    satisfied, details = spec.checker.check(spec, component)
    return Requirement(
        name=spec.name,
        type=spec.checker.requirement_type(),
        description=spec.checker.describe(spec.name),
        satisfied=satisfied,
        satisfied_by=spec.satisfied_by,
        checked_at=datetime.now(timezone.utc),
        details=details,
    )


def check_requirements(
    component: Component,
    include: Optional[Iterable[str]] = None,
    exclude: Optional[Iterable[str]] = None,
) -> List[Requirement]:
    """Check every requirement registered for the component's type.

    Args:
        component: Component with ``component_status`` (and, for dependency
            or hierarchy requirements, the relevant associations) attached.
        include: If given, only these requirement names are checked.
        exclude: Requirement names to skip.

    Returns:
        Requirements in registry order.
    """
    included = set(include) if include is not None else None
    excluded = set(exclude or [])

    results = []
    for spec in requirements_for_type(component.type):
        if included is not None and spec.name not in included:
            continue
        if spec.name in excluded:
            continue
        results.append(check_requirement(spec, component))
    return results

# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for the architecture graph.

This module defines the foundational data structures used throughout the system:
- ComponentType / DependencyType / TestStatus / NextAction: string constants
- Component: a node in the architecture graph (one module or context)
- Dependency: a typed, directed edge between two components
- ComponentStatus: file/test facts and the readiness state machine
- Requirement: a checked requirement attached to a component

Associations that a caller did not load are represented by the NOT_LOADED
sentinel. Every consumer treats NOT_LOADED as an empty collection, never as
an error.

All models use JSON-compatible primitives for serialization.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

# Fixed namespace for component identities. Changing it changes every id.
COMPONENT_NAMESPACE = uuid.UUID("8b6f3c1e-4d2a-5e7f-9a01-3c5d7e9f1b24")

MODULE_NAME_PATTERN = re.compile(r"^[A-Z][a-zA-Z0-9_.]*$")
MAX_NAME_LENGTH = 255


class ComponentValidationError(ValueError):
    """Raised when a component or dependency violates a structural invariant."""

    pass


class _NotLoaded:
    """Marker for an association the caller did not load."""

    _instance: Optional["_NotLoaded"] = None

    def __new__(cls) -> "_NotLoaded":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_LOADED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> "_NotLoaded":
        return self

    def __deepcopy__(self, memo: Dict[int, Any]) -> "_NotLoaded":
        return self


NOT_LOADED: Any = _NotLoaded()


def is_loaded(value: Any) -> bool:
    """Return True if an association value was loaded by the caller."""
    return value is not NOT_LOADED


def loaded_or_empty(value: Any) -> List[Any]:
    """Return the association as a list, treating NOT_LOADED and None as empty."""
    if value is NOT_LOADED or value is None:
        return []
    return list(value)


class ComponentType:
    """Types of architectural components.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    MODULE = "module"  # generic module
    GENSERVER = "genserver"  # stateful process
    CONTEXT = "context"
    COORDINATION_CONTEXT = "coordination_context"
    SCHEMA = "schema"
    REPOSITORY = "repository"
    TASK = "task"
    REGISTRY = "registry"
    BEHAVIOUR = "behaviour"
    LIVE_VIEW = "live_view"  # UI view
    OTHER = "other"

    ALL = (
        MODULE,
        GENSERVER,
        CONTEXT,
        COORDINATION_CONTEXT,
        SCHEMA,
        REPOSITORY,
        TASK,
        REGISTRY,
        BEHAVIOUR,
        LIVE_VIEW,
        OTHER,
    )

    CONTEXT_TYPES = (CONTEXT, COORDINATION_CONTEXT)


class DependencyType:
    """Types of dependency edges between components."""

    REQUIRE = "require"
    IMPORT = "import"
    ALIAS = "alias"
    USE = "use"
    CALL = "call"
    OTHER = "other"

    ALL = (REQUIRE, IMPORT, ALIAS, USE, CALL, OTHER)


class TestStatus:
    """Outcome of a component's test file."""

    __test__ = False  # not a pytest test class

    PASSING = "passing"
    FAILING = "failing"
    NOT_RUN = "not_run"

    ALL = (PASSING, FAILING, NOT_RUN)


class NextAction:
    """Recommended next step for a component."""

    CREATE_DESIGN = "create_design"
    IMPLEMENT_CODE = "implement_code"
    WRITE_TESTS = "write_tests"
    FIX_TESTS = "fix_tests"
    COMPLETE = "complete"


def component_id(project_id: str, module_name: str) -> str:
    """Derive the stable identity of a component.

    The id is a v5 UUID over ``project:<project_id>:module:<module_name>``,
    so the same module in the same project always gets the same id.

    Args:
        project_id: Identifier of the owning project.
        module_name: Fully-qualified module name.

    Returns:
        UUID string.
    """
    return str(uuid.uuid5(COMPONENT_NAMESPACE, f"project:{project_id}:module:{module_name}"))


def _datetime_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _datetime_from_str(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Dependency:
    """Directed edge meaning "source references target".

    Immutable once created; the only lifecycle operation is deletion.
    """

    type: str
    source_component_id: str
    target_component_id: str

    def __post_init__(self) -> None:
        if self.type not in DependencyType.ALL:
            raise ComponentValidationError(f"Unknown dependency type: {self.type!r}")
        if self.source_component_id == self.target_component_id:
            raise ComponentValidationError(
                f"Component {self.source_component_id} cannot depend on itself"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "type": self.type,
            "source_component_id": self.source_component_id,
            "target_component_id": self.target_component_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Dependency":
        """Deserialize from JSON-compatible dict."""
        return cls(
            type=data["type"],
            source_component_id=data["source_component_id"],
            target_component_id=data["target_component_id"],
        )


@dataclass
class ComponentStatus:
    """File and test facts for one component, plus the readiness state machine.

    A value object: it is attached to a component at query time and is not
    addressable on its own.
    """

    design_exists: bool = False
    code_exists: bool = False
    test_exists: bool = False
    test_status: str = TestStatus.NOT_RUN
    expected_files: Dict[str, str] = field(default_factory=dict)
    actual_files: List[str] = field(default_factory=list)
    failing_tests: List[str] = field(default_factory=list)
    computed_at: Optional[datetime] = None

    @classmethod
    def compute(
        cls,
        expected_files: Dict[str, str],
        actual_files: Iterable[str],
        failing_tests: Iterable[str],
    ) -> "ComponentStatus":
        """Build a status from expected paths, discovered files and failing tests.

        Args:
            expected_files: Map with ``design_file``, ``code_file`` and
                ``test_file`` keys.
            actual_files: Discovered file paths (any superset of the matches).
            failing_tests: Titles of failing tests that belong to this
                component's test file.

        Returns:
            ComponentStatus with ``computed_at`` set to now (UTC).
        """
        present = set(actual_files)
        failing = list(failing_tests)
        design_file = expected_files.get("design_file")
        code_file = expected_files.get("code_file")
        test_file = expected_files.get("test_file")

        return cls(
            design_exists=design_file in present,
            code_exists=code_file in present,
            test_exists=test_file in present,
            test_status=cls.determine_test_status(failing, present, test_file),
            expected_files=dict(expected_files),
            actual_files=[path for path in expected_files.values() if path in present],
            failing_tests=failing,
            computed_at=datetime.now(timezone.utc),
        )

    @staticmethod
    def determine_test_status(
        failing_tests: List[str], actual_files: Iterable[str], test_file: Optional[str]
    ) -> str:
        """Derive the test status from test file presence and failures."""
        if test_file is None or test_file not in set(actual_files):
            return TestStatus.NOT_RUN
        if failing_tests:
            return TestStatus.FAILING
        return TestStatus.PASSING

    def next_action(self) -> str:
        """Return the next recommended action (first match wins)."""
        if not self.design_exists:
            return NextAction.CREATE_DESIGN
        if not self.code_exists:
            return NextAction.IMPLEMENT_CODE
        if not self.test_exists:
            return NextAction.WRITE_TESTS
        if self.test_status == TestStatus.FAILING:
            return NextAction.FIX_TESTS
        return NextAction.COMPLETE

    def ready_for_work(self) -> bool:
        """Return True if the component has a pending development step."""
        return self.next_action() != NextAction.COMPLETE

    def fully_satisfied(self) -> bool:
        """Return True if design, code and tests exist and tests pass."""
        return (
            self.design_exists
            and self.code_exists
            and self.test_exists
            and self.test_status == TestStatus.PASSING
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "design_exists": self.design_exists,
            "code_exists": self.code_exists,
            "test_exists": self.test_exists,
            "test_status": self.test_status,
            "expected_files": dict(self.expected_files),
            "actual_files": list(self.actual_files),
            "failing_tests": list(self.failing_tests),
            "computed_at": _datetime_to_str(self.computed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentStatus":
        """Deserialize from JSON-compatible dict."""
        return cls(
            design_exists=data.get("design_exists", False),
            code_exists=data.get("code_exists", False),
            test_exists=data.get("test_exists", False),
            test_status=data.get("test_status", TestStatus.NOT_RUN),
            expected_files=data.get("expected_files", {}),
            actual_files=data.get("actual_files", []),
            failing_tests=data.get("failing_tests", []),
            computed_at=_datetime_from_str(data.get("computed_at")),
        )


@dataclass
class Requirement:
    """A requirement of a component together with its computed satisfaction."""

    name: str
    type: str  # RequirementType value
    description: str
    satisfied: bool
    satisfied_by: Optional[str] = None  # workflow that can satisfy it, if any
    checked_at: Optional[datetime] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "satisfied": self.satisfied,
            "details": dict(self.details),
        }
        if self.satisfied_by is not None:
            result["satisfied_by"] = self.satisfied_by
        if self.checked_at is not None:
            result["checked_at"] = self.checked_at.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Requirement":
        """Deserialize from JSON-compatible dict."""
        return cls(
            name=data["name"],
            type=data["type"],
            description=data.get("description", ""),
            satisfied=data.get("satisfied", False),
            satisfied_by=data.get("satisfied_by"),
            checked_at=_datetime_from_str(data.get("checked_at")),
            details=dict(data.get("details", {})),
        )


@dataclass
class Component:
    """A node in the architecture graph: one module or context.

    ``dependencies``, ``child_components`` and ``requirements`` hold either a
    list or NOT_LOADED. Tree builders return copies via ``with_changes`` and
    never mutate the components they are given.
    """

    id: str
    name: str
    module_name: str
    type: str = ComponentType.MODULE
    project_id: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[int] = None
    synced_at: Optional[datetime] = None
    parent_component_id: Optional[str] = None

    # Associations
    dependencies: Any = NOT_LOADED  # List[Component] or NOT_LOADED
    child_components: Any = NOT_LOADED  # List[Component] or NOT_LOADED
    outgoing_dependencies: Any = NOT_LOADED  # List[Dependency] or NOT_LOADED
    requirements: Any = NOT_LOADED  # List[Requirement] or NOT_LOADED
    component_status: Optional[ComponentStatus] = None

    @classmethod
    def new(cls, project_id: str, module_name: str, **attrs: Any) -> "Component":
        """Create a component whose id is derived from project and module name.

        ``name`` defaults to the last segment of ``module_name``.
        """
        attrs.setdefault("name", module_name.split(".")[-1])
        return cls(
            id=component_id(project_id, module_name),
            module_name=module_name,
            project_id=project_id,
            **attrs,
        )

    def with_changes(self, **changes: Any) -> "Component":
        """Return a shallow copy with the given fields replaced."""
        return replace(self, **changes)

    def validate(self) -> None:
        """Check structural invariants.

        Raises:
            ComponentValidationError: If an invariant is violated.
        """
        if not self.name or len(self.name) > MAX_NAME_LENGTH:
            raise ComponentValidationError(
                f"name must be 1-{MAX_NAME_LENGTH} characters: {self.name!r}"
            )
        if not self.module_name or len(self.module_name) > MAX_NAME_LENGTH:
            raise ComponentValidationError(
                f"module_name must be 1-{MAX_NAME_LENGTH} characters: {self.module_name!r}"
            )
        if not MODULE_NAME_PATTERN.match(self.module_name):
            raise ComponentValidationError(
                f"module_name must be a valid module name: {self.module_name!r}"
            )
        if self.type not in ComponentType.ALL:
            raise ComponentValidationError(f"Unknown component type: {self.type!r}")
        if self.parent_component_id is not None and self.parent_component_id == self.id:
            raise ComponentValidationError(f"Component {self.id} cannot be its own parent")
        for dep in loaded_or_empty(self.dependencies):
            if dep.id == self.id:
                raise ComponentValidationError(f"Component {self.id} cannot depend on itself")

    def dependency_ids(self) -> List[str]:
        """Ids of loaded dependencies (empty when not loaded)."""
        return [dep.id for dep in loaded_or_empty(self.dependencies)]

    def to_dict(self, include_associations: bool = True) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict.

        Loaded associations are serialized recursively; NOT_LOADED ones are
        omitted.
        """
        result: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "module_name": self.module_name,
            "type": self.type,
        }
        if self.project_id is not None:
            result["project_id"] = self.project_id
        if self.description is not None:
            result["description"] = self.description
        if self.priority is not None:
            result["priority"] = self.priority
        if self.synced_at is not None:
            result["synced_at"] = self.synced_at.isoformat()
        if self.parent_component_id is not None:
            result["parent_component_id"] = self.parent_component_id
        if self.component_status is not None:
            result["component_status"] = self.component_status.to_dict()

        if include_associations:
            if is_loaded(self.dependencies):
                result["dependencies"] = [dep.to_dict() for dep in self.dependencies]
            if is_loaded(self.child_components):
                result["child_components"] = [child.to_dict() for child in self.child_components]
            if is_loaded(self.outgoing_dependencies):
                result["outgoing_dependencies"] = [
                    edge.to_dict() for edge in self.outgoing_dependencies
                ]
            if is_loaded(self.requirements):
                result["requirements"] = [req.to_dict() for req in self.requirements]
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Component":
        """Deserialize from JSON-compatible dict.

        Missing associations come back as NOT_LOADED.

        Raises:
            KeyError: If required fields are missing from data dict.
        """
        status = data.get("component_status")
        return cls(
            id=data["id"],
            name=data["name"],
            module_name=data["module_name"],
            type=data.get("type", ComponentType.MODULE),
            project_id=data.get("project_id"),
            description=data.get("description"),
            priority=data.get("priority"),
            synced_at=_datetime_from_str(data.get("synced_at")),
            parent_component_id=data.get("parent_component_id"),
            dependencies=(
                [cls.from_dict(d) for d in data["dependencies"]]
                if "dependencies" in data
                else NOT_LOADED
            ),
            child_components=(
                [cls.from_dict(c) for c in data["child_components"]]
                if "child_components" in data
                else NOT_LOADED
            ),
            outgoing_dependencies=(
                [Dependency.from_dict(e) for e in data["outgoing_dependencies"]]
                if "outgoing_dependencies" in data
                else NOT_LOADED
            ),
            requirements=(
                [Requirement.from_dict(r) for r in data["requirements"]]
                if "requirements" in data
                else NOT_LOADED
            ),
            component_status=ComponentStatus.from_dict(status) if status else None,
        )

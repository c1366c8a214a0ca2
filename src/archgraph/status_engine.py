# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Component status analysis.

Maps each component to the files it is expected to have, checks them
against the project's file list and the current test failures, and attaches
the resulting ComponentStatus. ``analyze_components`` then layers
requirement checks and dependency trees on top:

1. Compute each component's status from files and failures
2. Check local requirements (everything except dependency satisfaction)
3. Build nested dependency trees
4. Check dependency satisfaction against the nested, already-checked deps
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from archgraph import dependency_tree
from archgraph.config import Config
from archgraph.models import Component, ComponentStatus, is_loaded, loaded_or_empty
from archgraph.requirements import DEPENDENCIES_SATISFIED, check_requirements

logger = logging.getLogger(__name__)

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


@dataclass(frozen=True)
class TestFailure:
    """A failing test and the test file it lives in."""

    __test__ = False  # not a pytest test class

    full_title: str
    file: str


def underscore(module_name: str) -> str:
    """``MyApp.HTTPServer`` -> ``my_app/http_server``."""
    parts = []
    for segment in module_name.split("."):
        segment = _ACRONYM_BOUNDARY.sub(r"\1_\2", segment)
        segment = _WORD_BOUNDARY.sub(r"\1_\2", segment)
        parts.append(segment.lower())
    return "/".join(parts)


def module_to_path(module_name: str, project_module_name: Optional[str] = None) -> str:
    """Underscored path of a module, prefixed with the project's root module."""
    full_name = f"{project_module_name}.{module_name}" if project_module_name else module_name
    return underscore(full_name)


def expected_files_for(component: Component, config: Optional[Config] = None) -> Dict[str, str]:
    """Paths where a component's design, code and test files should live.

    Returns:
        Dict with ``design_file``, ``code_file`` and ``test_file`` keys, e.g.
        ``docs/design/my_app/accounts.md``, ``lib/my_app/accounts.ex`` and
        ``test/my_app/accounts_test.exs`` with default configuration.
    """
    config = config or Config.from_dict({})
    path = module_to_path(component.module_name, config.project_module_name)
    return {
        "design_file": f"{config.design_root}/{path}.md",
        "code_file": f"{config.impl_root}/{path}{config.code_extension}",
        "test_file": f"{config.test_root}/{path}{config.test_suffix}",
    }


def filter_failing_tests(
    expected_files: Dict[str, str], failures: Iterable[TestFailure]
) -> List[str]:
    """Titles of failures raised from the component's own test file."""
    test_file = expected_files.get("test_file")
    return [failure.full_title for failure in failures if failure.file == test_file]


def compute_status(
    component: Component,
    file_list: Iterable[str],
    failures: Iterable[TestFailure],
    config: Optional[Config] = None,
) -> Component:
    """Return a copy of ``component`` with its ComponentStatus attached."""
    expected = expected_files_for(component, config)
    failing = filter_failing_tests(expected, failures)
    status = ComponentStatus.compute(expected, file_list, failing)
    return component.with_changes(component_status=status)


def analyze_components(
    components: List[Component],
    file_list: Iterable[str],
    failures: Iterable[TestFailure],
    config: Optional[Config] = None,
) -> List[Component]:
    """Compute status, requirements and nested dependencies for components.

    Args:
        components: Components with dependency associations loaded.
        file_list: Relative paths of every file in the project.
        failures: Currently failing tests.
        config: Layout configuration; defaults apply when None.

    Returns:
        Analyzed components in dependency order, each with
        ``component_status``, ``requirements`` and nested ``dependencies``.
    """
    files = list(file_list)
    failure_list = list(failures)

    local = []
    for component in components:
        analyzed = compute_status(component, files, failure_list, config)
        requirements = check_requirements(analyzed, exclude=[DEPENDENCIES_SATISFIED])
        local.append(analyzed.with_changes(requirements=requirements))

    # Dependencies must carry their analyzed versions, not the raw inputs
    by_id = {c.id: c for c in local}
    relinked = [
        c.with_changes(
            dependencies=[by_id.get(dep.id, dep) for dep in loaded_or_empty(c.dependencies)]
        )
        if is_loaded(c.dependencies)
        else c
        for c in local
    ]
    tree = dependency_tree.build_all(relinked)

    result = []
    for component in tree.components:
        dependency_requirements = check_requirements(
            component, include=[DEPENDENCIES_SATISFIED]
        )
        result.append(
            component.with_changes(
                requirements=loaded_or_empty(component.requirements) + dependency_requirements
            )
        )

    logger.debug(f"Analyzed {len(result)} components")
    return result

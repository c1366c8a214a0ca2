# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for archgraph tests."""

from pathlib import Path
from typing import Callable, Dict

import pytest

from archgraph.config import Config
from archgraph.storage import InMemoryComponentStore

PROJECT_ID = "proj-1"


@pytest.fixture
def project_id() -> str:
    return PROJECT_ID


@pytest.fixture
def store() -> InMemoryComponentStore:
    return InMemoryComponentStore()


@pytest.fixture
def config() -> Config:
    """Default configuration, independent of the working directory."""
    return Config.from_dict({})


@pytest.fixture
def write_files(tmp_path: Path) -> Callable[[Dict[str, str]], Path]:
    """Write {relative path: content} under tmp_path and return tmp_path."""

    def _write(files: Dict[str, str]) -> Path:
        for relative, content in files.items():
            path = tmp_path / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return tmp_path

    return _write

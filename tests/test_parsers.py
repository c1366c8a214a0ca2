# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for spec and implementation file parsing."""

from datetime import datetime, timezone

import pytest

from archgraph.config import Config
from archgraph.models import ComponentType
from archgraph.parsers import (
    ModuleParser,
    ParsedModule,
    ParseError,
    camelize,
    derive_module_from_path,
    extract_h1_title,
    extract_intro_text,
    latest_mtime,
    type_from_namespace,
)
from archgraph.scanner import FileInfo

EARLY = datetime(2025, 1, 1, tzinfo=timezone.utc)
LATE = datetime(2025, 6, 1, tzinfo=timezone.utc)


class TestTypeFromNamespace:
    """Tests for type_from_namespace()."""

    @pytest.mark.parametrize(
        "module_name,expected",
        [
            ("App", ComponentType.CONTEXT),
            ("App.Accounts", ComponentType.CONTEXT),
            ("App.Accounts.User", ComponentType.MODULE),
            ("App.Accounts.User.Token", ComponentType.MODULE),
        ],
    )
    def test_depth(self, module_name, expected):
        assert type_from_namespace(module_name) == expected


class TestTextHelpers:
    """Tests for heading and path helpers."""

    def test_extract_h1_title(self):
        assert extract_h1_title("intro\n# My.App.Widgets\n\ntext") == "My.App.Widgets"

    def test_extract_h1_title_requires_module_like_heading(self):
        assert extract_h1_title("# not a module\n") is None
        assert extract_h1_title("## My.App\n") is None

    def test_extract_intro_text(self):
        content = "# My.App\n\nFirst line.\nSecond line.\n\n## Functions\n\nignored"
        assert extract_intro_text(content) == "First line.\nSecond line."

    def test_extract_intro_text_empty(self):
        assert extract_intro_text("# My.App\n\n## Functions\n") is None
        assert extract_intro_text("no heading here") is None

    def test_camelize(self):
        assert camelize("my_app") == "MyApp"
        assert camelize("widgets") == "Widgets"

    def test_derive_module_from_spec_path(self):
        derived = derive_module_from_path(
            "docs/spec/my_app/widgets.spec.md", "docs/spec", ".spec.md"
        )
        assert derived == "MyApp.Widgets"

    def test_derive_module_from_impl_path(self):
        assert derive_module_from_path("lib/my_app/user_token.ex", "lib", ".ex") == (
            "MyApp.UserToken"
        )


class TestMerge:
    """Tests for combining spec and impl records."""

    def test_latest_mtime(self):
        assert latest_mtime(None, LATE) == LATE
        assert latest_mtime(EARLY, None) == EARLY
        assert latest_mtime(EARLY, LATE) == LATE
        assert latest_mtime(LATE, EARLY) == LATE

    def test_merged_with_impl(self):
        spec = ParsedModule("App.Thing", ComponentType.MODULE, "From spec", "s.md", None, LATE)
        impl = ParsedModule("App.Thing", ComponentType.CONTEXT, None, None, "t.ex", EARLY)

        merged = spec.merged_with_impl(impl)

        assert merged.description == "From spec"
        assert merged.type == ComponentType.MODULE
        assert merged.spec_path == "s.md"
        assert merged.impl_path == "t.ex"
        assert merged.mtime == LATE


class TestModuleParser:
    """Tests for ModuleParser against real files."""

    @pytest.fixture
    def parser(self):
        return ModuleParser(Config.from_dict({}))

    def test_spec_with_heading(self, parser, write_files):
        base = write_files(
            {"docs/spec/widgets.spec.md": "# My.App.Widgets\n\nWidget intro.\n\n## API\n"}
        )
        info = FileInfo.from_path(base / "docs/spec/widgets.spec.md", base)

        record = parser.parse_spec_file(info)

        assert record.module_name == "My.App.Widgets"
        assert record.type == ComponentType.MODULE
        assert record.description == "Widget intro."
        assert record.spec_path == info.path
        assert record.impl_path is None
        assert record.mtime == info.mtime

    def test_spec_without_heading_uses_path(self, parser, write_files):
        base = write_files({"docs/spec/my_app/billing.spec.md": "no heading\n"})
        info = FileInfo.from_path(base / "docs/spec/my_app/billing.spec.md", base)

        record = parser.parse_spec_file(info)

        assert record.module_name == "MyApp.Billing"
        assert record.type == ComponentType.CONTEXT
        assert record.description is None

    def test_impl_with_declaration(self, parser, write_files):
        base = write_files(
            {"lib/my_app/accounts/user.ex": "defmodule MyApp.Accounts.User do\nend\n"}
        )
        info = FileInfo.from_path(base / "lib/my_app/accounts/user.ex", base)

        record = parser.parse_impl_file(info)

        assert record.module_name == "MyApp.Accounts.User"
        assert record.impl_path == info.path
        assert record.description is None

    def test_impl_without_declaration_uses_path(self, parser, write_files):
        base = write_files({"lib/my_app/helpers.ex": "# nothing declared\n"})
        info = FileInfo.from_path(base / "lib/my_app/helpers.ex", base)
        assert parser.parse_impl_file(info).module_name == "MyApp.Helpers"

    def test_invalid_utf8_raises(self, parser, tmp_path):
        path = tmp_path / "lib" / "bad.ex"
        path.parent.mkdir(parents=True)
        path.write_bytes(b"\xff\xfe\x00defmodule")
        with pytest.raises(UnicodeDecodeError):
            parser.parse_impl_file(FileInfo.from_path(path, tmp_path))

    def test_underivable_name_raises(self, parser, write_files):
        base = write_files({"lib/_.ex": "no module\n"})
        with pytest.raises(ParseError):
            parser.parse_impl_file(FileInfo.from_path(base / "lib/_.ex", base))

    def test_custom_declaration_pattern(self, write_files):
        parser = ModuleParser(
            Config.from_dict({"module_declaration_pattern": r"^module ([A-Z][\w.]*)$"})
        )
        base = write_files({"lib/x.ex": "module Custom.Name\n"})
        record = parser.parse_impl_file(FileInfo.from_path(base / "lib/x.ex", base))
        assert record.module_name == "Custom.Name"

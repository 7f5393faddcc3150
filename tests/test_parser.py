"""Tests for the tree-sitter backed C# declaration parser."""

from __future__ import annotations

import pytest

pytest.importorskip("tree_sitter")
pytest.importorskip("tree_sitter_c_sharp")

from chatstudio.index.models import SymbolKind  # noqa: E402
from chatstudio.index.parser import CSharpDeclarationParser  # noqa: E402

from tests.helpers import WORKER_SOURCE  # noqa: E402


def test_parse_reports_direct_members_in_source_order() -> None:
    declarations = CSharpDeclarationParser().parse(WORKER_SOURCE)

    assert [(item.kind, item.identifier) for item in declarations] == [
        (SymbolKind.CONSTRUCTOR, "Worker"),
        (SymbolKind.PROPERTY, "Count"),
        (SymbolKind.METHOD, "DoWork"),
        (SymbolKind.ENUM, "Mode"),
        (SymbolKind.DELEGATE, "Finished"),
    ]
    assert {item.container for item in declarations} == {"Worker"}


def test_member_text_spans_signature_through_closing_brace() -> None:
    declarations = CSharpDeclarationParser().parse(WORKER_SOURCE)
    do_work = next(item for item in declarations if item.identifier == "DoWork")

    assert do_work.text == "public void DoWork()\n        {\n            Count++;\n        }"


def test_nested_classes_report_their_own_members() -> None:
    source = """
class Outer
{
    void First() { }

    class Inner
    {
        void Second() { }
    }

    void Third() { }
}
"""
    declarations = CSharpDeclarationParser().parse(source)

    assert [(item.container, item.identifier) for item in declarations] == [
        ("Outer", "First"),
        ("Outer", "Third"),
        ("Inner", "Second"),
    ]


def test_members_inside_regions_are_found() -> None:
    source = """
class Panel
{
    #region Events
    public event System.EventHandler Clicked
    {
        add { }
        remove { }
    }
    #endregion

    public void Refresh() { }
}
"""
    identifiers = [item.identifier for item in CSharpDeclarationParser().parse(source)]

    assert "Clicked" in identifiers
    assert "Refresh" in identifiers


def test_fields_and_interfaces_are_not_members() -> None:
    source = """
interface IRunner { void Run(); }

class Holder
{
    private int _count;
    public event System.EventHandler Changed;
}
"""
    assert CSharpDeclarationParser().parse(source) == []


def test_parse_handles_non_ascii_text() -> None:
    source = 'class Greeter { string Hello() { return "héllo wörld"; } }'

    (declaration,) = CSharpDeclarationParser().parse(source)

    assert declaration.identifier == "Hello"
    assert declaration.text.endswith('return "héllo wörld"; }')

"""Source declaration parsing backed by tree-sitter's C# grammar."""

from __future__ import annotations

import logging
from typing import Any, Iterator, NamedTuple, Protocol, Sequence

import tree_sitter_c_sharp
from tree_sitter import Language, Node, Parser

from .models import SymbolKind

__all__ = [
    "Declaration",
    "DeclarationParser",
    "DeclarationParseError",
    "CSharpDeclarationParser",
]

LOGGER = logging.getLogger(__name__)

_MEMBER_NODE_KINDS: dict[str, SymbolKind] = {
    "method_declaration": SymbolKind.METHOD,
    "constructor_declaration": SymbolKind.CONSTRUCTOR,
    "property_declaration": SymbolKind.PROPERTY,
    "enum_declaration": SymbolKind.ENUM,
    "delegate_declaration": SymbolKind.DELEGATE,
    "event_declaration": SymbolKind.EVENT,
}

# Members inside #if/#region blocks are nested under these node types.
_PREPROC_WRAPPERS = frozenset(
    {
        "preproc_if",
        "preproc_ifdef",
        "preproc_elif",
        "preproc_else",
        "preproc_region",
    }
)

_CSHARP_LANGUAGE = Language(tree_sitter_c_sharp.language())


class Declaration(NamedTuple):
    """One class member found in a source file."""

    kind: SymbolKind
    identifier: str
    text: str
    container: str


class DeclarationParseError(ValueError):
    """Raised when a source file cannot be turned into a syntax tree."""


class DeclarationParser(Protocol):
    """Narrow parsing capability consumed by the indexer and the resolver."""

    def parse(self, source_text: str) -> Sequence[Declaration]:  # pragma: no cover - protocol stub
        ...


class CSharpDeclarationParser:
    """Extracts the direct members of every class declared in a C# file.

    Members are reported in source order. Each class contributes only its own
    members; nested classes are reported separately with their own name as
    ``container``.
    """

    def parse(self, source_text: str) -> list[Declaration]:
        try:
            source = source_text.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise DeclarationParseError("source text is not encodable as UTF-8") from exc
        # Parser objects are not thread-safe; the indexer and resolver run on different threads.
        parser = Parser(_CSHARP_LANGUAGE)
        tree = parser.parse(source)
        if tree is None:  # pragma: no cover - only when parsing is interrupted
            raise DeclarationParseError("tree-sitter returned no syntax tree")
        if tree.root_node.has_error:
            LOGGER.debug("C# source contains syntax errors; extracting what parsed cleanly")

        declarations: list[Declaration] = []
        for class_node in _iter_class_declarations(tree.root_node):
            class_name = _identifier(class_node, source)
            if not class_name:
                continue
            for member in _iter_members(class_node):
                kind = _MEMBER_NODE_KINDS.get(member.type)
                if kind is None:
                    continue
                name = _identifier(member, source)
                if not name:
                    continue
                declarations.append(
                    Declaration(
                        kind=kind,
                        identifier=name,
                        text=_node_text(member, source),
                        container=class_name,
                    )
                )
        return declarations


def _iter_class_declarations(root: Node) -> Iterator[Node]:
    pending: list[Node] = [root]
    while pending:
        node = pending.pop()
        if node.type == "class_declaration":
            yield node
        pending.extend(reversed(node.named_children))


def _iter_members(class_node: Node) -> Iterator[Node]:
    body = class_node.child_by_field_name("body")
    if body is None:
        body = next((child for child in class_node.named_children if child.type == "declaration_list"), None)
    if body is None:
        return
    pending: list[Node] = list(reversed(body.named_children))
    while pending:
        node = pending.pop()
        if node.type in _PREPROC_WRAPPERS:
            pending.extend(reversed(node.named_children))
            continue
        yield node


def _identifier(node: Node, source: bytes) -> str:
    name_node: Any = node.child_by_field_name("name")
    if name_node is None:
        return ""
    return _node_text(name_node, source).strip()


def _node_text(node: Node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

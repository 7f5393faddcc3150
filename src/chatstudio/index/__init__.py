"""Project symbol index: models, parsing, enumeration and background rebuilds."""

from .builder import IndexRefresher, SymbolIndex, SymbolIndexBuilder
from .models import IndexSnapshot, SymbolEntry, SymbolKind
from .parser import CSharpDeclarationParser, Declaration, DeclarationParseError
from .refresh import IndexRefreshConfig, IndexRefreshWorker
from .workspace import FileSystemWorkspace, ItemKind, ProjectItem, ProjectNode

__all__ = [
    "CSharpDeclarationParser",
    "Declaration",
    "DeclarationParseError",
    "FileSystemWorkspace",
    "IndexRefreshConfig",
    "IndexRefreshWorker",
    "IndexRefresher",
    "IndexSnapshot",
    "ItemKind",
    "ProjectItem",
    "ProjectNode",
    "SymbolEntry",
    "SymbolIndex",
    "SymbolIndexBuilder",
    "SymbolKind",
]

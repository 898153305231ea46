"""Tree-sitter backed languages and their symbol context provider.

Each built-in language knows which syntax nodes are outline items (functions,
classes, impls, mapping keys) and which field holds the item's name. The
provider reports the name of the innermost item around the cursor as the
``symbol`` variable.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping, Optional

import tree_sitter_python as tspython
import tree_sitter_rust as tsrust
import tree_sitter_typescript as tstypescript
import tree_sitter_yaml as tsyaml
from tree_sitter import Language as TsLanguage
from tree_sitter import Node, Parser

from taskscope.editor import ContextProvider, Language, Location
from taskscope.parser import TaskDefinition
from taskscope.variables import TaskVariables, VariableName

logger = logging.getLogger(__name__)

__all__ = [
    "SymbolContextProvider",
    "LanguageRegistry",
    "RUST",
    "TYPESCRIPT",
    "TSX",
    "PYTHON",
    "YAML",
    "builtin_languages",
]

# ---------------------------------------------------------------------------
# Outline items: node type -> field holding the item's name
# ---------------------------------------------------------------------------

_RUST_ITEMS = {
    "function_item": "name",
    "function_signature_item": "name",
    "struct_item": "name",
    "enum_item": "name",
    "trait_item": "name",
    "mod_item": "name",
    "impl_item": "type",
}

_TYPESCRIPT_ITEMS = {
    "function_declaration": "name",
    "generator_function_declaration": "name",
    "class_declaration": "name",
    "abstract_class_declaration": "name",
    "interface_declaration": "name",
    "method_definition": "name",
}

_PYTHON_ITEMS = {
    "function_definition": "name",
    "class_definition": "name",
}

_YAML_ITEMS = {
    "block_mapping_pair": "key",
}


def _node_text(node: Node) -> str:
    raw = node.text
    if isinstance(raw, (bytes, bytearray)):
        return raw.decode("utf-8", errors="replace")
    return str(raw) if raw else ""


def _child_at(node: Node, byte_offset: int) -> Optional[Node]:
    """The child containing the offset; the later sibling wins on a shared boundary."""
    for child in reversed(node.children):
        if child.start_byte <= byte_offset <= child.end_byte:
            return child
    return None


class SymbolContextProvider(ContextProvider):
    """Reports the innermost enclosing outline item as ``symbol``."""

    def __init__(
        self,
        language: TsLanguage,
        items: Mapping[str, str],
        tasks: Iterable[TaskDefinition] = (),
    ) -> None:
        self._parser = Parser(language)
        self._items = dict(items)
        self._tasks = list(tasks)

    def build_context(self, location: Location) -> TaskVariables:
        text = location.buffer.text()
        byte_offset = len(text[: location.start].encode("utf-8"))
        tree = self._parser.parse(text.encode("utf-8"))

        symbol = self.symbol_at(tree.root_node, byte_offset)
        if symbol is None:
            return TaskVariables()
        return TaskVariables([(VariableName.SYMBOL, symbol)])

    def symbol_at(self, root: Node, byte_offset: int) -> Optional[str]:
        innermost: Optional[Node] = None
        node: Optional[Node] = root
        while node is not None:
            if node.type in self._items:
                innermost = node
            node = _child_at(node, byte_offset)

        if innermost is None:
            return None
        name_node = innermost.child_by_field_name(self._items[innermost.type])
        if name_node is None:
            logger.debug("Outline item %s at byte %d has no name", innermost.type, byte_offset)
            return None
        name = _node_text(name_node).strip()
        # YAML keys may be quoted
        if len(name) >= 2 and name[0] == name[-1] and name[0] in "'\"":
            name = name[1:-1]
        return name or None

    def associated_tasks(self) -> list[TaskDefinition]:
        return list(self._tasks)


# ---------------------------------------------------------------------------
# Built-in languages
# ---------------------------------------------------------------------------

_RUST_TASKS = [
    TaskDefinition(label="cargo check", command="cargo", args=["check", "--all"]),
    TaskDefinition(
        label="cargo test symbol",
        command="cargo",
        args=["test", "{{ ctx.symbol }}"],
        cwd="{{ ctx.worktree_root }}",
    ),
]

_PYTHON_TASKS = [
    TaskDefinition(label="pytest file", command="python", args=["-m", "pytest", "{{ ctx.file }}"]),
    TaskDefinition(
        label="pytest symbol",
        command="python",
        args=["-m", "pytest", "{{ ctx.file }}", "-k", "{{ ctx.symbol }}"],
    ),
]

RUST = Language(
    name="Rust",
    extensions=(".rs",),
    context_provider=SymbolContextProvider(TsLanguage(tsrust.language()), _RUST_ITEMS, _RUST_TASKS),
)
TYPESCRIPT = Language(
    name="TypeScript",
    extensions=(".ts", ".mts", ".cts"),
    context_provider=SymbolContextProvider(
        TsLanguage(tstypescript.language_typescript()), _TYPESCRIPT_ITEMS
    ),
)
TSX = Language(
    name="TSX",
    extensions=(".tsx",),
    context_provider=SymbolContextProvider(TsLanguage(tstypescript.language_tsx()), _TYPESCRIPT_ITEMS),
)
PYTHON = Language(
    name="Python",
    extensions=(".py", ".pyi"),
    context_provider=SymbolContextProvider(TsLanguage(tspython.language()), _PYTHON_ITEMS, _PYTHON_TASKS),
)
YAML = Language(
    name="YAML",
    extensions=(".yaml", ".yml"),
    context_provider=SymbolContextProvider(TsLanguage(tsyaml.language()), _YAML_ITEMS),
)


def builtin_languages() -> list[Language]:
    return [RUST, TYPESCRIPT, TSX, PYTHON, YAML]


class LanguageRegistry:
    """Maps files to languages by extension. First registered match wins."""

    def __init__(self, languages: Iterable[Language] = ()) -> None:
        self._languages: list[Language] = list(languages)

    @classmethod
    def with_builtins(cls) -> "LanguageRegistry":
        return cls(builtin_languages())

    def add(self, language: Language) -> None:
        self._languages.append(language)

    def by_name(self, name: str) -> Optional[Language]:
        for language in self._languages:
            if language.name.lower() == name.lower():
                return language
        return None

    def language_for_path(self, path: Path) -> Optional[Language]:
        for language in self._languages:
            if language.matches(path):
                return language
        return None

    def __iter__(self):
        return iter(self._languages)

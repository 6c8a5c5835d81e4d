"""Syntax-tree extraction of step-definition registrations from TS/JS sources."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

import tree_sitter as ts
import tree_sitter_javascript
import tree_sitter_typescript
from rich.console import Console

from cukedash.models import DefinitionKeyword, PatternKind, SourceSpan, StepDefinition

console = Console(stderr=True)

# Registration function name -> keyword the registered definition stands for.
REGISTRATION_FUNCTIONS: dict[str, DefinitionKeyword] = {
    "Given": DefinitionKeyword.GIVEN,
    "When": DefinitionKeyword.WHEN,
    "Then": DefinitionKeyword.THEN,
    "defineStep": DefinitionKeyword.ANY,
    "Step": DefinitionKeyword.ANY,
}

_SIMPLE_ESCAPES: dict[str, str] = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}
_ESCAPE = re.compile(
    r"\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|[\s\S])"
)


@dataclass(frozen=True, slots=True)
class _Pattern:
    text: str
    kind: PatternKind
    flags: str | None = None


class StepDefinitionExtractor:
    """Finds ``Given(...)``/``When(...)``/``Then(...)``-style registrations.

    A call counts when its callee's simple name (a bare identifier, or the
    last property of a member chain such as ``cucumber.Given``) is one of
    REGISTRATION_FUNCTIONS and its first argument is a static pattern:
    a string literal, a template literal without substitutions, or a regex
    literal. Anything else is ignored.
    """

    GRAMMARS: ClassVar[dict[str, str]] = {
        ".ts": "typescript",
        ".mts": "typescript",
        ".cts": "typescript",
        ".tsx": "tsx",
        ".js": "javascript",
        ".jsx": "javascript",
        ".mjs": "javascript",
        ".cjs": "javascript",
    }

    def __init__(self, registration_functions: dict[str, DefinitionKeyword] | None = None) -> None:
        """Initialize tree-sitter parsers for the supported grammars.

        Args:
            registration_functions: Override for the recognized function names.
        """
        self._functions = dict(registration_functions or REGISTRATION_FUNCTIONS)
        self._languages: dict[str, ts.Language] = {
            "typescript": ts.Language(tree_sitter_typescript.language_typescript()),
            "tsx": ts.Language(tree_sitter_typescript.language_tsx()),
            "javascript": ts.Language(tree_sitter_javascript.language()),
        }
        self._parser = ts.Parser()

    def extract_definitions(self, source: Path, content: str) -> list[StepDefinition]:
        """Extract step definitions from one source file, in source order.

        Args:
            source: Absolute path of the file; stamped on every definition.
            content: Full text of the file.

        Returns:
            The definitions found. Empty if the file could not be parsed at all.
        """
        try:
            tree = self._get_tree(content.encode("utf-8"), source)
        except Exception as exc:  # noqa: BLE001
            console.print(
                f"[yellow]Warning[/yellow]: Failed to parse step definition file {source}: {exc}"
            )
            return []

        if tree.root_node.has_error:
            console.print(f"[dim]{source}: syntax errors, extracting what parses[/dim]")

        definitions: list[StepDefinition] = []
        for node in self._walk(tree.root_node):
            if node.type == "call_expression":
                definition = self._from_call(node, source)
                if definition is not None:
                    definitions.append(definition)
        return definitions

    def grammar_for(self, source: Path) -> str:
        """Grammar name used for a file, by suffix; TypeScript when unknown."""
        return self.GRAMMARS.get(source.suffix.lower(), "typescript")

    # Tree-sitter helpers

    def _get_tree(self, content: bytes, source: Path) -> Any:
        self._parser.language = self._languages[self.grammar_for(source)]
        return self._parser.parse(content)

    @staticmethod
    def _walk(root: Any) -> list[Any]:
        """Pre-order node list, parents before children, siblings left to right."""
        ordered: list[Any] = []
        stack = [root]
        while stack:
            node = stack.pop()
            ordered.append(node)
            stack.extend(reversed(node.children))
        return ordered

    def _from_call(self, node: Any, source: Path) -> StepDefinition | None:
        function_name = self._callee_name(node.child_by_field_name("function"))
        if function_name is None or function_name not in self._functions:
            return None

        arguments = node.child_by_field_name("arguments")
        first_arg = self._first_argument(arguments)
        if first_arg is None:
            return None

        pattern = self._static_pattern(first_arg)
        if pattern is None:
            return None

        return StepDefinition(
            pattern=pattern.text,
            kind=pattern.kind,
            keyword=self._functions[function_name],
            source=source,
            span=SourceSpan(
                start_line=node.start_point[0],
                start_column=node.start_point[1],
                end_line=node.end_point[0],
                end_column=node.end_point[1],
            ),
            function_name=function_name,
            regex_flags=pattern.flags,
        )

    @staticmethod
    def _callee_name(callee: Any | None) -> str | None:
        if callee is None:
            return None
        if callee.type == "identifier":
            return _node_text(callee)
        if callee.type == "member_expression":
            prop = callee.child_by_field_name("property")
            if prop is not None and prop.type == "property_identifier":
                return _node_text(prop)
        return None

    @staticmethod
    def _first_argument(arguments: Any | None) -> Any | None:
        if arguments is None or arguments.type != "arguments":
            return None
        for child in arguments.named_children:
            if child.type != "comment":
                return child
        return None

    @staticmethod
    def _static_pattern(node: Any) -> _Pattern | None:
        if node.type == "string":
            return _Pattern(unescape_js(_node_text(node)[1:-1]), PatternKind.EXPRESSION)

        if node.type == "template_string":
            if any(child.type == "template_substitution" for child in node.children):
                return None
            return _Pattern(unescape_js(_node_text(node)[1:-1]), PatternKind.EXPRESSION)

        if node.type == "regex":
            body = node.child_by_field_name("pattern")
            flags = node.child_by_field_name("flags")
            return _Pattern(
                _node_text(body) if body is not None else "",
                PatternKind.REGEX,
                (_node_text(flags) or None) if flags is not None else None,
            )

        return None


def unescape_js(raw: str) -> str:
    """Resolve JavaScript string escape sequences in the body of a literal."""

    def _replace(match: re.Match[str]) -> str:
        seq = match.group(1)
        try:
            if seq.startswith("u{"):
                return chr(int(seq[2:-1], 16))
            if seq.startswith("u") and len(seq) == 5:
                return chr(int(seq[1:], 16))
            if seq.startswith("x") and len(seq) == 3:
                return chr(int(seq[1:], 16))
        except ValueError:
            return match.group(0)
        if seq in ("\n", "\r\n", "\r", "\u2028", "\u2029"):
            return ""
        return _SIMPLE_ESCAPES.get(seq, seq)

    return _ESCAPE.sub(_replace, raw)


def _node_text(node: Any) -> str:
    """Source text of a tree-sitter node."""
    return node.text.decode("utf-8", errors="replace")

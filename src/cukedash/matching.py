"""Matching of feature steps against step-definition patterns.

Cucumber expressions are translated into anchored regular expressions:

    1. every regex metacharacter in the expression is escaped;
    2. parameter placeholders become capture groups, in this order:
       {int} -> (-?\\d+)
       {float} -> (-?\\d+(?:\\.\\d+)?)
       {word} -> (\\S+)
       {string} -> (?:"([^"]*)"|'([^']*)'|(\\S+))
       {} -> (.+)
    3. the result is anchored so it must cover the whole step text.

Expressions compile with re.ASCII, so {int} and {float} accept ASCII digits only.

Regex definitions are searched unanchored, like a JavaScript ``RegExp.test``.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Final

from rich.console import Console

from cukedash.models import (
    DefinitionKeyword,
    MatchMode,
    MatchResult,
    PatternKind,
    Step,
    StepDefinition,
    StepKeyword,
)

console: Final[Console] = Console(stderr=True)

PARAMETER_RULES: Final[tuple[tuple[str, str], ...]] = (
    ("{int}", r"(-?\d+)"),
    ("{float}", r"(-?\d+(?:\.\d+)?)"),
    ("{word}", r"(\S+)"),
    ("{string}", r"""(?:"([^"]*)"|'([^']*)'|(\S+))"""),
    ("{}", r"(.+)"),
)

_REGEX_FLAGS: Final[dict[str, re.RegexFlag]] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}
# Flags that change nothing for a single boolean test.
_IGNORED_FLAGS: Final[frozenset[str]] = frozenset("gyudv")
_JS_NAMED_GROUP = re.compile(r"\(\?<(?![=!])")


def expression_to_regex(expression: str) -> str:
    """Translate a Cucumber expression into an anchored regex source string."""
    regex = re.escape(expression)
    for placeholder, rule in PARAMETER_RULES:
        regex = regex.replace(re.escape(placeholder), rule)
    return f"^{regex}$"


@lru_cache(maxsize=4096)
def compile_expression(expression: str) -> re.Pattern[str] | None:
    """Compile a Cucumber expression; None (logged once) if it cannot be compiled."""
    try:
        return re.compile(expression_to_regex(expression), re.ASCII)
    except re.error as exc:
        console.print(
            f"[yellow]Warning[/yellow]: Failed to compile cucumber expression {expression!r}: {exc}"
        )
        return None


@lru_cache(maxsize=4096)
def compile_regex(pattern: str, flags: str | None = None) -> re.Pattern[str] | None:
    """Compile the body and flags of a JavaScript regex literal.

    Returns None (logged once per pattern) for invalid patterns or flags.
    """
    py_flags = 0
    for flag in flags or "":
        if flag in _REGEX_FLAGS:
            py_flags |= _REGEX_FLAGS[flag]
        elif flag not in _IGNORED_FLAGS:
            console.print(f"[yellow]Warning[/yellow]: Invalid regex flag {flag!r} in /{pattern}/{flags}")
            return None
    try:
        return re.compile(_JS_NAMED_GROUP.sub("(?P<", pattern), py_flags)
    except re.error as exc:
        console.print(f"[yellow]Warning[/yellow]: Invalid regex pattern /{pattern}/: {exc}")
        return None


def is_keyword_compatible(step_keyword: StepKeyword, definition_keyword: DefinitionKeyword) -> bool:
    """Whether a definition registered for one keyword may serve a step.

    And/But/* steps accept every definition: the keyword they continue is not
    resolved at indexing time.
    """
    if definition_keyword is DefinitionKeyword.ANY:
        return True
    if step_keyword.is_continuation:
        return True
    return step_keyword.value == definition_keyword.value


class PatternMatcher:
    """Classifies steps as matched, undefined or ambiguous against a definition set."""

    def __init__(self, mode: MatchMode = MatchMode.BOTH) -> None:
        self._mode = mode

    @property
    def mode(self) -> MatchMode:
        return self._mode

    def update_match_mode(self, mode: MatchMode) -> None:
        """Use ``mode`` for subsequent calls. Does not re-match anything by itself."""
        self._mode = mode

    def match_steps(
        self, steps: list[Step], definitions: list[StepDefinition]
    ) -> list[MatchResult]:
        """Match every step against every definition, keeping definition order.

        Args:
            steps: Steps to classify.
            definitions: All known definitions, in discovery order.

        Returns:
            One MatchResult per step, in step order.
        """
        if not steps:
            return []
        if not definitions:
            return [MatchResult(step=step) for step in steps]
        return [self.match_step(step, definitions) for step in steps]

    def match_step(self, step: Step, definitions: list[StepDefinition]) -> MatchResult:
        matches = tuple(
            definition
            for definition in definitions
            if is_keyword_compatible(step.keyword, definition.keyword)
            and self.is_match(step.text, definition)
        )
        return MatchResult(step=step, matches=matches)

    def is_match(self, text: str, definition: StepDefinition) -> bool:
        """Pattern test alone; kinds excluded by the active mode never match."""
        return self._search(text, definition) is not None

    def capture_arguments(self, text: str, definition: StepDefinition) -> list[str] | None:
        """Arguments captured by a matching definition, or None if it does not match.

        For ``{string}`` only the populated alternative is returned, without quotes.
        """
        match = self._search(text, definition)
        if match is None:
            return None
        if definition.kind is PatternKind.REGEX:
            return [group for group in match.groups() if group is not None]
        return _expression_arguments(definition.pattern, match)

    def _search(self, text: str, definition: StepDefinition) -> re.Match[str] | None:
        if not self._mode.allows(definition.kind):
            return None
        if definition.kind is PatternKind.REGEX:
            regex = compile_regex(definition.pattern, definition.regex_flags)
            return regex.search(text) if regex is not None else None
        compiled = compile_expression(definition.pattern)
        return compiled.fullmatch(text) if compiled is not None else None


def _expression_arguments(expression: str, match: re.Match[str]) -> list[str]:
    """Collapse the groups of a translated expression to one value per placeholder."""
    placeholders = re.findall(r"\{(?:int|float|word|string)?\}", expression)
    groups = match.groups()
    arguments: list[str] = []
    index = 0
    for placeholder in placeholders:
        if placeholder == "{string}":
            alternatives = groups[index : index + 3]
            arguments.append(next(g for g in alternatives if g is not None))
            index += 3
        else:
            arguments.append(groups[index])
            index += 1
    return arguments

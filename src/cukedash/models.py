"""Core data models: features, steps, step definitions and match results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from cukedash.exceptions import ConfigError


class StepKeyword(str, Enum):
    """Keyword a Gherkin step is written with."""

    GIVEN = "Given"
    WHEN = "When"
    THEN = "Then"
    AND = "And"
    BUT = "But"
    STAR = "*"

    @property
    def is_continuation(self) -> bool:
        """True for keywords that inherit their meaning from the previous step."""
        return self in (StepKeyword.AND, StepKeyword.BUT, StepKeyword.STAR)


class DefinitionKeyword(str, Enum):
    """Keyword a step definition was registered for. ANY matches every step."""

    GIVEN = "Given"
    WHEN = "When"
    THEN = "Then"
    ANY = "any"


class PatternKind(str, Enum):
    EXPRESSION = "expression"
    REGEX = "regex"


class MatchMode(str, Enum):
    """Which pattern kinds take part in matching."""

    BOTH = "both"
    REGEX_ONLY = "regex"
    EXPRESSION_ONLY = "expression"

    @classmethod
    def parse(cls, value: str | MatchMode) -> MatchMode:
        """Parse a configured mode, accepting the ``regex-only`` style spellings too.

        Raises:
            ConfigError: If the value names no known mode.
        """
        if isinstance(value, MatchMode):
            return value
        normalized = str(value).strip().lower().removesuffix("-only")
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ConfigError(
                f"Unknown match mode {value!r}; expected one of: both, regex, expression"
            ) from exc

    def allows(self, kind: PatternKind) -> bool:
        if self is MatchMode.REGEX_ONLY:
            return kind is PatternKind.REGEX
        if self is MatchMode.EXPRESSION_ONLY:
            return kind is PatternKind.EXPRESSION
        return True


class MatchStatus(str, Enum):
    MATCHED = "matched"
    UNDEFINED = "undefined"
    AMBIGUOUS = "ambiguous"


class ChangeKind(str, Enum):
    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"


class FileClass(str, Enum):
    """Which collection a watched file belongs to."""

    FEATURE = "feature"
    DEFINITION = "definition"


@dataclass(frozen=True, slots=True)
class Step:
    """A single step of a scenario.

    Attributes:
        keyword: Keyword the step was written with.
        text: Step text without the keyword.
        line: 1-based line number in the feature file.
        source: Absolute path of the feature file.
        scenario_name: Name of the owning scenario ("Background" for background steps).
        feature_name: Name of the owning feature.
    """

    keyword: StepKeyword
    text: str
    line: int
    source: Path
    scenario_name: str
    feature_name: str


@dataclass(frozen=True, slots=True)
class Scenario:
    name: str
    steps: tuple[Step, ...]
    line: int
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Feature:
    """A parsed feature file. Replaced wholesale whenever the file is reparsed."""

    name: str
    source: Path
    scenarios: tuple[Scenario, ...]
    tags: tuple[str, ...] = ()

    @property
    def steps(self) -> list[Step]:
        """All steps of the feature in document order, background first."""
        return [step for scenario in self.scenarios for step in scenario.steps]


@dataclass(frozen=True, slots=True)
class SourceSpan:
    """0-based start/end position of a registration call in its source file."""

    start_line: int
    start_column: int
    end_line: int
    end_column: int


@dataclass(frozen=True, slots=True)
class StepDefinition:
    """A pattern registration found in a step-definition source file.

    Two definitions compare equal only when every field matches, including
    source path and span, so distinct call sites with the same pattern text
    stay distinct.

    Attributes:
        pattern: Expression text, or the body of a regular-expression literal.
        kind: Whether ``pattern`` is a Cucumber expression or a regex.
        keyword: Keyword the registration function stands for.
        source: Absolute path of the file the registration lives in.
        span: Position of the registration call.
        function_name: Name of the registering function (e.g. ``Given``).
        regex_flags: Flag suffix of a regex literal, None when it has none.
    """

    pattern: str
    kind: PatternKind
    keyword: DefinitionKeyword
    source: Path
    span: SourceSpan
    function_name: str
    regex_flags: str | None = None

    @property
    def display_pattern(self) -> str:
        if self.kind is PatternKind.REGEX:
            return f"/{self.pattern}/{self.regex_flags or ''}"
        return self.pattern


@dataclass(frozen=True, slots=True)
class MatchResult:
    """A step together with every definition that matched it, in definition order."""

    step: Step
    matches: tuple[StepDefinition, ...] = field(default_factory=tuple)

    @property
    def status(self) -> MatchStatus:
        if not self.matches:
            return MatchStatus.UNDEFINED
        if len(self.matches) == 1:
            return MatchStatus.MATCHED
        return MatchStatus.AMBIGUOUS


@dataclass(frozen=True, slots=True)
class WorkspaceStats:
    total_features: int
    total_scenarios: int
    total_steps: int
    undefined_steps: int
    ambiguous_steps: int
    unused_definitions: int


@dataclass(frozen=True, slots=True)
class FileContent:
    """Text of a workspace file and its size in bytes."""

    text: str
    size: int

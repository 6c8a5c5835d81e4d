"""In-memory store of parsed features, step definitions and match results."""

from __future__ import annotations

from pathlib import Path

from cukedash.models import (
    Feature,
    MatchResult,
    MatchStatus,
    Step,
    StepDefinition,
    WorkspaceStats,
)


class WorkspaceIndex:
    """Authoritative in-memory index of the workspace.

    Every mutation is synchronous and completes before returning, so callers
    on the event loop never observe a half-applied update. Only the
    IndexCoordinator writes to it; everyone else queries.
    """

    def __init__(self) -> None:
        self._features: dict[Path, Feature] = {}
        self._definitions: dict[Path, list[StepDefinition]] = {}
        self._match_results: list[MatchResult] = []

    def clear(self) -> None:
        self._features.clear()
        self._definitions.clear()
        self._match_results = []

    # Features

    def set_feature(self, source: Path, feature: Feature) -> None:
        self._features[source] = feature

    def remove_feature(self, source: Path) -> None:
        self._features.pop(source, None)

    def get_features(self) -> list[Feature]:
        return list(self._features.values())

    def get_feature(self, source: Path) -> Feature | None:
        return self._features.get(source)

    def get_all_steps(self) -> list[Step]:
        """Steps of every feature, feature by feature in insertion order."""
        return [step for feature in self._features.values() for step in feature.steps]

    # Step definitions

    def set_step_definitions(self, source: Path, definitions: list[StepDefinition]) -> None:
        """Replace the whole definition list of one file."""
        self._definitions[source] = list(definitions)

    def remove_step_definitions(self, source: Path) -> None:
        self._definitions.pop(source, None)

    def get_step_definitions(self, source: Path) -> list[StepDefinition] | None:
        """Definitions of one file, or None if the file is not indexed."""
        definitions = self._definitions.get(source)
        return list(definitions) if definitions is not None else None

    def get_all_step_definitions(self) -> list[StepDefinition]:
        return [d for definitions in self._definitions.values() for d in definitions]

    def get_step_definitions_by_file(self) -> dict[Path, list[StepDefinition]]:
        return {source: list(definitions) for source, definitions in self._definitions.items()}

    # Match results

    def set_match_results(self, results: list[MatchResult]) -> None:
        """Replace every match result (full re-match)."""
        self._match_results = list(results)

    def update_feature_match_results(self, source: Path, results: list[MatchResult]) -> None:
        """Replace the match results of one feature file's steps.

        Stale entries are dropped and fresh ones appended in a single
        assignment, so readers see either the old or the new entries.
        """
        kept = [r for r in self._match_results if r.step.source != source]
        self._match_results = kept + list(results)

    def get_match_results(self) -> list[MatchResult]:
        return list(self._match_results)

    def get_undefined_steps(self) -> list[MatchResult]:
        return [r for r in self._match_results if r.status is MatchStatus.UNDEFINED]

    def get_ambiguous_steps(self) -> list[MatchResult]:
        return [r for r in self._match_results if r.status is MatchStatus.AMBIGUOUS]

    def get_unused_definitions(self) -> list[StepDefinition]:
        """Definitions that no matched or ambiguous step refers to."""
        used: set[StepDefinition] = set()
        for result in self._match_results:
            used.update(result.matches)
        return [d for d in self.get_all_step_definitions() if d not in used]

    # Statistics

    def get_stats(self) -> WorkspaceStats:
        """Counts recomputed from the current state on every call."""
        features = self.get_features()
        return WorkspaceStats(
            total_features=len(features),
            total_scenarios=sum(len(f.scenarios) for f in features),
            total_steps=sum(len(s.steps) for f in features for s in f.scenarios),
            undefined_steps=len(self.get_undefined_steps()),
            ambiguous_steps=len(self.get_ambiguous_steps()),
            unused_definitions=len(self.get_unused_definitions()),
        )

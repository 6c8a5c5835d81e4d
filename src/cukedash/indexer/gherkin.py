"""Structural parsing of Gherkin feature files into Feature/Scenario/Step records."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from gherkin.errors import CompositeParserException, ParserError
from gherkin.parser import Parser
from rich.console import Console

from cukedash.models import Feature, Scenario, Step, StepKeyword

console = Console(stderr=True)

BACKGROUND_SCENARIO_NAME = "Background"

_KEYWORDS: dict[str, StepKeyword] = {kw.value: kw for kw in StepKeyword}
_WHITESPACE = re.compile(r"\s+")


class FeatureParser:
    """Turns feature-file text into a Feature, or None when it cannot be parsed.

    Background blocks become a synthetic scenario named "Background". Their
    steps are indexed on their own and are not copied into later scenarios.
    """

    def parse_feature(self, source: Path, content: str) -> Feature | None:
        """Parse one feature file.

        Args:
            source: Absolute path of the file; stamped on every step.
            content: Full text of the file.

        Returns:
            The parsed Feature, or None if the text is not a valid feature
            document or holds no ``Feature:`` block.
        """
        try:
            document = Parser().parse(content)
        except (CompositeParserException, ParserError) as exc:
            console.print(f"[yellow]Warning[/yellow]: Failed to parse feature file {source}: {exc}")
            return None

        feature_node = document.get("feature")
        if not feature_node:
            return None

        feature_name: str = feature_node.get("name", "")
        scenarios: list[Scenario] = []
        self._collect_scenarios(feature_node.get("children", []), source, feature_name, scenarios)

        return Feature(
            name=feature_name,
            source=source,
            scenarios=tuple(scenarios),
            tags=_tag_names(feature_node),
        )

    def _collect_scenarios(
        self,
        children: list[dict[str, Any]],
        source: Path,
        feature_name: str,
        out: list[Scenario],
    ) -> None:
        """Visit child blocks, descending into Rule blocks."""
        for child in children:
            if "scenario" in child:
                node = child["scenario"]
                out.append(self._to_scenario(node, node.get("name", ""), source, feature_name))
            elif "background" in child:
                node = child["background"]
                out.append(
                    self._to_scenario(node, BACKGROUND_SCENARIO_NAME, source, feature_name)
                )
            elif "rule" in child:
                self._collect_scenarios(
                    child["rule"].get("children", []), source, feature_name, out
                )

    def _to_scenario(
        self, node: dict[str, Any], name: str, source: Path, feature_name: str
    ) -> Scenario:
        steps = tuple(
            Step(
                keyword=normalize_keyword(step["keyword"]),
                text=step["text"],
                line=step["location"]["line"],
                source=source,
                scenario_name=name,
                feature_name=feature_name,
            )
            for step in node.get("steps", [])
        )
        return Scenario(
            name=name,
            steps=steps,
            line=node["location"]["line"],
            tags=_tag_names(node),
        )


def normalize_keyword(keyword: str) -> StepKeyword:
    """Map raw keyword text (e.g. ``"Given "``) to a StepKeyword.

    Keywords outside the English set fall back to GIVEN.
    """
    return _KEYWORDS.get(_WHITESPACE.sub("", keyword), StepKeyword.GIVEN)


def _tag_names(node: dict[str, Any]) -> tuple[str, ...]:
    return tuple(tag["name"] for tag in node.get("tags", []))

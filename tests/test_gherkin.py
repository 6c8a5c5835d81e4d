"""Tests for feature-file parsing."""

from __future__ import annotations

from pathlib import Path

import pytest

from cukedash.indexer.gherkin import BACKGROUND_SCENARIO_NAME, FeatureParser, normalize_keyword
from cukedash.models import StepKeyword

SOURCE = Path("/workspace/features/shop.feature")


@pytest.fixture
def parser() -> FeatureParser:
    return FeatureParser()


class TestFeatureParser:
    def test_parse_scenarios_and_steps(self, parser: FeatureParser) -> None:
        feature = parser.parse_feature(
            SOURCE,
            "Feature: Shopping\n"
            "  Scenario: Add to cart\n"
            "    Given I have 3 items\n"
            "    When I add 1 item\n"
            "    Then I should have 4 items\n"
            "\n"
            "  Scenario: Empty cart\n"
            "    Given an empty cart\n",
        )

        assert feature is not None
        assert feature.name == "Shopping"
        assert feature.source == SOURCE
        assert [s.name for s in feature.scenarios] == ["Add to cart", "Empty cart"]
        first = feature.scenarios[0].steps[0]
        assert first.keyword is StepKeyword.GIVEN
        assert first.text == "I have 3 items"
        assert first.line == 3
        assert first.source == SOURCE
        assert first.scenario_name == "Add to cart"
        assert first.feature_name == "Shopping"
        assert [s.line for s in feature.steps] == [3, 4, 5, 8]

    def test_background_is_its_own_scenario(self, parser: FeatureParser) -> None:
        feature = parser.parse_feature(
            SOURCE,
            "Feature: Shopping\n"
            "  Background:\n"
            "    Given the shop is open\n"
            "  Scenario: Browse\n"
            "    When I browse\n",
        )

        assert feature is not None
        assert [s.name for s in feature.scenarios] == [BACKGROUND_SCENARIO_NAME, "Browse"]
        assert [s.text for s in feature.scenarios[1].steps] == ["I browse"]
        assert feature.steps[0].scenario_name == "Background"

    def test_rule_children_are_flattened(self, parser: FeatureParser) -> None:
        feature = parser.parse_feature(
            SOURCE,
            "Feature: Shopping\n"
            "  Scenario: Outside\n"
            "    Given one\n"
            "  Rule: Discounts\n"
            "    Background:\n"
            "      Given a discount\n"
            "    Scenario: Inside\n"
            "      Then two\n",
        )

        assert feature is not None
        assert [s.name for s in feature.scenarios] == ["Outside", "Background", "Inside"]
        assert [s.text for s in feature.steps] == ["one", "a discount", "two"]

    def test_continuation_keywords_are_kept(self, parser: FeatureParser) -> None:
        feature = parser.parse_feature(
            SOURCE,
            "Feature: F\n"
            "  Scenario: S\n"
            "    Given a\n"
            "    And b\n"
            "    But c\n"
            "    * d\n",
        )

        assert feature is not None
        assert [s.keyword for s in feature.steps] == [
            StepKeyword.GIVEN,
            StepKeyword.AND,
            StepKeyword.BUT,
            StepKeyword.STAR,
        ]

    def test_scenario_outline_keeps_template_text(self, parser: FeatureParser) -> None:
        feature = parser.parse_feature(
            SOURCE,
            "Feature: F\n"
            "  Scenario Outline: Eating\n"
            "    Given there are <start> cucumbers\n"
            "\n"
            "    Examples:\n"
            "      | start |\n"
            "      | 12    |\n"
            "      | 20    |\n",
        )

        assert feature is not None
        assert len(feature.steps) == 1
        assert feature.steps[0].text == "there are <start> cucumbers"

    def test_tags_are_collected(self, parser: FeatureParser) -> None:
        feature = parser.parse_feature(
            SOURCE,
            "@shop @slow\n"
            "Feature: F\n"
            "  @smoke\n"
            "  Scenario: S\n"
            "    Given a\n",
        )

        assert feature is not None
        assert feature.tags == ("@shop", "@slow")
        assert feature.scenarios[0].tags == ("@smoke",)

    def test_invalid_document_returns_none(self, parser: FeatureParser) -> None:
        assert parser.parse_feature(SOURCE, "this is not gherkin\nFeature: F\n") is None

    def test_document_without_feature_returns_none(self, parser: FeatureParser) -> None:
        assert parser.parse_feature(SOURCE, "") is None
        assert parser.parse_feature(SOURCE, "# only a comment\n") is None

    def test_feature_without_scenarios(self, parser: FeatureParser) -> None:
        feature = parser.parse_feature(SOURCE, "Feature: Empty\n")
        assert feature is not None
        assert feature.scenarios == ()
        assert feature.steps == []


class TestNormalizeKeyword:
    def test_trims_whitespace(self) -> None:
        assert normalize_keyword("Given ") is StepKeyword.GIVEN
        assert normalize_keyword("  Then ") is StepKeyword.THEN
        assert normalize_keyword("* ") is StepKeyword.STAR

    def test_unknown_keyword_falls_back_to_given(self) -> None:
        assert normalize_keyword("Soit ") is StepKeyword.GIVEN

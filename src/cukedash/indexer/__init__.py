"""Workspace indexer: feature parsing, step-definition extraction, file discovery and the index."""

from __future__ import annotations

from cukedash.indexer.extractor import StepDefinitionExtractor
from cukedash.indexer.gherkin import FeatureParser
from cukedash.indexer.index import WorkspaceIndex
from cukedash.indexer.scanner import LocalWorkspace

__all__ = [
    "FeatureParser",
    "LocalWorkspace",
    "StepDefinitionExtractor",
    "WorkspaceIndex",
]

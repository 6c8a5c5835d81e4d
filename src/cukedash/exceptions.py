"""Cukedash exception hierarchy.

All exceptions inherit from CukeDashError so callers can catch the base
class when they want to handle any Cukedash-specific failure uniformly.
"""

from __future__ import annotations


class CukeDashError(Exception):
    """Base exception for all Cukedash errors."""


class ConfigError(CukeDashError):
    """Configuration-related errors (unknown match mode, malformed glob lists, etc.)."""


class IndexerError(CukeDashError):
    """Errors while discovering or reading workspace files."""


class IndexingCanceled(CukeDashError):
    """Raised inside an indexing run once its cancellation token has been tripped."""

"""Cukedash: a cross-reference index between Gherkin steps and step definitions."""

from __future__ import annotations

__version__ = "0.1.0"

"""Configuration management for Cukedash.

Settings are loaded from three sources in order of priority:
1. Environment variables (highest priority)
2. Project-level config: .cukedash/config.toml
3. Global config: ~/.config/cukedash/config.toml (lowest priority)
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from rich.console import Console

from cukedash.events import Signal
from cukedash.exceptions import ConfigError
from cukedash.models import MatchMode

console = Console(stderr=True)

_GLOBAL_CONFIG_DIR = Path.home() / ".config" / "cukedash"
_GLOBAL_CONFIG_PATH = _GLOBAL_CONFIG_DIR / "config.toml"

DEFAULT_FEATURE_GLOBS: tuple[str, ...] = ("features/**/*.feature", "**/*.feature")
DEFAULT_STEP_DEF_GLOBS: tuple[str, ...] = (
    "**/*.{steps,step,stepdefs}.{ts,js}",
    "**/*steps*/**/*.{ts,js}",
)
DEFAULT_EXCLUDE_GLOBS: tuple[str, ...] = (
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/.git/**",
)


@dataclass(frozen=True)
class CukeDashConfig:
    """Cukedash configuration.

    Attributes:
        project_dir: Workspace root that globs are resolved against.
        feature_globs: Globs locating .feature files.
        step_def_globs: Globs locating step-definition sources.
        exclude_globs: Globs excluded from both sets.
        enable_diagnostics: Whether presentation layers should publish diagnostics.
        match_mode: Which pattern kinds take part in matching.
    """

    project_dir: Path = field(default_factory=Path.cwd)
    feature_globs: tuple[str, ...] = DEFAULT_FEATURE_GLOBS
    step_def_globs: tuple[str, ...] = DEFAULT_STEP_DEF_GLOBS
    exclude_globs: tuple[str, ...] = DEFAULT_EXCLUDE_GLOBS
    enable_diagnostics: bool = True
    match_mode: MatchMode = MatchMode.BOTH

    def indexing_changed(self, other: CukeDashConfig) -> bool:
        """Whether switching to ``other`` needs a full reindex rather than a re-match."""
        return (
            self.project_dir != other.project_dir
            or self.feature_globs != other.feature_globs
            or self.step_def_globs != other.step_def_globs
            or self.exclude_globs != other.exclude_globs
        )


def load_config(project_dir: Path) -> CukeDashConfig:
    """Load configuration from env vars, project config, and global config.

    Priority: env vars > .cukedash/config.toml > ~/.config/cukedash/config.toml

    Args:
        project_dir: Root directory of the project.

    Returns:
        A fully resolved CukeDashConfig instance.

    Raises:
        ConfigError: If a setting has an invalid value.
    """
    settings: dict[str, Any] = {"project_dir": project_dir}

    # Layer 1: Global config (lowest priority)
    settings.update(_from_toml(_load_toml(_GLOBAL_CONFIG_PATH)))

    # Layer 2: Project config
    settings.update(_from_toml(_load_toml(project_dir / ".cukedash" / "config.toml")))

    # Layer 3: Environment variables (highest priority)
    settings.update(_from_env())

    return CukeDashConfig(**settings)


class ConfigProvider:
    """Holds the current configuration and signals when it changes.

    Usage::

        provider = ConfigProvider(Path.cwd())
        provider.on_did_change.connect(lambda: print(provider.config.match_mode))
        provider.update(match_mode=MatchMode.REGEX_ONLY)
    """

    def __init__(self, project_dir: Path, config: CukeDashConfig | None = None) -> None:
        self._project_dir = project_dir
        self._config = config if config is not None else load_config(project_dir)
        self.on_did_change = Signal()

    @property
    def config(self) -> CukeDashConfig:
        return self._config

    def reload(self) -> bool:
        """Re-read every layer; fires on_did_change and returns True if anything differs."""
        return self._set(load_config(self._project_dir))

    def update(self, **changes: Any) -> bool:
        """Replace individual settings programmatically.

        Raises:
            ConfigError: If a key is not a setting or a value is invalid.
        """
        known = {f.name for f in fields(CukeDashConfig)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")
        if "match_mode" in changes:
            changes["match_mode"] = MatchMode.parse(changes["match_mode"])
        for key in ("feature_globs", "step_def_globs", "exclude_globs"):
            if key in changes:
                changes[key] = _glob_tuple(changes[key], key)
        return self._set(replace(self._config, **changes))

    def dispose(self) -> None:
        self.on_did_change.dispose()

    def _set(self, config: CukeDashConfig) -> bool:
        if config == self._config:
            return False
        self._config = config
        self.on_did_change.emit()
        return True


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file, returning an empty dict if missing or invalid."""
    if not path.is_file():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, OSError) as exc:
        console.print(f"[yellow]Warning:[/yellow] Could not parse {path}: {exc}")
        return {}


def _from_toml(settings: dict[str, Any]) -> dict[str, Any]:
    """Translate raw TOML settings into CukeDashConfig keyword arguments."""
    resolved: dict[str, Any] = {}
    for key in ("feature_globs", "step_def_globs", "exclude_globs"):
        if key in settings:
            resolved[key] = _glob_tuple(settings[key], key)
    if "enable_diagnostics" in settings:
        resolved["enable_diagnostics"] = bool(settings["enable_diagnostics"])
    if "match_mode" in settings:
        resolved["match_mode"] = MatchMode.parse(str(settings["match_mode"]))
    return resolved


def _from_env() -> dict[str, Any]:
    """Settings overridden by environment variables."""
    resolved: dict[str, Any] = {}
    if globs := os.environ.get("CUKEDASH_FEATURE_GLOBS"):
        resolved["feature_globs"] = _split_globs(globs)
    if globs := os.environ.get("CUKEDASH_STEP_DEF_GLOBS"):
        resolved["step_def_globs"] = _split_globs(globs)
    if globs := os.environ.get("CUKEDASH_EXCLUDE_GLOBS"):
        resolved["exclude_globs"] = _split_globs(globs)
    if diagnostics := os.environ.get("CUKEDASH_ENABLE_DIAGNOSTICS"):
        resolved["enable_diagnostics"] = diagnostics.lower() in ("true", "1", "yes")
    if mode := os.environ.get("CUKEDASH_MATCH_MODE"):
        resolved["match_mode"] = MatchMode.parse(mode)
    return resolved


def _glob_tuple(value: Any, key: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise ConfigError(f"{key} must be a list of glob strings, got {value!r}")


def _split_globs(raw: str) -> tuple[str, ...]:
    """Split a comma-separated env value, keeping commas inside ``{a,b}`` groups."""
    parts: list[str] = []
    depth = 0
    current = ""
    for char in raw:
        if char == "{":
            depth += 1
        elif char == "}":
            depth = max(depth - 1, 0)
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    parts.append(current)
    return tuple(p.strip() for p in parts if p.strip())

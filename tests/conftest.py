"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from cukedash.config import ConfigProvider, CukeDashConfig
from cukedash.exceptions import IndexerError
from cukedash.indexer.scanner import ChangeCallback, matches_any
from cukedash.models import ChangeKind, FileClass, FileContent

WORKSPACE_ROOT = Path("/workspace")

LOGIN_FEATURE = """\
@auth
Feature: Login
  Background:
    Given the app is running

  @smoke
  Scenario: Successful login
    Given I am on the login page
    When I log in as "alice"
    Then I should see 3 notifications
    And I see the dashboard
"""

LOGIN_STEPS = """\
import { Given, When, Then } from '@cucumber/cucumber';

Given('the app is running', function () {});
Given('I am on the login page', function () {});
When('I log in as {string}', function (name: string) {});
Then(/^I should see (\\d+) notifications$/, function (count: string) {});
Then('an unused step', function () {});
"""


class FakeWorkspace:
    """In-memory FileDiscovery and FileReader keyed by absolute path."""

    def __init__(self, root: Path = WORKSPACE_ROOT) -> None:
        self.root = root
        self.files: dict[Path, str] = {}
        self.unreadable: set[Path] = set()
        self.failures: dict[Path, Exception] = {}
        self.gate: asyncio.Event | None = None
        self.reads: list[Path] = []

    def write(self, relative: str, text: str) -> Path:
        path = self.root / relative
        self.files[path] = text
        return path

    def delete(self, relative: str) -> Path:
        path = self.root / relative
        self.files.pop(path, None)
        return path

    async def find_files(self, pattern: str, exclude: Sequence[str]) -> list[Path]:
        found = []
        for path in sorted(self.files):
            relative = path.relative_to(self.root).as_posix()
            if matches_any(relative, [pattern]) and not matches_any(relative, exclude):
                found.append(path)
        return found

    async def read(self, path: Path) -> FileContent:
        if self.gate is not None:
            await self.gate.wait()
        self.reads.append(path)
        if path in self.failures:
            raise self.failures[path]
        if path in self.unreadable or path not in self.files:
            raise IndexerError(f"Cannot read {path}")
        text = self.files[path]
        return FileContent(text=text, size=len(text.encode("utf-8")))


class FakeChangeSource:
    """ChangeSource that records subscriptions and lets tests fire events."""

    def __init__(self) -> None:
        self.subscriptions: list[tuple[tuple[str, ...], FileClass, ChangeCallback]] = []

    def subscribe(
        self, globs: Sequence[str], file_class: FileClass, callback: ChangeCallback
    ) -> Callable[[], None]:
        entry = (tuple(globs), file_class, callback)
        self.subscriptions.append(entry)

        def _unsubscribe() -> None:
            if entry in self.subscriptions:
                self.subscriptions.remove(entry)

        return _unsubscribe

    def fire(self, path: Path, kind: ChangeKind, file_class: FileClass) -> None:
        for _, subscribed_class, callback in list(self.subscriptions):
            if subscribed_class is file_class:
                callback(path, kind, file_class)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    """Keep the user's global config and CUKEDASH_* variables out of every test."""
    global_dir = tmp_path_factory.mktemp("global-config")
    monkeypatch.setattr("cukedash.config._GLOBAL_CONFIG_PATH", global_dir / "config.toml")
    for name in (
        "CUKEDASH_MATCH_MODE",
        "CUKEDASH_FEATURE_GLOBS",
        "CUKEDASH_STEP_DEF_GLOBS",
        "CUKEDASH_EXCLUDE_GLOBS",
        "CUKEDASH_ENABLE_DIAGNOSTICS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def workspace() -> FakeWorkspace:
    """A fake workspace holding one feature file and one step-definition file."""
    ws = FakeWorkspace()
    ws.write("features/login.feature", LOGIN_FEATURE)
    ws.write("steps/login.steps.ts", LOGIN_STEPS)
    return ws


@pytest.fixture
def change_source() -> FakeChangeSource:
    return FakeChangeSource()


@pytest.fixture
def config_provider() -> ConfigProvider:
    """Provider with default settings, bypassing every config file."""
    return ConfigProvider(WORKSPACE_ROOT, config=CukeDashConfig(project_dir=WORKSPACE_ROOT))


@pytest.fixture
def sample_project(tmp_path: Path) -> Path:
    """A real project directory with a feature, step definitions and node_modules noise."""
    (tmp_path / "features").mkdir()
    (tmp_path / "features" / "login.feature").write_text(LOGIN_FEATURE, encoding="utf-8")
    (tmp_path / "steps").mkdir()
    (tmp_path / "steps" / "login.steps.ts").write_text(LOGIN_STEPS, encoding="utf-8")
    vendored = tmp_path / "node_modules" / "pkg"
    vendored.mkdir(parents=True)
    (vendored / "other.steps.js").write_text("Given('vendored step', () => {});\n", encoding="utf-8")
    (vendored / "vendored.feature").write_text(
        "Feature: Vendored\n  Scenario: V\n    Given vendored step\n", encoding="utf-8"
    )
    return tmp_path

"""Full and incremental re-indexing of a workspace.

The coordinator is the only writer of its WorkspaceIndex. A full reindex
stages everything in a private index and publishes it in one synchronous
block; a debounced file change reparses just that file and re-matches
either its own steps (feature change) or the whole workspace (definition
change, since a new pattern can affect any step).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from enum import Enum
from pathlib import Path
from typing import Any, Final, TypeVar

from rich.console import Console

from cukedash.config import ConfigProvider, CukeDashConfig
from cukedash.events import Signal
from cukedash.exceptions import IndexerError, IndexingCanceled
from cukedash.indexer.extractor import StepDefinitionExtractor
from cukedash.indexer.gherkin import FeatureParser
from cukedash.indexer.index import WorkspaceIndex
from cukedash.indexer.scanner import ChangeSource, FileDiscovery, FileReader, LocalWorkspace
from cukedash.matching import PatternMatcher
from cukedash.models import ChangeKind, Feature, FileClass, FileContent, MatchMode, StepDefinition

console: Final[Console] = Console(stderr=True)

BATCH_SIZE: Final[int] = 20
MAX_FILE_SIZE: Final[int] = 1_048_576  # 1 MB
DEBOUNCE_SECONDS: Final[float] = 0.5

_T = TypeVar("_T")


class IndexingStatus(str, Enum):
    IDLE = "idle"
    INDEXING = "indexing"


class _Skip(Enum):
    """Why a file produced no parse result."""

    OVERSIZE = "oversize"
    UNREADABLE = "unreadable"


class CancellationToken:
    """Cooperative cancellation flag handed through one indexing run."""

    def __init__(self) -> None:
        self._canceled = False

    @property
    def is_canceled(self) -> bool:
        return self._canceled

    def cancel(self) -> None:
        self._canceled = True

    def raise_if_canceled(self) -> None:
        if self._canceled:
            raise IndexingCanceled("indexing run was superseded or disposed")


class IndexCoordinator:
    """Keeps a WorkspaceIndex in sync with the feature and step-definition files.

    Usage::

        coordinator = IndexCoordinator.for_directory(Path("/my/project"))
        coordinator.on_did_index_change.connect(refresh_views)
        await coordinator.initialize()
        undefined = coordinator.index.get_undefined_steps()
        coordinator.dispose()
    """

    def __init__(
        self,
        config_provider: ConfigProvider,
        discovery: FileDiscovery,
        reader: FileReader,
        *,
        change_source: ChangeSource | None = None,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        batch_size: int = BATCH_SIZE,
        max_file_size: int = MAX_FILE_SIZE,
    ) -> None:
        """Initialize the coordinator.

        Args:
            config_provider: Source of globs and match mode; watched for changes.
            discovery: Resolves glob patterns to file paths.
            reader: Reads file text and size.
            change_source: Optional provider of file change events.
            debounce_seconds: Quiet period before pending changes are applied.
            batch_size: Files processed concurrently per scheduling turn.
            max_file_size: Files larger than this many bytes are skipped.
        """
        self._config_provider = config_provider
        self._config = config_provider.config
        self._discovery = discovery
        self._reader = reader
        self._change_source = change_source
        self._debounce_seconds = debounce_seconds
        self._batch_size = max(1, batch_size)
        self._max_file_size = max_file_size

        self._index = WorkspaceIndex()
        self._parser = FeatureParser()
        self._extractor = StepDefinitionExtractor()
        self._matcher = PatternMatcher(self._config.match_mode)
        self.on_did_index_change = Signal()

        self._lock = asyncio.Lock()
        self._token: CancellationToken | None = None
        self._pending: dict[Path, tuple[FileClass, ChangeKind]] = {}
        self._debounce_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[bool]] = set()
        self._watch_handles: list[Callable[[], None]] = []
        self._config_handle: Callable[[], None] | None = None
        self._disposed = False

    @classmethod
    def for_directory(
        cls, project_dir: Path, *, change_source: ChangeSource | None = None
    ) -> IndexCoordinator:
        """Coordinator over the local file system rooted at ``project_dir``."""
        workspace = LocalWorkspace(project_dir)
        provider = ConfigProvider(workspace.root)
        return cls(provider, workspace, workspace, change_source=change_source)

    @property
    def index(self) -> WorkspaceIndex:
        """The live index. Query only; all writes go through the coordinator."""
        return self._index

    @property
    def config(self) -> CukeDashConfig:
        return self._config

    @property
    def status(self) -> IndexingStatus:
        return IndexingStatus.INDEXING if self._lock.locked() else IndexingStatus.IDLE

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._pending)

    # Lifecycle

    async def initialize(self) -> None:
        """Index the workspace, then start listening for file and config changes."""
        self._config_handle = self._config_provider.on_did_change.connect(self._on_config_changed)
        await self.reindex()
        self._setup_watchers()

    def dispose(self) -> None:
        """Cancel in-flight work, drop pending changes and stop all notifications."""
        self._disposed = True
        if self._token is not None:
            self._token.cancel()
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None
        self._pending.clear()
        for task in list(self._background):
            task.cancel()
        self._release_watchers()
        if self._config_handle is not None:
            self._config_handle()
            self._config_handle = None
        self.on_did_index_change.dispose()

    # Full reindex

    async def reindex(self) -> bool:
        """Rebuild the whole index, superseding any run still in flight.

        Returns:
            True if the run published its results, False if it was canceled.
        """
        if self._token is not None:
            self._token.cancel()
        token = CancellationToken()
        self._token = token
        if self._disposed:
            token.cancel()

        async with self._lock:
            try:
                token.raise_if_canceled()
                staged = await self._build_snapshot(token)
                token.raise_if_canceled()
            except IndexingCanceled:
                console.print("[dim]Indexer: run canceled before publishing[/dim]")
                return False
            finally:
                if self._token is token:
                    self._token = None
            self._publish(staged)

        stats = self._index.get_stats()
        console.print(
            f"[green]Indexer[/green] indexed [bold]{stats.total_features}[/bold] features, "
            f"[bold]{stats.total_steps}[/bold] steps, "
            f"[bold]{len(self._index.get_all_step_definitions())}[/bold] step definitions"
        )
        self.on_did_index_change.emit()
        return True

    async def _build_snapshot(self, token: CancellationToken) -> WorkspaceIndex:
        staged = WorkspaceIndex()
        config = self._config

        feature_files = await self._discover(config.feature_globs, config.exclude_globs)
        token.raise_if_canceled()
        await self._process_in_batches(
            feature_files,
            self._load_feature,
            lambda path, outcome: self._stage_feature(staged, path, outcome),
            token,
        )

        definition_files = await self._discover(config.step_def_globs, config.exclude_globs)
        token.raise_if_canceled()
        await self._process_in_batches(
            definition_files,
            self._load_definitions,
            lambda path, outcome: self._stage_definitions(staged, path, outcome),
            token,
        )

        token.raise_if_canceled()
        staged.set_match_results(
            self._matcher.match_steps(staged.get_all_steps(), staged.get_all_step_definitions())
        )
        return staged

    async def _discover(self, globs: Sequence[str], exclude: Sequence[str]) -> list[Path]:
        """Union of the files matched by each glob, in first-seen order."""
        found: dict[Path, None] = {}
        for glob in globs:
            for path in await self._discovery.find_files(glob, exclude):
                found.setdefault(path, None)
        return list(found)

    async def _process_in_batches(
        self,
        paths: list[Path],
        load: Callable[[Path], Awaitable[_T]],
        apply: Callable[[Path, _T], None],
        token: CancellationToken,
    ) -> None:
        """Load files a group at a time, yielding to the event loop between groups."""
        for start in range(0, len(paths), self._batch_size):
            token.raise_if_canceled()
            group = paths[start : start + self._batch_size]
            outcomes = await asyncio.gather(*(load(path) for path in group))
            for path, outcome in zip(group, outcomes):
                token.raise_if_canceled()
                apply(path, outcome)
            await asyncio.sleep(0)

    def _stage_feature(
        self, staged: WorkspaceIndex, path: Path, outcome: Feature | _Skip | None
    ) -> None:
        if isinstance(outcome, Feature):
            staged.set_feature(path, outcome)
        elif outcome is _Skip.OVERSIZE:
            previous = self._index.get_feature(path)
            if previous is not None:
                staged.set_feature(path, previous)

    def _stage_definitions(
        self, staged: WorkspaceIndex, path: Path, outcome: list[StepDefinition] | _Skip
    ) -> None:
        if isinstance(outcome, list):
            staged.set_step_definitions(path, outcome)
        elif outcome is _Skip.OVERSIZE:
            previous = self._index.get_step_definitions(path)
            if previous is not None:
                staged.set_step_definitions(path, previous)

    def _publish(self, staged: WorkspaceIndex) -> None:
        """Swap the staged snapshot into the live index without yielding."""
        self._index.clear()
        for feature in staged.get_features():
            self._index.set_feature(feature.source, feature)
        for path, definitions in staged.get_step_definitions_by_file().items():
            self._index.set_step_definitions(path, definitions)
        self._index.set_match_results(staged.get_match_results())

    # File loading

    async def _read_guarded(self, path: Path) -> FileContent | _Skip:
        try:
            content = await self._reader.read(path)
        except IndexerError as exc:
            console.print(f"[yellow]Warning[/yellow]: Skipping {path}: {exc}")
            return _Skip.UNREADABLE
        except Exception as exc:  # noqa: BLE001
            console.print(f"[yellow]Warning[/yellow]: Skipping {path}: unexpected read error: {exc}")
            return _Skip.UNREADABLE
        if content.size > self._max_file_size:
            console.print(
                f"[yellow]Warning[/yellow]: Skipping {path}: "
                f"{content.size} bytes exceeds the {self._max_file_size} byte limit"
            )
            return _Skip.OVERSIZE
        return content

    async def _load_feature(self, path: Path) -> Feature | _Skip | None:
        content = await self._read_guarded(path)
        if isinstance(content, _Skip):
            return content
        try:
            return self._parser.parse_feature(path, content.text)
        except Exception as exc:  # noqa: BLE001
            console.print(f"[yellow]Warning[/yellow]: Skipping {path}: unexpected parse error: {exc}")
            return _Skip.UNREADABLE

    async def _load_definitions(self, path: Path) -> list[StepDefinition] | _Skip:
        content = await self._read_guarded(path)
        if isinstance(content, _Skip):
            return content
        try:
            return self._extractor.extract_definitions(path, content.text)
        except Exception as exc:  # noqa: BLE001
            console.print(f"[yellow]Warning[/yellow]: Skipping {path}: unexpected parse error: {exc}")
            return _Skip.UNREADABLE

    # Incremental updates

    def notify_change(self, path: Path, kind: ChangeKind, file_class: FileClass) -> None:
        """Queue a file change and restart the debounce timer.

        A later event for the same path replaces the earlier one; events for
        different paths accumulate and are applied together. Must be called
        from the coordinator's event loop.
        """
        if self._disposed:
            return
        self._pending[path] = (file_class, kind)
        if self._debounce_task is not None:
            self._debounce_task.cancel()
        self._debounce_task = asyncio.get_running_loop().create_task(self._flush_after_delay())

    async def _flush_after_delay(self) -> None:
        await asyncio.sleep(self._debounce_seconds)
        self._debounce_task = None
        await self.flush_pending()

    async def flush_pending(self) -> bool:
        """Apply every pending change now.

        Returns:
            True if anything was applied and a change notification was fired.
        """
        async with self._lock:
            pending, self._pending = self._pending, {}
            if not pending or self._disposed:
                return False

            paths = list(pending)
            outcomes = await asyncio.gather(
                *(self._load_change(path, *pending[path]) for path in paths)
            )
            if self._disposed:
                return False

            # Everything below runs without yielding.
            rematch_all = False
            for path, outcome in zip(paths, outcomes):
                file_class, kind = pending[path]
                if file_class is FileClass.DEFINITION:
                    rematch_all = True
                    self._apply_definition_change(path, kind, outcome)
                else:
                    self._apply_feature_change(path, kind, outcome)

            if rematch_all:
                self._rematch_all()
            else:
                for path in paths:
                    self._rematch_feature(path)

        console.print(f"[dim]Indexer: applied {len(pending)} pending change(s)[/dim]")
        self.on_did_index_change.emit()
        return True

    async def _load_change(
        self, path: Path, file_class: FileClass, kind: ChangeKind
    ) -> Feature | list[StepDefinition] | _Skip | None:
        if kind is ChangeKind.DELETED:
            return None
        if file_class is FileClass.DEFINITION:
            return await self._load_definitions(path)
        return await self._load_feature(path)

    def _apply_feature_change(
        self, path: Path, kind: ChangeKind, outcome: Feature | list[StepDefinition] | _Skip | None
    ) -> None:
        if kind is ChangeKind.DELETED:
            self._index.remove_feature(path)
        elif isinstance(outcome, Feature):
            self._index.set_feature(path, outcome)

    def _apply_definition_change(
        self, path: Path, kind: ChangeKind, outcome: Feature | list[StepDefinition] | _Skip | None
    ) -> None:
        if kind is ChangeKind.DELETED:
            self._index.remove_step_definitions(path)
        elif isinstance(outcome, list):
            self._index.set_step_definitions(path, outcome)

    def _rematch_all(self) -> None:
        self._index.set_match_results(
            self._matcher.match_steps(
                self._index.get_all_steps(), self._index.get_all_step_definitions()
            )
        )

    def _rematch_feature(self, path: Path) -> None:
        feature = self._index.get_feature(path)
        steps = feature.steps if feature is not None else []
        self._index.update_feature_match_results(
            path, self._matcher.match_steps(steps, self._index.get_all_step_definitions())
        )

    # Match mode and configuration

    def update_match_mode(self, mode: MatchMode | str) -> None:
        """Switch the match mode, re-match everything and notify listeners."""
        self._matcher.update_match_mode(MatchMode.parse(mode))
        self._rematch_all()
        self.on_did_index_change.emit()

    def _on_config_changed(self) -> None:
        previous, current = self._config, self._config_provider.config
        self._config = current
        if previous.indexing_changed(current):
            self._matcher.update_match_mode(current.match_mode)
            self._setup_watchers()
            self._spawn(self.reindex())
        elif current.match_mode is not previous.match_mode:
            self.update_match_mode(current.match_mode)

    def _spawn(self, coro: Coroutine[Any, Any, bool]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            console.print("[dim]Indexer: configuration changed; reindex on next run[/dim]")
            return
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _setup_watchers(self) -> None:
        self._release_watchers()
        if self._change_source is None or self._disposed:
            return
        self._watch_handles = [
            self._change_source.subscribe(
                self._config.feature_globs, FileClass.FEATURE, self.notify_change
            ),
            self._change_source.subscribe(
                self._config.step_def_globs, FileClass.DEFINITION, self.notify_change
            ),
        ]

    def _release_watchers(self) -> None:
        for unsubscribe in self._watch_handles:
            unsubscribe()
        self._watch_handles = []

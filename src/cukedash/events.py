"""Minimal change-notification signal."""

from __future__ import annotations

from collections.abc import Callable

from rich.console import Console

console = Console(stderr=True)

Listener = Callable[[], None]


class Signal:
    """A list of zero-argument listeners fired together.

    Usage::

        changed = Signal()
        unsubscribe = changed.connect(lambda: print("index changed"))
        changed.emit()
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._disposed = False

    def connect(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it again."""
        if not self._disposed:
            self._listeners.append(listener)

        def _disconnect() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _disconnect

    def emit(self) -> None:
        """Call every listener; a failing listener does not stop the others."""
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as exc:  # noqa: BLE001
                console.print(f"[yellow]Warning[/yellow]: change listener failed: {exc}")

    def dispose(self) -> None:
        """Drop all listeners; later connects are ignored."""
        self._listeners.clear()
        self._disposed = True

    def __len__(self) -> int:
        return len(self._listeners)

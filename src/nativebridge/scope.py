"""Execution-context guard for engine access."""

import threading
from typing import TYPE_CHECKING

from nativebridge.errors import AccessError

if TYPE_CHECKING:
    from nativebridge.engine import Engine

_SCOPE_STATE: threading.local = threading.local()


def _scope_stack() -> "list[Engine]":
    """Return this thread's stack of entered engines.

    :returns: Mutable stack, innermost engine last.
    """
    stack: list[Engine] | None = getattr(_SCOPE_STATE, "stack", None)
    if stack is None:
        stack = []
        _SCOPE_STATE.stack = stack
    return stack


class EngineScope:
    """Enter one engine's execution context on the current thread.

    The scope holds the engine lock for its whole duration, so collection
    callbacks arriving from other threads wait until the scope exits.
    """

    _engine: "Engine"

    def __init__(self, engine: "Engine") -> None:
        """Initialize a scope for ``engine``.

        :param engine: Engine to enter.
        """
        self._engine = engine

    def __enter__(self) -> "Engine":
        """Acquire the engine lock and make the engine current.

        :returns: The entered engine.
        :raises AccessError: If the engine has been closed.
        """
        self._engine.lock.acquire()
        if self._engine.is_closed is True:
            self._engine.lock.release()
            raise AccessError(f"Engine {self._engine.name!r} is closed")
        _scope_stack().append(self._engine)
        return self._engine

    def __exit__(self, exc_type: object, exc_value: object, traceback: object) -> None:
        """Pop the engine and release its lock."""
        stack: list[Engine] = _scope_stack()
        stack.pop()
        self._engine.lock.release()


def current_engine() -> "Engine | None":
    """Return the innermost engine entered on this thread.

    :returns: Current engine, or ``None`` outside any scope.
    """
    stack: list[Engine] = _scope_stack()
    if len(stack) == 0:
        return None
    return stack[-1]


def current_engine_checked() -> "Engine":
    """Return the current engine or fail.

    :returns: Current engine.
    :raises AccessError: If no scope is active on this thread.
    """
    engine: Engine | None = current_engine()
    if engine is None:
        raise AccessError("No active EngineScope on this thread")
    return engine


def ensure_scope(engine: "Engine") -> None:
    """Require ``engine`` to be the innermost entered engine.

    :param engine: Engine a bridge operation is about to use.
    :raises AccessError: If ``engine`` is not current on this thread.
    """
    current: Engine | None = current_engine()
    if current is not engine:
        raise AccessError(f"Engine {engine.name!r} is not entered on this thread; use EngineScope")

"""Reference rendering engine — tracked state, views and passive effects.

A minimal engine implementing what the barrier needs (batched_updates and
flush_passive_effects), so act() can be used without a real UI.

- State holds a value and tracks which derivations read it.
- A view re-renders synchronously whenever a commit touches its state.
- An effect is passive: a commit only queues it, flush_passive_effects()
  runs it. Effects returning a coroutine are started as asyncio tasks.

Mutations inside batched_updates() / `with engine.transaction()` commit once,
when the outermost batch exits. Outside a batch every set() commits at once.

All state lives on the Engine instance; engines never share anything.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Generic, Iterator, TypeVar, ParamSpec

logger = logging.getLogger("quiesce.engine")

T = TypeVar("T")
P = ParamSpec("P")
R = TypeVar("R")

# The derivation currently evaluating. State.get() registers itself with it.
current_derivation: contextvars.ContextVar[_Derivation | None] = contextvars.ContextVar(
    "quiesce_current_derivation", default=None
)


class State(Generic[T]):
    """A single tracked value owned by one engine."""

    __slots__ = ("_engine", "_value", "_observers")

    def __init__(self, engine: Engine, value: T) -> None:
        self._engine = engine
        self._value = value
        self._observers: set[_Derivation] = set()

    def get(self) -> T:
        """Read the value. If inside a derivation, registers the dependency."""
        derivation = current_derivation.get()
        if derivation is not None:
            self._observers.add(derivation)
            derivation._dependencies.add(self)
        return self._value

    def set(self, value: T) -> None:
        old = self._value
        if old is not value and old != value:
            self._value = value
            for observer in list(self._observers):
                self._engine.schedule(observer)

    def _remove_observer(self, observer: _Derivation) -> None:
        self._observers.discard(observer)

    def __repr__(self) -> str:
        return f"State({self._value!r})"


class _Derivation(ABC):
    __slots__ = ("_engine", "_fn", "_dependencies", "_disposed")

    def __init__(self, engine: Engine, fn: Callable[[], Any]) -> None:
        self._engine = engine
        self._fn = fn
        self._dependencies: set[State[Any]] = set()
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _untrack(self) -> None:
        for dep in self._dependencies:
            dep._remove_observer(self)
        self._dependencies.clear()

    def _evaluate(self) -> Any:
        """Run fn with this derivation as the dependency collector."""
        self._untrack()
        token = current_derivation.set(self)
        try:
            return self._fn()
        finally:
            current_derivation.reset(token)

    @abstractmethod
    def _on_commit(self) -> None:
        """React to a commit that touched this derivation's state."""

    def dispose(self) -> None:
        self._disposed = True
        self._untrack()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        name = getattr(self._fn, "__name__", repr(self._fn))
        return f"{type(self).__name__}({name}, {state})"


class View(_Derivation):
    """Render derivation. Runs immediately and again on every relevant commit."""

    __slots__ = ()

    def _on_commit(self) -> None:
        if not self._disposed:
            self._evaluate()


class Effect(_Derivation):
    """Passive effect. Commits queue it; flushing runs it."""

    __slots__ = ("_task",)

    def __init__(self, engine: Engine, fn: Callable[[], Any]) -> None:
        super().__init__(engine, fn)
        self._task: asyncio.Task[Any] | None = None

    def _on_commit(self) -> None:
        if not self._disposed:
            self._engine._enqueue_passive(self)

    def _run(self) -> None:
        if self._disposed:
            return
        self._cancel_task()
        # A coroutine effect keeps collecting dependencies inside its task:
        # the task copies the context while this derivation is current.
        self._untrack()
        token = current_derivation.set(self)
        try:
            result = self._fn()
            if asyncio.iscoroutine(result):
                self._task = self._engine._spawn(self, result)
        finally:
            current_derivation.reset(token)

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def dispose(self) -> None:
        super().dispose()
        self._cancel_task()
        self._engine._discard_passive(self)


class Engine:
    """Instance-scoped rendering engine."""

    def __init__(self, name: str = "engine") -> None:
        self.name = name
        self.commit_count = 0
        self._batch_depth = 0
        self._committing = False
        # dicts as insertion-ordered sets
        self._dirty: dict[_Derivation, None] = {}
        self._passive: dict[Effect, None] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    # ─── Construction ────────────────────────────────────────────────────

    def state(self, value: T) -> State[T]:
        return State(self, value)

    def view(self, fn: Callable[[], None]) -> View:
        """Render fn now, and again whenever state it read changes."""
        v = View(self, fn)
        v._evaluate()
        return v

    def effect(self, fn: Callable[[], Any]) -> Effect:
        """Register a passive effect. It first runs on the next flush."""
        e = Effect(self, fn)
        self._enqueue_passive(e)
        return e

    # ─── Batching ────────────────────────────────────────────────────────

    def batched_updates(self, fn: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R:
        """Run fn; state changes it makes commit once, when it returns."""
        self._begin_batch()
        try:
            return fn(*args, **kwargs)
        finally:
            self._end_batch()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._begin_batch()
        try:
            yield
        finally:
            self._end_batch()

    @property
    def batching(self) -> bool:
        return self._batch_depth > 0

    def _begin_batch(self) -> None:
        self._batch_depth += 1

    def _end_batch(self) -> None:
        self._batch_depth -= 1
        if self._batch_depth == 0:
            self._commit()

    # ─── Commit ──────────────────────────────────────────────────────────

    def schedule(self, derivation: _Derivation) -> None:
        """Mark derivation dirty. Commits immediately unless batching."""
        self._dirty[derivation] = None
        if self._batch_depth == 0 and not self._committing:
            self._commit()

    def _commit(self) -> None:
        if not self._dirty:
            return
        self._committing = True
        try:
            self.commit_count += 1
            while self._dirty:
                # Snapshot and clear; views may dirty more derivations.
                batch = list(self._dirty)
                self._dirty.clear()
                for derivation in batch:
                    derivation._on_commit()
        finally:
            self._committing = False

    # ─── Passive effects ─────────────────────────────────────────────────

    def _enqueue_passive(self, effect: Effect) -> None:
        self._passive[effect] = None

    def _discard_passive(self, effect: Effect) -> None:
        self._passive.pop(effect, None)

    def flush_passive_effects(self) -> bool:
        """Run one generation of queued passive effects.

        Effects queued while this runs belong to the next generation.
        Returns whether anything ran.
        """
        if not self._passive:
            return False
        generation = list(self._passive)
        self._passive.clear()
        for index, effect in enumerate(generation):
            try:
                effect._run()
            except BaseException:
                # Unrun effects stay queued, ahead of anything queued since.
                rest = dict.fromkeys(generation[index + 1 :])
                rest.update(self._passive)
                self._passive = rest
                raise
        return True

    def pending_effect_count(self) -> int:
        """Number of passive effects waiting for a flush. Useful for testing."""
        return len(self._passive)

    @property
    def running_tasks(self) -> int:
        return len(self._tasks)

    def _spawn(self, effect: Effect, coroutine: Any) -> asyncio.Task[Any]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coroutine.close()
            raise RuntimeError(
                f"Coroutine effect {effect!r} needs a running event loop; "
                "flush it from async code (e.g. await act_async(...))"
            ) from None
        task = loop.create_task(coroutine)
        self._tasks.add(task)

        def _on_done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error("Passive effect %r failed", effect, exc_info=exc)

        task.add_done_callback(_on_done)
        return task

    def __repr__(self) -> str:
        return f"Engine({self.name!r})"

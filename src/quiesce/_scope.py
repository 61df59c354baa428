"""Scope tracking — nesting depth of act() calls on one barrier.

The depth tells an exiting scope whether it is the outermost one (and must
flush) and lets exit() notice act() calls that overlap instead of nesting.
"""

from __future__ import annotations

from typing import NamedTuple

from quiesce.diagnostics import Diagnostics

OVERLAP_WARNING = (
    "You seem to have overlapping act() calls, this is not supported. "
    "Be sure to await previous act() calls before making a new one."
)


class ScopeSnapshot(NamedTuple):
    previous_depth: int
    previous_rendering: bool


class ScopeTracker:
    """Depth counter plus the rendering-in-flight flag for one barrier."""

    __slots__ = ("_depth", "_rendering", "_diagnostics")

    def __init__(self, diagnostics: Diagnostics | None = None) -> None:
        self._depth = 0
        self._rendering = False
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def rendering(self) -> bool:
        return self._rendering

    def enter(self) -> ScopeSnapshot:
        """Open a scope. Keep the snapshot; exit() needs it."""
        snapshot = ScopeSnapshot(self._depth, self._rendering)
        self._depth += 1
        self._rendering = True
        return snapshot

    def exit(self, snapshot: ScopeSnapshot) -> None:
        """Close the scope opened by the enter() that returned snapshot."""
        if self._depth == 0:
            raise RuntimeError("ScopeTracker.exit() called without a matching enter()")
        self._depth -= 1
        self._rendering = snapshot.previous_rendering
        # Below previous_depth means the other overlapping call already warned.
        if self._depth > snapshot.previous_depth:
            self._diagnostics.warn(OVERLAP_WARNING)

    def __repr__(self) -> str:
        return f"ScopeTracker(depth={self._depth}, rendering={self._rendering})"

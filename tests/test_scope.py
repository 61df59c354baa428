"""Tests for ScopeTracker depth bookkeeping."""

import pytest

from quiesce import Diagnostics, ScopeTracker, WarningLog
from quiesce._scope import OVERLAP_WARNING


def _tracker():
    log = WarningLog()
    return ScopeTracker(Diagnostics(log, enabled=True)), log


class TestEnterExit:
    def test_enter_opens_outermost_scope(self):
        tracker, _ = _tracker()
        snapshot = tracker.enter()
        assert snapshot.previous_depth == 0
        assert snapshot.previous_rendering is False
        assert tracker.depth == 1
        assert tracker.rendering is True

    def test_exit_restores_state(self):
        tracker, log = _tracker()
        tracker.exit(tracker.enter())
        assert tracker.depth == 0
        assert tracker.rendering is False
        assert log.messages == []

    def test_nested_scopes_restore_previous_flag(self):
        tracker, log = _tracker()
        outer = tracker.enter()
        inner = tracker.enter()
        assert inner.previous_rendering is True
        tracker.exit(inner)
        # Still inside the outer scope
        assert tracker.rendering is True
        assert tracker.depth == 1
        tracker.exit(outer)
        assert tracker.rendering is False
        assert log.messages == []

    def test_depth_never_goes_negative(self):
        tracker, _ = _tracker()
        snapshot = tracker.enter()
        tracker.exit(snapshot)
        with pytest.raises(RuntimeError, match="without a matching enter"):
            tracker.exit(snapshot)
        assert tracker.depth == 0


class TestOverlap:
    def test_out_of_order_exit_warns(self):
        tracker, log = _tracker()
        first = tracker.enter()
        second = tracker.enter()
        tracker.exit(first)
        assert log.messages == [OVERLAP_WARNING]
        tracker.exit(second)
        # The second exit sees depth below its snapshot and stays quiet
        assert log.messages == [OVERLAP_WARNING]
        assert tracker.depth == 0

    def test_warning_never_raises(self):
        def _broken_sink(message, *args):
            raise ValueError("sink down")

        tracker = ScopeTracker(Diagnostics(_broken_sink, enabled=True))
        first = tracker.enter()
        second = tracker.enter()
        tracker.exit(first)
        tracker.exit(second)
        assert tracker.depth == 0

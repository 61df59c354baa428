"""Developer diagnostics — usage warnings emitted by the barrier.

Diagnostics never raise and never change control flow. Outside development
mode they are silent.

Development mode is process-wide. Override it with set_dev_mode(); otherwise
it follows __debug__ and the QUIESCE_ENV environment variable
(QUIESCE_ENV=production silences every warning).
"""

from __future__ import annotations

import logging
import os
from typing import Callable

logger = logging.getLogger("quiesce")

ENV_VAR = "QUIESCE_ENV"

Sink = Callable[..., None]

_dev_mode: bool | None = None


def set_dev_mode(enabled: bool | None) -> None:
    """Force development mode on or off. Pass None to follow the environment."""
    global _dev_mode
    _dev_mode = enabled


def is_dev_mode() -> bool:
    if _dev_mode is not None:
        return _dev_mode
    return __debug__ and os.environ.get(ENV_VAR, "development").lower() != "production"


class Diagnostics:
    """Warning sink shared by one barrier's tracker and entry points.

    With no sink, warnings go to the "quiesce" logger. A sink is called
    as sink(message, *args), logging-style.
    """

    __slots__ = ("_sink", "_enabled")

    def __init__(self, sink: Sink | None = None, *, enabled: bool | None = None) -> None:
        self._sink = sink
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return is_dev_mode() if self._enabled is None else self._enabled

    def warn(self, message: str, *args: object) -> None:
        if not self.enabled:
            return
        if self._sink is None:
            logger.warning(message, *args)
            return
        try:
            self._sink(message, *args)
        except Exception:
            logger.exception("Diagnostics sink failed while reporting %r", message)


class WarningLog:
    """Collecting sink. Formats each warning and keeps it in .messages."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def __call__(self, message: str, *args: object) -> None:
        self.messages.append(message % args if args else message)

    def __len__(self) -> int:
        return len(self.messages)

    def clear(self) -> None:
        self.messages.clear()

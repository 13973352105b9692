from __future__ import annotations

from typing import TYPE_CHECKING

from repo_ingest.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable

    ProgressCallback = Callable[[str], None]


class ProgressReporter:
    """Forward human-readable status lines to an optional sink.

    Every message is logged; the sink, when attached, receives the same text.
    A missing sink makes reporting a no-op for the caller.
    """

    def __init__(self, sink: ProgressCallback | None = None) -> None:
        self._sink = sink
        self.messages: list[str] = []

    def __call__(self, message: str) -> None:
        self.messages.append(message)
        logger.info("progress", message=message)
        if self._sink is not None:
            self._sink(message)


def as_reporter(progress: ProgressReporter | ProgressCallback | None) -> ProgressReporter:
    """Wrap a bare callback (or nothing) into a ProgressReporter."""
    if isinstance(progress, ProgressReporter):
        return progress
    return ProgressReporter(progress)

"""Tentative state that is undone on every exit path unless explicitly kept."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class Tentative:
    """Handle yielded by :func:`revert_unless_kept`."""

    def __init__(self, active: bool) -> None:
        self.active = active
        self.kept = False

    def keep(self) -> None:
        self.kept = True


@contextmanager
def revert_unless_kept(
    *reverts: Callable[[], None],
    active: bool = True,
    suppress_errors: bool = False,
) -> Iterator[Tentative]:
    """Run ``reverts`` in order when the block exits without calling ``keep()``.

    When ``active`` is false nothing was acquired and nothing is reverted. With
    ``suppress_errors`` a failing revert is logged and the remaining reverts still
    run, so the outcome of the block (its result or its exception) is preserved.
    """
    tentative = Tentative(active)
    try:
        yield tentative
    finally:
        if tentative.active and not tentative.kept:
            for revert in reverts:
                if not suppress_errors:
                    revert()
                    continue
                try:
                    revert()
                except Exception:
                    logger.warning("Ignoring failure while reverting %s", getattr(revert, "__name__", revert), exc_info=True)

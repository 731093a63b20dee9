"""Best-effort secondary writes.

Mutations are two-phase: the primary write is awaited and its failure
propagates; everything after it (activity entries, notifications, emails)
runs here, each step isolated, logged on failure and never re-raised.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)

SideEffect = tuple[str, Callable[[], Awaitable[Any]]]


async def run_side_effects(context: str, effects: Iterable[SideEffect]) -> list[str]:
    """Run each (label, factory) in order. Returns labels of the ones that failed."""
    failed: list[str] = []
    for label, make in effects:
        try:
            await make()
        except Exception as exc:
            logger.error("%s: %s failed: %s", context, label, exc)
            failed.append(label)
    return failed

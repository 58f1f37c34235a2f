"""Concurrent probing of candidate NAS addresses."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
import logging

from .const import RACE_PROBE_TIMEOUT
from .error import NoneReachableError, RaceBlockedError
from .models import Candidate, ProbeOutcome, ProbeProgress, ProbeStatus

_LOGGER = logging.getLogger(__name__)

ProbeFunc = Callable[[str, float], Awaitable[ProbeOutcome]]
ProgressCallback = Callable[[ProbeProgress], None]


async def async_race(
    candidates: Sequence[Candidate],
    probe: ProbeFunc,
    timeout: float = RACE_PROBE_TIMEOUT,
    progress: ProgressCallback | None = None,
) -> Candidate:
    """Probe all candidates concurrently and return the first reachable one.

    Each probe is bounded by its own timeout. Once a winner is found the
    remaining probes are cancelled and their results discarded.

    Args:
        candidates: Candidate addresses to probe
        probe: Coroutine function probing one address with a timeout
        timeout: Per-candidate timeout in seconds
        progress: Optional callback receiving a notification per probe step

    Returns:
        The first candidate that answered REACHABLE

    Raises:
        RaceBlockedError: If nothing was reachable and at least one probe was blocked
        NoneReachableError: If every candidate was unreachable

    """
    if not candidates:
        raise NoneReachableError("No candidate addresses to probe")

    def _notify(candidate: Candidate, status: ProbeStatus) -> None:
        if progress is not None:
            progress(ProbeProgress(candidate.origin, candidate.address, status))

    async def _probe_one(candidate: Candidate) -> tuple[Candidate, ProbeOutcome]:
        _notify(candidate, ProbeStatus.TESTING)
        try:
            outcome = await asyncio.wait_for(
                probe(candidate.address, timeout), timeout
            )
        except TimeoutError:
            outcome = ProbeOutcome.UNREACHABLE

        if outcome is ProbeOutcome.REACHABLE:
            _LOGGER.info("Working NAS URL (%s): %s", candidate.origin, candidate.address)
            _notify(candidate, ProbeStatus.SUCCESS)
        else:
            _LOGGER.info(
                "Failed URL (%s): %s - %s", candidate.origin, candidate.address, outcome
            )
            _notify(candidate, ProbeStatus.FAILED)
        return candidate, outcome

    tasks = [asyncio.create_task(_probe_one(candidate)) for candidate in candidates]
    blocked = False
    try:
        for next_done in asyncio.as_completed(tasks):
            candidate, outcome = await next_done
            if outcome is ProbeOutcome.REACHABLE:
                return candidate
            if outcome is ProbeOutcome.BLOCKED:
                blocked = True
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    if blocked:
        raise RaceBlockedError("All reachable candidates are blocked by ADM Defender")
    raise NoneReachableError("No reachable NAS address found")

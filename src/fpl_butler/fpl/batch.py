"""Bounded-concurrency fan-out over league entries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Sequence
from typing import Generic, TypeVar

from ..types import EntryBundle
from .client import FPLClient

_logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_BATCH_SIZE = 5


class BatchFetcher(Generic[K, V]):
    """Run ``fetch`` for every key, ``batch_size`` keys at a time.

    A group must settle completely before the next one starts. A key whose
    fetch raises is replaced with ``fallback(key, exc)``, so every key is
    present in the result.
    """

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.batch_size = batch_size

    async def run(
        self,
        keys: Sequence[K],
        fetch: Callable[[K], Awaitable[V]],
        fallback: Callable[[K, Exception], V],
    ) -> dict[K, V]:
        results: dict[K, V] = {}
        for start in range(0, len(keys), self.batch_size):
            group = keys[start : start + self.batch_size]
            outcomes = await asyncio.gather(
                *(fetch(key) for key in group), return_exceptions=True
            )
            for key, outcome in zip(group, outcomes, strict=True):
                if isinstance(outcome, Exception):
                    _logger.warning("Fetch failed for %s, using fallback: %s", key, outcome)
                    results[key] = fallback(key, outcome)
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results[key] = outcome
        return results


async def fetch_entry_bundle(client: FPLClient, entry_id: int, gameweek: int) -> EntryBundle:
    """Fetch picks, history and transfers for one entry concurrently.

    Each sub-resource fails on its own: a missing one becomes ``None``/empty.
    """

    picks, history, transfers = await asyncio.gather(
        client.get_entry_picks(entry_id, gameweek),
        client.get_entry_history(entry_id),
        client.get_entry_transfers(entry_id),
        return_exceptions=True,
    )
    for label, outcome in (("picks", picks), ("history", history), ("transfers", transfers)):
        if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, Exception):
            _logger.warning("Entry %s %s unavailable: %s", entry_id, label, outcome)

    return EntryBundle(
        picks=None if isinstance(picks, BaseException) else picks,
        history=None if isinstance(history, BaseException) else history,
        transfers=() if isinstance(transfers, BaseException) else transfers,
    )


def empty_bundle(entry_id: int, exc: Exception) -> EntryBundle:
    """Fallback for an entry whose whole fetch pipeline failed."""

    del entry_id, exc
    return EntryBundle()


async def fetch_entry_bundles(
    client: FPLClient,
    entry_ids: Sequence[int],
    gameweek: int,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[int, EntryBundle]:
    fetcher: BatchFetcher[int, EntryBundle] = BatchFetcher(batch_size)
    return await fetcher.run(
        entry_ids,
        lambda entry_id: fetch_entry_bundle(client, entry_id, gameweek),
        empty_bundle,
    )


__all__ = [
    "BatchFetcher",
    "DEFAULT_BATCH_SIZE",
    "empty_bundle",
    "fetch_entry_bundle",
    "fetch_entry_bundles",
]

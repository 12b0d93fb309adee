"""Tests for bounded batch fetching."""

from __future__ import annotations

import asyncio
import logging

import pytest

from fakes import FakeResponse, history_payload, make_client, picks_payload, transfer_payload
from fpl_butler.fpl.batch import BatchFetcher, fetch_entry_bundle, fetch_entry_bundles


@pytest.mark.asyncio
async def test_groups_run_strictly_one_after_another() -> None:
    active = 0
    peak = 0
    timeline: list[tuple[str, int]] = []

    async def fetch(key: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        timeline.append(("start", key))
        await asyncio.sleep(0.001 * (5 - key % 5))
        timeline.append(("end", key))
        active -= 1
        return key * 10

    results = await BatchFetcher[int, int](batch_size=5).run(list(range(12)), fetch, lambda key, exc: -1)

    assert results == {key: key * 10 for key in range(12)}
    assert peak == 5
    # Nothing from the second group starts before the first group has settled
    second_start = timeline.index(("start", 5))
    assert all(timeline.index(("end", key)) < second_start for key in range(5))


@pytest.mark.asyncio
async def test_failed_key_gets_fallback_and_others_survive(caplog: pytest.LogCaptureFixture) -> None:
    async def fetch(key: str) -> str:
        if key == "bad":
            raise RuntimeError("upstream hiccup")
        return key.upper()

    with caplog.at_level(logging.WARNING, logger="fpl_butler.fpl.batch"):
        results = await BatchFetcher[str, str](batch_size=2).run(
            ["a", "bad", "c"], fetch, lambda key, exc: f"fallback:{key}:{exc}"
        )

    assert results == {"a": "A", "bad": "fallback:bad:upstream hiccup", "c": "C"}
    assert "bad" in caplog.text


@pytest.mark.asyncio
async def test_cancellation_is_not_swallowed() -> None:
    async def fetch(key: int) -> int:
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await BatchFetcher[int, int](batch_size=2).run([1, 2], fetch, lambda key, exc: 0)


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BatchFetcher(batch_size=0)


@pytest.mark.asyncio
async def test_entry_bundle_degrades_each_sub_resource_independently() -> None:
    client, _ = make_client(
        {
            "entry/7/event/3/picks/": FakeResponse({"detail": "boom"}, status=500),
            "entry/7/history/": FakeResponse(history_payload({1: 40, 2: 50, 3: 60})),
            "entry/7/transfers/": FakeResponse([transfer_payload(11, 12, 3)]),
        }
    )

    bundle = await fetch_entry_bundle(client, 7, 3)

    assert bundle.picks is None
    assert bundle.history is not None
    assert [record.points for record in bundle.history.current] == [40, 50, 60]
    assert bundle.transfers[0].element_in == 11


@pytest.mark.asyncio
async def test_fetch_entry_bundles_keeps_every_entry() -> None:
    routes = {}
    for entry in range(1, 8):
        routes[f"entry/{entry}/event/2/picks/"] = FakeResponse(picks_payload([1, 2], bench=[2]))
        routes[f"entry/{entry}/history/"] = FakeResponse(history_payload({1: 30, 2: 40}))
        routes[f"entry/{entry}/transfers/"] = FakeResponse([])
    routes["entry/4/history/"] = FakeResponse("<html>rate limited</html>", content_type="text/html")
    client, session = make_client(routes)

    bundles = await fetch_entry_bundles(client, list(range(1, 8)), 2, batch_size=3)

    assert sorted(bundles) == list(range(1, 8))
    assert bundles[4].history is None
    assert bundles[4].picks is not None
    assert len(session.requests) == 21

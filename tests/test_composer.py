"""End-to-end composition against the in-memory FPL API."""

from __future__ import annotations

import re
from datetime import UTC, datetime

import pytest

from fakes import (
    LEAGUE_ID,
    FakeResponse,
    entry_row,
    league_routes,
    make_client,
    picks_payload,
    transfer_payload,
)
from fpl_butler.composer import SnapshotComposer, compose_with_retry, isoformat_utc
from fpl_butler.fpl.client import UpstreamError, UpstreamFormatError
from fpl_butler.types import Snapshot

SQUAD = list(range(1, 16))
ELEMENTS = {player_id: f"Player {player_id}" for player_id in SQUAD}
FIXED_NOW = datetime(2025, 9, 21, 20, 15, 0, tzinfo=UTC)


def _composer(routes: dict) -> tuple[SnapshotComposer, list[str]]:
    client, session = make_client(routes)
    return SnapshotComposer(client, clock=lambda: FIXED_NOW), session.requests


def _ten_team_routes() -> dict:
    managers = ["Alice", "Ben", "Cara", "Dan", "Erin", "Finn", "Gus", "Hana", "Ivo", "Bob"]
    points = [80, 55, 61, 47, 52, 38, 44, 70, 33, 20]
    rows = [
        entry_row(
            100 + index,
            manager,
            index + 1,
            total=400 - index * 12,
            event_total=points[index],
            last_rank=index + 1,
        )
        for index, manager in enumerate(managers)
    ]
    picks = {row["entry"]: picks_payload(SQUAD, bench=[12, 13, 14, 15], captain=9) for row in rows}
    live = {player_id: player_id % 7 for player_id in SQUAD}
    return league_routes(rows=rows, gameweek=5, elements=ELEMENTS, live=live, picks=picks)


@pytest.mark.asyncio
async def test_ten_team_league_end_to_end() -> None:
    composer, _ = _composer(_ten_team_routes())

    snapshot = await composer.compose(LEAGUE_ID, 5)

    assert snapshot.weekly.winner.manager == "Alice"
    assert snapshot.weekly.winner.points == 80
    assert snapshot.weekly.loser.manager == "Bob"
    assert snapshot.weekly.loser.points == 20
    assert snapshot.weekly.chips_used.count == 0
    assert snapshot.weekly.chips_used.entries == ()
    assert snapshot.differential_hero.player == "-"
    assert snapshot.differential_hero.ownership == 0
    assert snapshot.transfer_roi.genius.player == "No transfers"


@pytest.mark.asyncio
async def test_composed_snapshot_is_complete_and_narrated() -> None:
    composer, _ = _composer(_ten_team_routes())

    snapshot = await composer.compose(LEAGUE_ID, 5)

    assert snapshot.meta.league_id == LEAGUE_ID
    assert snapshot.meta.league_name == "Butler Invitational"
    assert snapshot.meta.created_at == "2025-09-21T20:15:00.000Z"
    assert [team.rank for team in snapshot.top3] == [1, 2, 3]
    assert [team.rank for team in snapshot.bottom3] == [8, 9, 10]
    assert snapshot.weekly.next_deadline.gw == 6
    assert snapshot.butler.summary
    assert re.fullmatch(r"[0-4]-(classic|story|list|comparison|thematic)", snapshot.butler.template_id)
    assert len(snapshot.highlights) == 5
    # bench: players 12..15 score 5 + 6 + 0 + 1; everyone ties, lowest entry id wins
    assert snapshot.weekly.bench_warmer.manager == "Alice"
    assert snapshot.weekly.bench_warmer.bench_points == 12

    payload = snapshot.to_json_dict()
    assert set(payload) == {
        "meta",
        "butler",
        "top3",
        "bottom3",
        "weekly",
        "form3",
        "transferRoi",
        "highlights",
        "differentialHero",
    }
    assert set(payload["weekly"]) == {
        "winner",
        "loser",
        "benchWarmer",
        "chipsUsed",
        "movements",
        "nextDeadline",
    }
    assert Snapshot.model_validate(payload) == snapshot


@pytest.mark.asyncio
async def test_one_failed_picks_fetch_does_not_abort_composition() -> None:
    rows = [entry_row(1000 + index, f"Manager {index}", index + 1, event_total=40 + index) for index in range(20)]
    picks = {row["entry"]: picks_payload(SQUAD, bench=[12, 13, 14, 15]) for row in rows}
    picks[1000] = FakeResponse({"detail": "Internal error"}, status=500)
    live = {player_id: 0 for player_id in SQUAD}
    live.update({12: 4, 13: 4, 14: 4, 15: 4})
    # Everyone else benched nothing of value; entry 1000 would otherwise have topped the bench
    for entry in range(1001, 1020):
        picks[entry] = picks_payload(SQUAD, bench=[1, 2, 3, 4])
    routes = league_routes(rows=rows, gameweek=5, elements=ELEMENTS, live=live, picks=picks)
    composer, _ = _composer(routes)

    snapshot = await composer.compose(LEAGUE_ID, 5)

    assert snapshot.weekly.bench_warmer.manager == "Manager 0"
    assert snapshot.weekly.bench_warmer.bench_points == 0
    assert snapshot.weekly.winner.manager == "Manager 19"


@pytest.mark.asyncio
async def test_missing_live_points_abort_composition() -> None:
    routes = _ten_team_routes()
    routes["event/5/live/"] = FakeResponse({"detail": "busy"}, status=503)
    composer, requests = _composer(routes)

    with pytest.raises(UpstreamError) as excinfo:
        await composer.compose(LEAGUE_ID, 5)

    assert excinfo.value.status == 503
    assert "event/5/live/" in excinfo.value.url
    assert not any("/entry/" in url for url in requests)


@pytest.mark.asyncio
async def test_non_json_standings_abort_composition() -> None:
    routes = _ten_team_routes()
    routes[f"leagues-classic/{LEAGUE_ID}/standings/?page_standings=1"] = FakeResponse(
        "<html>maintenance</html>", content_type="text/html"
    )
    composer, _ = _composer(routes)

    with pytest.raises(UpstreamFormatError):
        await composer.compose(LEAGUE_ID, 5)


@pytest.mark.asyncio
async def test_transfers_feed_transfer_roi_and_differential() -> None:
    rows = [entry_row(index, f"M{index}", index, event_total=50) for index in range(1, 11)]
    picks = {row["entry"]: picks_payload([1, 2, 3]) for row in rows}
    picks[4] = picks_payload([1, 2, 3, 9])
    transfers = {4: [transfer_payload(9, 3, 5), transfer_payload(2, 8, 4)], 6: [transfer_payload(1, 7, 5)]}
    live = {1: 2, 2: 3, 3: 1, 9: 14}
    elements = {1: "Raya", 2: "Gabriel", 3: "Saka", 9: "Mbeumo"}
    routes = league_routes(
        rows=rows, gameweek=5, elements=elements, live=live, picks=picks, transfers=transfers
    )
    composer, _ = _composer(routes)

    snapshot = await composer.compose(LEAGUE_ID, 5)

    assert snapshot.transfer_roi.genius.player == "Mbeumo"
    assert snapshot.transfer_roi.genius.manager == "M4"
    assert snapshot.transfer_roi.bomb.player == "Raya"
    assert snapshot.differential_hero.player == "Mbeumo"
    assert snapshot.differential_hero.managers == ("M4",)


@pytest.mark.asyncio
async def test_target_gameweek_uses_bootstrap() -> None:
    composer, _ = _composer(_ten_team_routes())

    assert await composer.target_gameweek() == 5


@pytest.mark.asyncio
async def test_compose_with_retry_recovers_from_transient_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    composer, _ = _composer(_ten_team_routes())
    real_compose = composer.compose
    calls = 0

    async def flaky(league_id: str, gameweek: int) -> Snapshot:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise UpstreamError("https://fpl.test/api/event/5/live/", 502)
        return await real_compose(league_id, gameweek)

    monkeypatch.setattr(composer, "compose", flaky)

    snapshot = await compose_with_retry(composer, LEAGUE_ID, 5, attempts=3, min_wait=0, max_wait=0)

    assert calls == 2
    assert snapshot.meta.gameweek == 5


@pytest.mark.asyncio
async def test_compose_with_retry_gives_up(monkeypatch: pytest.MonkeyPatch) -> None:
    composer, _ = _composer(_ten_team_routes())
    calls = 0

    async def broken(league_id: str, gameweek: int) -> Snapshot:
        nonlocal calls
        calls += 1
        raise UpstreamError("https://fpl.test/api/bootstrap-static/", 500)

    monkeypatch.setattr(composer, "compose", broken)

    with pytest.raises(UpstreamError):
        await compose_with_retry(composer, LEAGUE_ID, 5, attempts=2, min_wait=0, max_wait=0)
    assert calls == 2


def test_isoformat_utc_uses_z_suffix() -> None:
    assert isoformat_utc(datetime(2025, 1, 2, 3, 4, 5, 678000, tzinfo=UTC)) == "2025-01-02T03:04:05.678Z"

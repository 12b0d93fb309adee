"""In-memory stand-ins for the FPL API used across the test suite."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from fpl_butler.composer import build_snapshot, narrate
from fpl_butler.fpl.client import FPLClient
from fpl_butler.types import (
    Bootstrap,
    EntryBundle,
    EntryHistory,
    EntryPicks,
    LeagueEntry,
    LeagueStandings,
    Snapshot,
    Transfer,
)

BASE_URL = "https://fpl.test/api"
LEAGUE_ID = "4242"
SEASON_START = datetime(2025, 8, 15, 17, 30, tzinfo=UTC)


class FakeResponse:
    def __init__(
        self,
        payload: Any = None,
        *,
        status: int = 200,
        content_type: str = "application/json; charset=utf-8",
    ) -> None:
        self.status = status
        self.headers = {"Content-Type": content_type}
        self._payload = payload

    async def __aenter__(self) -> FakeResponse:
        return self

    async def __aexit__(self, *exc_info: object) -> bool:
        return False

    async def json(self, content_type: str | None = None) -> Any:
        if isinstance(self._payload, str):
            return json.loads(self._payload)
        return self._payload

    async def text(self) -> str:
        if isinstance(self._payload, str):
            return self._payload
        return json.dumps(self._payload)


class FakeSession:
    """Answers ``get`` from a ``path -> response`` table relative to ``BASE_URL``."""

    def __init__(self, routes: Mapping[str, Any]) -> None:
        self.routes = dict(routes)
        self.requests: list[str] = []
        self.request_headers: list[dict[str, str]] = []
        self.closed = False

    def get(self, url: str, *, headers: Mapping[str, str] | None = None, timeout: Any = None) -> FakeResponse:
        self.requests.append(url)
        self.request_headers.append(dict(headers or {}))
        path = url.removeprefix(f"{BASE_URL}/")
        route = self.routes.get(path)
        if isinstance(route, BaseException):
            raise route
        if route is None:
            return FakeResponse({"detail": "Not found."}, status=404)
        return route

    async def close(self) -> None:
        self.closed = True


def make_client(routes: Mapping[str, Any]) -> tuple[FPLClient, FakeSession]:
    session = FakeSession(routes)
    client = FPLClient(
        session,  # type: ignore[arg-type]
        base_url=BASE_URL,
        headers={"User-Agent": "test-agent", "Accept": "application/json"},
        timeout=2.0,
    )
    return client, session


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def deadline(gameweek: int) -> str:
    return (SEASON_START + timedelta(weeks=gameweek - 1)).strftime("%Y-%m-%dT%H:%M:%SZ")


def bootstrap_payload(
    elements: Mapping[int, str], current: int, *, finished: bool = True, total_events: int = 38
) -> dict[str, Any]:
    events = [
        {
            "id": gameweek,
            "name": f"Gameweek {gameweek}",
            "is_current": gameweek == current,
            "is_next": gameweek == current + 1,
            "finished": gameweek < current or (gameweek == current and finished),
            "deadline_time": deadline(gameweek),
        }
        for gameweek in range(1, total_events + 1)
    ]
    return {
        "elements": [{"id": player_id, "web_name": name} for player_id, name in elements.items()],
        "events": events,
    }


def entry_row(
    entry: int,
    manager: str,
    rank: int,
    *,
    team: str | None = None,
    total: int = 0,
    event_total: int | None = None,
    last_rank: int | None = None,
) -> dict[str, Any]:
    return {
        "entry": entry,
        "entry_name": team or f"{manager} FC",
        "player_name": manager,
        "rank": rank,
        "last_rank": last_rank,
        "total": total,
        "event_total": event_total,
    }


def standings_payload(
    rows: Sequence[Mapping[str, Any]], *, league_name: str = "Butler Invitational", has_next: bool = False
) -> dict[str, Any]:
    return {
        "league": {"id": int(LEAGUE_ID), "name": league_name},
        "standings": {"has_next": has_next, "page": 1, "results": list(rows)},
    }


def picks_payload(
    elements: Iterable[int],
    *,
    bench: Iterable[int] = (),
    captain: int | None = None,
    chip: str | None = None,
    transfers: int = 0,
    cost: int = 0,
) -> dict[str, Any]:
    benched = set(bench)
    picks = []
    for position, element in enumerate(elements, start=1):
        multiplier = 0 if element in benched else (2 if element == captain else 1)
        picks.append(
            {
                "element": element,
                "position": position,
                "multiplier": multiplier,
                "is_captain": element == captain,
                "is_vice_captain": False,
            }
        )
    return {
        "active_chip": chip,
        "automatic_subs": [],
        "entry_history": {"event_transfers": transfers, "event_transfers_cost": cost},
        "picks": picks,
    }


def live_payload(points: Mapping[int, int]) -> dict[str, Any]:
    return {"elements": [{"id": player_id, "stats": {"total_points": value}} for player_id, value in points.items()]}


def history_payload(points_by_gameweek: Mapping[int, int]) -> dict[str, Any]:
    running = 0
    current = []
    for gameweek in sorted(points_by_gameweek):
        running += points_by_gameweek[gameweek]
        current.append(
            {
                "event": gameweek,
                "points": points_by_gameweek[gameweek],
                "total_points": running,
                "event_transfers": 0,
                "event_transfers_cost": 0,
            }
        )
    return {"current": current, "past": [], "chips": []}


def transfer_payload(element_in: int, element_out: int, event: int) -> dict[str, Any]:
    return {
        "element_in": element_in,
        "element_out": element_out,
        "event": event,
        "time": deadline(event),
    }


def _as_response(value: Any) -> Any:
    if value is None or isinstance(value, (FakeResponse, BaseException)):
        return value
    return FakeResponse(value)


def league_routes(
    *,
    rows: Sequence[Mapping[str, Any]],
    gameweek: int,
    elements: Mapping[int, str],
    live: Mapping[int, int],
    picks: Mapping[int, Any],
    history: Mapping[int, Any] | None = None,
    transfers: Mapping[int, Any] | None = None,
    finished: bool = True,
) -> dict[str, Any]:
    routes: dict[str, Any] = {
        "bootstrap-static/": FakeResponse(bootstrap_payload(elements, gameweek, finished=finished)),
        f"leagues-classic/{LEAGUE_ID}/standings/?page_standings=1": FakeResponse(standings_payload(rows)),
        f"event/{gameweek}/live/": FakeResponse(live_payload(live)),
    }
    history = history or {}
    transfers = transfers or {}
    for row in rows:
        entry = row["entry"]
        routes[f"entry/{entry}/event/{gameweek}/picks/"] = _as_response(picks.get(entry))
        routes[f"entry/{entry}/history/"] = _as_response(history.get(entry, {"current": []}))
        routes[f"entry/{entry}/transfers/"] = _as_response(transfers.get(entry, []))
    return routes


# ---------------------------------------------------------------------------
# Model builders for pure metric tests
# ---------------------------------------------------------------------------


def league_entry(entry: int, manager: str, rank: int, **fields: Any) -> LeagueEntry:
    return LeagueEntry.model_validate(entry_row(entry, manager, rank, **fields))


def bundle(
    *,
    picks: Mapping[str, Any] | None = None,
    history: Mapping[int, int] | None = None,
    transfers: Iterable[Mapping[str, Any]] = (),
) -> EntryBundle:
    return EntryBundle(
        picks=EntryPicks.model_validate(picks) if picks is not None else None,
        history=EntryHistory.model_validate(history_payload(history)) if history is not None else None,
        transfers=tuple(Transfer.model_validate(item) for item in transfers),
    )


def make_snapshot(
    gameweek: int = 5,
    *,
    managers: Sequence[str] = ("Ada", "Bo", "Cy", "Di", "Eve"),
    points: Sequence[int] | None = None,
    created_at: str = "2025-09-20T08:00:00.000Z",
    narrated: bool = True,
) -> Snapshot:
    """Snapshot of a small league where managers are ranked in the given order."""

    points = points or [90 - index * 10 for index in range(len(managers))]
    rows = [
        entry_row(
            index + 1,
            manager,
            index + 1,
            total=1000 - index * 50,
            event_total=points[index],
            last_rank=len(managers) - index,
        )
        for index, manager in enumerate(managers)
    ]
    elements = {1: "Raya", 2: "Saka", 3: "Palmer", 4: "Isak"}
    bundles = {
        row["entry"]: bundle(picks=picks_payload([1, 2, 3, 4], bench=[4], captain=3))
        for row in rows
    }
    snapshot = build_snapshot(
        league_id=LEAGUE_ID,
        gameweek=gameweek,
        bootstrap=Bootstrap.model_validate(bootstrap_payload(elements, gameweek)),
        standings=LeagueStandings.model_validate(
            {"league_name": "Butler Invitational", "entries": rows}
        ),
        live_points={1: 6, 2: 8, 3: 12, 4: 3},
        bundles=bundles,
        created_at=created_at,
        local_tz=ZoneInfo("Europe/Oslo"),
    )
    return narrate(snapshot) if narrated else snapshot

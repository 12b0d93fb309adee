"""Compose one immutable weekly snapshot for a league and gameweek."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from types import MappingProxyType
from zoneinfo import ZoneInfo

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from . import metrics
from .config import Settings
from .fpl.batch import DEFAULT_BATCH_SIZE, fetch_entry_bundles
from .fpl.client import FPLClient, UpstreamError
from .fpl.gameweeks import next_deadline, resolve_target_gameweek
from .fpl.utils import create_session, resolve_timezone, safe_close_session
from .narrative import compose_narrative
from .types import (
    Bootstrap,
    ButlerSummary,
    EntryBundle,
    LeagueStandings,
    Snapshot,
    SnapshotMeta,
    Weekly,
)

_logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def isoformat_utc(moment: datetime) -> str:
    """``2025-09-30T18:04:05.123Z`` style timestamp."""

    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_snapshot(
    *,
    league_id: str,
    gameweek: int,
    bootstrap: Bootstrap,
    standings: LeagueStandings,
    live_points: Mapping[int, int],
    bundles: Mapping[int, EntryBundle],
    created_at: str,
    local_tz: ZoneInfo,
    form_window: int = metrics.DEFAULT_FORM_WINDOW,
) -> Snapshot:
    """Assemble every derived block from fetched data, with an empty narrative."""

    entries = standings.entries
    catalog = MappingProxyType({element.id: element.web_name for element in bootstrap.elements})

    winner = metrics.weekly_winner(entries)
    chips = metrics.chips_used(entries, bundles)
    movements = metrics.rank_movements(entries)

    return Snapshot(
        meta=SnapshotMeta(
            league_id=str(league_id),
            league_name=standings.league_name,
            gameweek=gameweek,
            created_at=created_at,
        ),
        butler=ButlerSummary(),
        top3=metrics.top_three(entries),
        bottom3=metrics.bottom_three(entries),
        weekly=Weekly(
            winner=winner,
            loser=metrics.weekly_loser(entries),
            bench_warmer=metrics.bench_warmer(entries, bundles, live_points),
            chips_used=chips,
            movements=movements,
            next_deadline=next_deadline(bootstrap.events, gameweek, local_tz),
        ),
        form3=metrics.form_table(entries, bundles, gameweek, form_window),
        transfer_roi=metrics.transfer_roi(entries, bundles, live_points, catalog, gameweek),
        highlights=metrics.highlights(
            entries, bundles, catalog, winner=winner, chips=chips, movements=movements
        ),
        differential_hero=metrics.differential_hero(entries, bundles, live_points, catalog),
    )


def narrate(snapshot: Snapshot, structure: str | None = None, *, hotfix: bool = False) -> Snapshot:
    """Return a copy of ``snapshot`` carrying its butler commentary."""

    narrative = compose_narrative(snapshot, structure, hotfix=hotfix)
    return snapshot.model_copy(
        update={"butler": ButlerSummary(summary=narrative.summary, template_id=narrative.template_id)}
    )


class SnapshotComposer:
    """Fetch, compute and narrate a snapshot.

    Bootstrap, standings and live points are required: any :class:`UpstreamError`
    while fetching them propagates and nothing is produced. Per-entry data is
    fetched in bounded batches and degrades to fallbacks.
    """

    def __init__(
        self,
        client: FPLClient,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        form_window: int = metrics.DEFAULT_FORM_WINDOW,
        timezone: str = "Europe/Oslo",
        clock: Clock = _utc_now,
    ) -> None:
        self._client = client
        self._batch_size = batch_size
        self._form_window = form_window
        self._local_tz = resolve_timezone(timezone)
        self._clock = clock

    @classmethod
    def from_settings(cls, client: FPLClient, settings: Settings) -> SnapshotComposer:
        return cls(
            client,
            batch_size=settings.batch_size,
            form_window=settings.form_window,
            timezone=settings.timezone,
        )

    async def target_gameweek(self) -> int:
        bootstrap = await self._client.get_bootstrap()
        return resolve_target_gameweek(bootstrap.events)

    async def compose(self, league_id: str | int, gameweek: int) -> Snapshot:
        _logger.info("Composing snapshot for league %s, GW %s", league_id, gameweek)

        bootstrap = await self._client.get_bootstrap()
        standings = await self._client.get_league_standings(league_id)
        live_points = await self._client.get_live_points(gameweek)
        _logger.info(
            "League %r has %d entries; fetching per-entry data", standings.league_name, len(standings.entries)
        )

        bundles = await fetch_entry_bundles(
            self._client,
            [entry.entry for entry in standings.entries],
            gameweek,
            batch_size=self._batch_size,
        )

        snapshot = build_snapshot(
            league_id=str(league_id),
            gameweek=gameweek,
            bootstrap=bootstrap,
            standings=standings,
            live_points=live_points,
            bundles=MappingProxyType(bundles),
            created_at=isoformat_utc(self._clock()),
            local_tz=self._local_tz,
            form_window=self._form_window,
        )
        snapshot = narrate(snapshot)
        _logger.info("Snapshot for GW %s composed with template %s", gameweek, snapshot.butler.template_id)
        return snapshot


async def compose_with_retry(
    composer: SnapshotComposer,
    league_id: str | int,
    gameweek: int,
    *,
    attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 10.0,
) -> Snapshot:
    """Retry a whole composition when an upstream resource fails."""

    retrying = AsyncRetrying(
        retry=retry_if_exception_type(UpstreamError),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        before_sleep=before_sleep_log(_logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await composer.compose(league_id, gameweek)
    raise RuntimeError("retry loop exited without a result")


@asynccontextmanager
async def open_client(settings: Settings) -> AsyncIterator[FPLClient]:
    """Yield an :class:`FPLClient` bound to a fresh session for one run."""

    session = create_session(settings.headers)
    try:
        yield FPLClient.from_settings(session, settings)
    finally:
        await safe_close_session(session)


__all__ = [
    "SnapshotComposer",
    "build_snapshot",
    "compose_with_retry",
    "isoformat_utc",
    "narrate",
    "open_client",
]

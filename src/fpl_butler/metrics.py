"""Weekly league statistics computed from already-fetched FPL data.

Every function here is pure and total: inputs are the standings rows (in
upstream order, which is the canonical tie-break order), the per-entry bundles
and the read-only live/catalog maps built once per composition. Missing
sub-resources map to documented fallbacks instead of raising.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Mapping, Sequence

from .fpl.utils import player_label
from .types import (
    CHIP_EMOJI,
    BenchWarmer,
    ChipsUsed,
    ChipUse,
    DifferentialHero,
    EntryBundle,
    EntryHistory,
    EntryPicks,
    Form,
    FormRow,
    Highlight,
    LeagueEntry,
    Movement,
    Movements,
    RankedTeam,
    TransferPick,
    TransferRoi,
    WeeklyResult,
)

PLACEHOLDER = "-"
NO_TRANSFERS = "No transfers"
DEFAULT_CHIP_EMOJI = "🎯"
DEFAULT_FORM_WINDOW = 3
DIFFERENTIAL_SHARE = 0.25
DIFFERENTIAL_MIN_OWNERS = 3

Bundles = Mapping[int, EntryBundle]
PointsMap = Mapping[int, int]
Catalog = Mapping[int, str]

_EMPTY_BUNDLE = EntryBundle()


def _bundle(bundles: Bundles, entry: LeagueEntry) -> EntryBundle:
    return bundles.get(entry.entry, _EMPTY_BUNDLE)


def _event_points(entry: LeagueEntry) -> int:
    return entry.event_total or 0


# ---------------------------------------------------------------------------
# Standings blocks
# ---------------------------------------------------------------------------


def top_three(entries: Sequence[LeagueEntry]) -> tuple[RankedTeam, ...]:
    return tuple(
        RankedTeam(rank=index + 1, team=row.entry_name, manager=row.player_name, points=row.total)
        for index, row in enumerate(entries[:3])
    )


def bottom_three(entries: Sequence[LeagueEntry]) -> tuple[RankedTeam, ...]:
    """Last three standings positions, ascending by position."""

    tail = entries[-3:] if entries else []
    first_rank = len(entries) - len(tail) + 1
    return tuple(
        RankedTeam(rank=first_rank + index, team=row.entry_name, manager=row.player_name, points=row.total)
        for index, row in enumerate(tail)
    )


# ---------------------------------------------------------------------------
# Weekly block
# ---------------------------------------------------------------------------


def _weekly_result(entry: LeagueEntry | None) -> WeeklyResult:
    if entry is None:
        return WeeklyResult(team=PLACEHOLDER, manager=PLACEHOLDER, points=0)
    return WeeklyResult(team=entry.entry_name, manager=entry.player_name, points=_event_points(entry))


def weekly_winner(entries: Sequence[LeagueEntry]) -> WeeklyResult:
    """Highest gameweek score; ties keep standings order."""

    return _weekly_result(max(entries, key=_event_points, default=None))


def weekly_loser(entries: Sequence[LeagueEntry]) -> WeeklyResult:
    """Lowest gameweek score; ties keep standings order."""

    return _weekly_result(min(entries, key=_event_points, default=None))


def bench_points(picks: EntryPicks | None, live_points: PointsMap) -> int:
    """Live points left on the bench (multiplier 0 picks)."""

    if picks is None:
        return 0
    return sum(live_points.get(pick.element, 0) for pick in picks.picks if pick.multiplier == 0)


def bench_warmer(
    entries: Sequence[LeagueEntry], bundles: Bundles, live_points: PointsMap
) -> BenchWarmer:
    """Entry with most bench points; lower entry id wins a tie."""

    if not entries:
        return BenchWarmer(manager=PLACEHOLDER, team=PLACEHOLDER, bench_points=0)
    scored = [
        (bench_points(_bundle(bundles, entry).picks, live_points), entry) for entry in entries
    ]
    points, best = min(scored, key=lambda item: (-item[0], item[1].entry))
    return BenchWarmer(manager=best.player_name, team=best.entry_name, bench_points=points)


def chips_used(entries: Sequence[LeagueEntry], bundles: Bundles) -> ChipsUsed:
    uses: list[ChipUse] = []
    for entry in entries:
        picks = _bundle(bundles, entry).picks
        if picks is None or not picks.active_chip:
            continue
        uses.append(
            ChipUse(
                manager=entry.player_name,
                team=entry.entry_name,
                chip=picks.active_chip,
                emoji=CHIP_EMOJI.get(picks.active_chip, DEFAULT_CHIP_EMOJI),
            )
        )
    return ChipsUsed.from_uses(uses)


def rank_delta(entry: LeagueEntry) -> int:
    """Places gained since the previous gameweek (positive means climbed)."""

    return (entry.last_rank or entry.rank) - entry.rank


def rank_movements(entries: Sequence[LeagueEntry]) -> Movements:
    """Biggest riser and faller.

    The riser's delta is floored at 0 and the faller's capped at 0, so a league
    that only moved one way reports 0 for the other side.
    """

    if not entries:
        empty = Movement(manager=PLACEHOLDER, team=PLACEHOLDER, delta=0)
        return Movements(riser=empty, faller=empty)
    riser = max(entries, key=rank_delta)
    faller = min(entries, key=rank_delta)
    return Movements(
        riser=Movement(manager=riser.player_name, team=riser.entry_name, delta=max(0, rank_delta(riser))),
        faller=Movement(manager=faller.player_name, team=faller.entry_name, delta=min(0, rank_delta(faller))),
    )


# ---------------------------------------------------------------------------
# Form
# ---------------------------------------------------------------------------


def form_window_size(gameweek: int, window: int = DEFAULT_FORM_WINDOW) -> int:
    return max(0, min(window, gameweek))


def history_points(history: EntryHistory | None, gameweeks: set[int]) -> int:
    if history is None:
        return 0
    return sum(record.points for record in history.current if record.event in gameweeks)


def form_points(
    entry: LeagueEntry,
    history: EntryHistory | None,
    gameweek: int,
    window: int = DEFAULT_FORM_WINDOW,
) -> int:
    """Points over the trailing window ending at ``gameweek``.

    When the window spans the whole season so far and the history ends at
    ``gameweek`` (or is unavailable) the league total is used. An older
    ``gameweek`` sums the history instead, since the total runs to date.
    """

    size = form_window_size(gameweek, window)
    if size == gameweek:
        played = [record.event for record in history.current] if history is not None else []
        if not played or max(played) == gameweek:
            return entry.total
    return history_points(history, set(range(gameweek - size + 1, gameweek + 1)))


def form_table(
    entries: Sequence[LeagueEntry],
    bundles: Bundles,
    gameweek: int,
    window: int = DEFAULT_FORM_WINDOW,
) -> Form:
    rows = [
        FormRow(
            manager=entry.player_name,
            team=entry.entry_name,
            points=form_points(entry, _bundle(bundles, entry).history, gameweek, window),
        )
        for entry in entries
    ]
    ranked = sorted(rows, key=lambda row: -row.points)
    return Form(
        window=form_window_size(gameweek, window),
        hot=tuple(ranked[:3]),
        cold=tuple(reversed(ranked[-3:])),
    )


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


def transfer_roi(
    entries: Sequence[LeagueEntry],
    bundles: Bundles,
    live_points: PointsMap,
    catalog: Catalog,
    gameweek: int,
) -> TransferRoi:
    """Best and worst single transfer-in of ``gameweek`` by the player's live points."""

    moves: list[TransferPick] = []
    for entry in entries:
        for transfer in _bundle(bundles, entry).transfers:
            if transfer.event != gameweek:
                continue
            moves.append(
                TransferPick(
                    manager=entry.player_name,
                    team=entry.entry_name,
                    player=player_label(transfer.element_in, catalog),
                    roi=live_points.get(transfer.element_in, 0),
                )
            )

    if not moves:
        sentinel = TransferPick(manager=PLACEHOLDER, team=PLACEHOLDER, player=NO_TRANSFERS, roi=0)
        return TransferRoi(genius=sentinel, bomb=sentinel)
    return TransferRoi(
        genius=max(moves, key=lambda move: move.roi),
        bomb=min(moves, key=lambda move: move.roi),
    )


# ---------------------------------------------------------------------------
# Differential hero
# ---------------------------------------------------------------------------


def ownership_counts(entries: Sequence[LeagueEntry], bundles: Bundles) -> Counter[int]:
    """Number of entries whose picks include each player."""

    counts: Counter[int] = Counter()
    for entry in entries:
        picks = _bundle(bundles, entry).picks
        if picks is not None:
            counts.update({pick.element for pick in picks.picks})
    return counts


def differential_threshold(total_entries: int) -> int:
    return max(DIFFERENTIAL_MIN_OWNERS, math.floor(max(total_entries, 1) * DIFFERENTIAL_SHARE))


def differential_hero(
    entries: Sequence[LeagueEntry],
    bundles: Bundles,
    live_points: PointsMap,
    catalog: Catalog,
) -> DifferentialHero:
    """Best-scoring player owned by few entries.

    A player qualifies with at least one point and an ownership of at most
    ``max(3, floor(entries * 0.25))``. Highest points wins, then the name in
    code-point order, then the lower player id.
    """

    counts = ownership_counts(entries, bundles)
    limit = differential_threshold(len(entries))
    candidates = [
        (live_points.get(player_id, 0), player_label(player_id, catalog), player_id)
        for player_id, owners in counts.items()
        if owners <= limit and live_points.get(player_id, 0) >= 1
    ]
    if not candidates:
        return DifferentialHero(player=PLACEHOLDER, points=0, ownership=0)

    points, name, player_id = min(candidates, key=lambda item: (-item[0], item[1], item[2]))
    owners = [
        entry
        for entry in entries
        if any(pick.element == player_id for pick in (_bundle(bundles, entry).picks or EntryPicks()).picks)
    ]
    return DifferentialHero(
        player=name,
        points=points,
        ownership=len(owners),
        owned_by=tuple(entry.entry_name for entry in owners),
        managers=tuple(entry.player_name for entry in owners),
    )


# ---------------------------------------------------------------------------
# Highlights
# ---------------------------------------------------------------------------


def captaincy_line(entries: Sequence[LeagueEntry], bundles: Bundles, catalog: Catalog) -> str:
    captains: Counter[int] = Counter()
    for entry in entries:
        picks = _bundle(bundles, entry).picks
        if picks is None:
            continue
        captain = next((pick for pick in picks.picks if pick.is_captain), None)
        if captain is not None:
            captains[captain.element] += 1
    if not captains or not entries:
        return "Captaincy: no captain picks were recorded this gameweek."
    player_id, count = min(captains.items(), key=lambda item: (-item[1], item[0]))
    share = math.floor(count * 100 / len(entries) + 0.5)
    return f"Captaincy: {share}% handed the armband to {player_label(player_id, catalog)}."


def transfer_volume_line(entries: Sequence[LeagueEntry], bundles: Bundles) -> str:
    total = 0
    gambler: LeagueEntry | None = None
    gambler_cost = 0
    for entry in entries:
        picks = _bundle(bundles, entry).picks
        if picks is None or picks.entry_history is None:
            continue
        total += picks.entry_history.event_transfers
        if picks.entry_history.event_transfers_cost > gambler_cost:
            gambler = entry
            gambler_cost = picks.entry_history.event_transfers_cost
    line = f"{total} transfers were made in the league this gameweek."
    if gambler is not None:
        line += f" Biggest gambler: {gambler.player_name} with -{gambler_cost} points in hits."
    return line


def highlights(
    entries: Sequence[LeagueEntry],
    bundles: Bundles,
    catalog: Catalog,
    *,
    winner: WeeklyResult,
    chips: ChipsUsed,
    movements: Movements,
) -> tuple[Highlight, ...]:
    lines = [
        f"Hero of the round: {winner.manager} with {winner.points} points",
        f"{chips.count} chips were activated this gameweek",
        f"Biggest move: {movements.riser.manager} (+{movements.riser.delta} places)",
        captaincy_line(entries, bundles, catalog),
        transfer_volume_line(entries, bundles),
    ]
    return tuple(Highlight(id=index, text=text) for index, text in enumerate(lines, start=1))


__all__ = [
    "DEFAULT_FORM_WINDOW",
    "NO_TRANSFERS",
    "PLACEHOLDER",
    "bench_points",
    "bench_warmer",
    "bottom_three",
    "captaincy_line",
    "chips_used",
    "differential_hero",
    "differential_threshold",
    "form_points",
    "form_table",
    "form_window_size",
    "highlights",
    "history_points",
    "ownership_counts",
    "rank_delta",
    "rank_movements",
    "top_three",
    "transfer_roi",
    "transfer_volume_line",
    "weekly_loser",
    "weekly_winner",
]

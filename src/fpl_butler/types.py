"""Shared type definitions for upstream payloads and the persisted snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# =============================================================================
# Upstream records (FPL JSON, snake_case as served)
# =============================================================================

CHIP_ALIASES = {
    "3xc": "triple_captain",
    "triple_captain": "triple_captain",
    "wildcard": "wildcard",
    "freehit": "freehit",
    "free_hit": "freehit",
    "bboost": "bench_boost",
    "bench_boost": "bench_boost",
}

CHIP_EMOJI = {
    "triple_captain": "⚡",
    "wildcard": "🃏",
    "freehit": "🎯",
    "bench_boost": "🏟️",
}


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class Element(_Record):
    """Player entry from ``bootstrap-static``."""

    id: int
    web_name: str


class Event(_Record):
    """Gameweek entry from ``bootstrap-static``."""

    id: int
    name: str = ""
    is_current: bool = False
    is_next: bool = False
    finished: bool = False
    deadline_time: str | None = None


class Bootstrap(_Record):
    elements: tuple[Element, ...] = ()
    events: tuple[Event, ...] = ()


class LeagueEntry(_Record):
    """One participant row of the classic league standings."""

    entry: int
    entry_name: str
    player_name: str
    rank: int
    last_rank: int | None = None  # None/0: no movement data
    total: int = 0
    event_total: int | None = None  # None: gameweek not graded yet


class LeagueStandings(_Record):
    league_name: str
    entries: tuple[LeagueEntry, ...] = ()


class Pick(_Record):
    element: int
    position: int = 0
    multiplier: int = 1
    is_captain: bool = False


class PicksEntryHistory(_Record):
    event_transfers: int = 0
    event_transfers_cost: int = 0


class EntryPicks(_Record):
    picks: tuple[Pick, ...] = ()
    active_chip: str | None = None
    entry_history: PicksEntryHistory | None = None

    @field_validator("active_chip", mode="before")
    @classmethod
    def _normalise_chip(cls, value: Any) -> str | None:
        if not value:
            return None
        text = str(value).strip().lower()
        return CHIP_ALIASES.get(text, text)


class HistoryEvent(_Record):
    event: int
    points: int = 0
    total_points: int | None = None
    event_transfers: int = 0
    event_transfers_cost: int = 0


class EntryHistory(_Record):
    current: tuple[HistoryEvent, ...] = ()


class Transfer(_Record):
    element_in: int
    element_out: int
    event: int


@dataclass(frozen=True, slots=True)
class EntryBundle:
    """Per-entry sub-resources gathered for one composition.

    ``None``/empty means the sub-resource could not be fetched.
    """

    picks: EntryPicks | None = None
    history: EntryHistory | None = None
    transfers: tuple[Transfer, ...] = ()


# =============================================================================
# Snapshot (camelCase on the wire)
# =============================================================================


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class SnapshotMeta(_SnapshotModel):
    league_id: str
    league_name: str
    gameweek: int
    created_at: str


class ButlerSummary(_SnapshotModel):
    summary: str = ""
    template_id: str = ""


class RankedTeam(_SnapshotModel):
    rank: int
    team: str
    manager: str
    points: int


class WeeklyResult(_SnapshotModel):
    team: str
    manager: str
    points: int


class BenchWarmer(_SnapshotModel):
    manager: str
    team: str
    bench_points: int


class ChipUse(_SnapshotModel):
    manager: str
    team: str
    chip: str
    emoji: str


class ChipsUsed(_SnapshotModel):
    count: int
    entries: tuple[ChipUse, ...] = Field(default=(), alias="list")

    @model_validator(mode="after")
    def _count_matches_list(self) -> ChipsUsed:
        if self.count != len(self.entries):
            raise ValueError(
                f"chipsUsed.count={self.count} but list has {len(self.entries)} items"
            )
        return self

    @classmethod
    def from_uses(cls, uses: tuple[ChipUse, ...] | list[ChipUse]) -> ChipsUsed:
        return cls(count=len(uses), entries=tuple(uses))


class Movement(_SnapshotModel):
    manager: str
    team: str
    delta: int


class Movements(_SnapshotModel):
    riser: Movement
    faller: Movement


class NextDeadline(_SnapshotModel):
    gw: int
    date: str
    time: str


class Weekly(_SnapshotModel):
    winner: WeeklyResult
    loser: WeeklyResult
    bench_warmer: BenchWarmer
    chips_used: ChipsUsed
    movements: Movements
    next_deadline: NextDeadline


class FormRow(_SnapshotModel):
    manager: str
    team: str
    points: int


class Form(_SnapshotModel):
    window: int
    hot: tuple[FormRow, ...] = ()
    cold: tuple[FormRow, ...] = ()


class TransferPick(_SnapshotModel):
    manager: str
    team: str
    player: str
    roi: int


class TransferRoi(_SnapshotModel):
    genius: TransferPick
    bomb: TransferPick


class Highlight(_SnapshotModel):
    id: int
    text: str


class DifferentialHero(_SnapshotModel):
    player: str
    points: int
    ownership: int
    owned_by: tuple[str, ...] = ()
    managers: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _ownership_matches_owners(self) -> DifferentialHero:
        if not self.ownership == len(self.owned_by) == len(self.managers):
            raise ValueError(
                "differentialHero.ownership must equal len(ownedBy) and len(managers)"
            )
        return self


class Snapshot(_SnapshotModel):
    """Immutable weekly record for one (league, gameweek)."""

    meta: SnapshotMeta
    butler: ButlerSummary
    top3: tuple[RankedTeam, ...]
    bottom3: tuple[RankedTeam, ...]
    weekly: Weekly
    form3: Form
    transfer_roi: TransferRoi
    highlights: tuple[Highlight, ...] = ()
    differential_hero: DifferentialHero

    @model_validator(mode="after")
    def _ranked_blocks_are_ordered(self) -> Snapshot:
        if len(self.top3) > 3:
            raise ValueError("top3 holds at most three teams")
        if [team.rank for team in self.top3] != list(range(1, len(self.top3) + 1)):
            raise ValueError("top3 ranks must run 1..n in order")
        if len(self.bottom3) > 3:
            raise ValueError("bottom3 holds at most three teams")
        ranks = [team.rank for team in self.bottom3]
        if ranks and ranks != list(range(ranks[0], ranks[0] + len(ranks))):
            raise ValueError("bottom3 ranks must be consecutive and ascending")
        return self

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Archive records
# =============================================================================


class HistoryItem(_SnapshotModel):
    id: int
    title: str
    url: str
    filename: str | None = None  # redirect to a corrected version


class AISummary(_SnapshotModel):
    gameweek: int
    summary: str
    generated_at: str


class UsedTemplate(_SnapshotModel):
    gw: int
    template_id: str


class ProgressionPoint(_SnapshotModel):
    gw: int
    rank: int


class ManagerProgression(_SnapshotModel):
    name: str
    data: tuple[ProgressionPoint, ...] = ()


class Progression(_SnapshotModel):
    managers: tuple[ManagerProgression, ...] = ()
    gameweeks: tuple[int, ...] = ()


__all__ = [
    "AISummary",
    "BenchWarmer",
    "Bootstrap",
    "ButlerSummary",
    "CHIP_EMOJI",
    "ChipUse",
    "ChipsUsed",
    "DifferentialHero",
    "Element",
    "EntryBundle",
    "EntryHistory",
    "EntryPicks",
    "Event",
    "Form",
    "FormRow",
    "Highlight",
    "HistoryEvent",
    "HistoryItem",
    "LeagueEntry",
    "LeagueStandings",
    "ManagerProgression",
    "Movement",
    "Movements",
    "NextDeadline",
    "Pick",
    "PicksEntryHistory",
    "Progression",
    "ProgressionPoint",
    "RankedTeam",
    "Snapshot",
    "SnapshotMeta",
    "Transfer",
    "TransferPick",
    "TransferRoi",
    "UsedTemplate",
    "Weekly",
    "WeeklyResult",
]

"""Deterministic butler commentary for a composed snapshot.

Text is chosen from fixed phrase banks with a stable string hash, so the same
snapshot always reads the same way and different weeks read differently. Only
names that already appear in the snapshot are ever interpolated.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from .types import Snapshot, Weekly

_logger = logging.getLogger(__name__)

T = TypeVar("T")

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
_UINT32 = 0xFFFFFFFF

# Bench points above this are worth a jab.
BENCH_SHAME_THRESHOLD = 10


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a over the UTF-16 code units of ``text``."""

    value = FNV_OFFSET_BASIS
    encoded = text.encode("utf-16-le")
    for index in range(0, len(encoded), 2):
        value ^= encoded[index] | (encoded[index + 1] << 8)
        value = (value * FNV_PRIME) & _UINT32
    return value


def pick(items: Sequence[T], seed: str) -> T:
    if not items:
        raise ValueError("cannot pick from an empty sequence")
    return items[fnv1a_32(seed) % len(items)]


def build_seed(snapshot: Snapshot) -> str:
    """Seed string keyed by the gameweek and the week's headline names."""

    weekly = snapshot.weekly
    payload = {
        "gw": snapshot.meta.gameweek,
        "w": weekly.winner.manager,
        "l": weekly.loser.manager,
        "r": weekly.movements.riser.manager,
        "f": weekly.movements.faller.manager,
        "b": weekly.bench_warmer.bench_points,
    }
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class _Picker:
    def __init__(self, seed: str) -> None:
        self.seed = seed

    def __call__(self, items: Sequence[str], slot: str) -> str:
        return pick(items, f"{self.seed}|{slot}")


# ---------------------------------------------------------------------------
# Shared phrase fragments
# ---------------------------------------------------------------------------


def _bench_jab(weekly: Weekly) -> str | None:
    bench = weekly.bench_warmer
    if bench.bench_points > BENCH_SHAME_THRESHOLD:
        return f"{bench.manager} left {bench.bench_points} points on the bench"
    return None


def _chip_lines(weekly: Weekly) -> list[str]:
    chips = weekly.chips_used
    if chips.count:
        first = chips.entries[0].manager
        return [
            f"{first} activated a chip – the butler trusts it was worth the investment.",
            f"A chip was played by {first} – desperate, but understandable.",
            f"{chips.count} chip(s) were spent this week, {first} leading the charge.",
        ]
    return [
        "Nobody dared to play a chip this week – a decision the butler respects.",
        "Chip usage was non-existent this week – perhaps wisdom, perhaps cowardice.",
    ]


# ---------------------------------------------------------------------------
# Structures
# ---------------------------------------------------------------------------


def _classic(weekly: Weekly, choose: _Picker) -> str:
    winner, loser, riser = weekly.winner, weekly.loser, weekly.movements.riser
    climbed = (
        f" and climbed {riser.delta} places"
        if riser.manager == winner.manager and riser.delta > 0
        else ""
    )
    openings = [
        "The butler has observed this week's amateur display:",
        "As expected, the managers delivered a mixed performance:",
        "The butler notes the following from this week's efforts:",
        "Having studied the numbers with professional disdain:",
        "As always, the butler must correct the managers' notion of success:",
    ]
    top = [
        f"{winner.manager} took {winner.points} points{climbed} – impressive, yet still below the butler's standard.",
        f"{winner.manager} delivered {winner.points} points this round – a rare moment of competence the butler acknowledges.",
        f"{winner.manager} scored {winner.points} points – a performance that almost qualifies as satisfactory.",
    ]
    jab = _bench_jab(weekly)
    weak = [
        f"{loser.manager} managed {loser.points} points – so feeble that even the bench considered a transfer request.",
        f"{loser.manager} scored {loser.points} points, a performance that has the butler contemplating a career change on their behalf.",
        f"{jab or f'{loser.manager} delivered {loser.points} points'} – the butler is not surprised.",
    ]
    closings = [
        "This round proved one can climb, fall and still fail to impress. The butler expects more next week.",
        "As always, the butler is impressed by the managers' ability to disappoint expectations.",
        "The butler concludes that football is evidently harder than it looks on television.",
    ]
    return " ".join(
        (
            choose(openings, "o"),
            choose(top, "t"),
            choose(weak, "w"),
            choose(_chip_lines(weekly), "s"),
            choose(closings, "p"),
        )
    )


def _story(weekly: Weekly, choose: _Picker) -> str:
    winner, loser = weekly.winner, weekly.loser
    riser, faller = weekly.movements.riser, weekly.movements.faller
    themes = [
        "This week's saga is one of triumph and defeat:",
        "The tale that unfolded this week",
        "In this episode of managerial drama",
    ]
    stories = [
        f"we watched {winner.manager} rise to the top with {winner.points} points while {loser.manager} sank to the bottom with {loser.points}.",
        f"{winner.manager} sparkled with {winner.points} points and {loser.manager} demonstrated how to reach {loser.points} points with style.",
    ]
    still = "The table itself barely stirred, which the butler finds fitting."
    twists = [
        f"The plot thickened as {riser.manager} climbed {riser.delta} places." if riser.delta > 0 else still,
        (
            f"Meanwhile {faller.manager} slid {abs(faller.delta)} places, a subplot nobody requested."
            if faller.delta < 0
            else still
        ),
        still,
    ]
    conclusions = [
        "The butler awaits the next chapter with customary optimism.",
        "The story continues; the butler observes.",
    ]
    return " ".join(
        (
            choose(themes, "theme"),
            choose(stories, "story"),
            choose(twists, "twist"),
            choose(_chip_lines(weekly), "s"),
            choose(conclusions, "conclusion"),
        )
    )


def _listing(weekly: Weekly, choose: _Picker) -> str:
    winner, loser = weekly.winner, weekly.loser
    jab = _bench_jab(weekly)
    intros = [
        "The butler's three main observations from this week:",
        "This week's key lessons, according to the butler:",
    ]
    first = [f"First: {winner.manager} delivered {winner.points} points and showed sporadic competence."]
    second = [
        f"Second: {loser.manager} with {loser.points} points confirmed that consistency exists – just not the desirable kind."
    ]
    third = (
        [f"Third: {jab} – an art few have mastered."]
        if jab
        else ["Third: bench management was consistently creative this week."]
    )
    summaries = [
        "The butler concludes the list could have been longer, but patience has its limits.",
        "The butler leaves further points as an exercise for the managers.",
    ]
    return " ".join(
        (
            choose(intros, "intro"),
            choose(first, "p1"),
            choose(second, "p2"),
            choose(third, "p3"),
            choose(summaries, "summary"),
        )
    )


def _comparison(weekly: Weekly, choose: _Picker) -> str:
    winner, loser = weekly.winner, weekly.loser
    observers = [
        "The butler compares this week's performances:",
        "With a comparative eye, the butler notes:",
    ]
    winners = [
        f"On one hand we have {winner.manager}, who delivered {winner.points} points – an example of what focus can achieve."
    ]
    losers = [
        f"On the other hand we find {loser.manager} with {loser.points} points – an equally clear example of the alternative."
    ]
    futures = [
        "The butler predicts similar contrasts next week.",
        "The gap, the butler suspects, will not close by itself.",
    ]
    return " ".join(
        (
            choose(observers, "obs"),
            choose(winners, "win"),
            choose(losers, "lose"),
            choose(_chip_lines(weekly), "s"),
            choose(futures, "fut"),
        )
    )


_THEME_INTROS = {
    "chaos": "This week's theme is chaos, and the managers delivered as expected.",
    "stability": "Stability was this week's unofficial motto.",
    "surprises": "Surprises were to become the core of the week.",
    "consistency": "Consistency was the defining trait.",
    "contrasts": "Contrasts defined this gameweek.",
}


def _thematic(weekly: Weekly, choose: _Picker) -> str:
    winner, loser = weekly.winner, weekly.loser
    theme = choose(list(_THEME_INTROS), "theme")
    analyses = {
        "chaos": f"{winner.manager} navigated the chaos to {winner.points} points, while {loser.manager} was overwhelmed and ended on {loser.points}.",
        "stability": f"{winner.manager} held course for {winner.points} points, while {loser.manager} settled at {loser.points}.",
        "surprises": f"{winner.manager} surprised with {winner.points} points, while {loser.manager} surprised negatively with {loser.points}.",
        "consistency": f"{winner.manager} was consistently strong with {winner.points} points, {loser.manager} consistently weak with {loser.points}.",
        "contrasts": f"The contrast between {winner.manager}'s {winner.points} points and {loser.manager}'s {loser.points} was striking.",
    }
    conclusions = [
        "The butler notes the theme's impact.",
        "The theme is confirmed by the results.",
    ]
    return " ".join(
        (
            choose([_THEME_INTROS[theme]], "intro"),
            choose([analyses[theme]], "analysis"),
            choose(_chip_lines(weekly), "s"),
            choose(conclusions, "conclusion"),
        )
    )


STRUCTURES: tuple[tuple[str, Callable[[Weekly, _Picker], str]], ...] = (
    ("classic", _classic),
    ("story", _story),
    ("list", _listing),
    ("comparison", _comparison),
    ("thematic", _thematic),
)
STRUCTURE_NAMES = tuple(name for name, _ in STRUCTURES)


@dataclass(frozen=True, slots=True)
class Narrative:
    summary: str
    template_id: str


def compose_narrative(
    snapshot: Snapshot, structure: str | None = None, *, hotfix: bool = False
) -> Narrative:
    """Render the commentary for ``snapshot``.

    The structure is chosen from the seed unless ``structure`` forces one.
    Hotfix renders are tagged ``{index}-manual-hotfix-{name}``.
    """

    seed = build_seed(snapshot)
    if structure is None:
        index = fnv1a_32(f"{seed}|structure") % len(STRUCTURES)
    elif structure in STRUCTURE_NAMES:
        index = STRUCTURE_NAMES.index(structure)
    else:
        raise ValueError(f"unknown narrative structure {structure!r}; choose from {', '.join(STRUCTURE_NAMES)}")

    name, render = STRUCTURES[index]
    summary = render(snapshot.weekly, _Picker(seed))
    template_id = f"{index}-manual-hotfix-{name}" if hotfix else f"{index}-{name}"
    _logger.debug("Narrative for GW %s uses template %s", snapshot.meta.gameweek, template_id)
    return Narrative(summary=summary, template_id=template_id)


def generate(snapshot: Snapshot) -> str:
    return compose_narrative(snapshot).summary


__all__ = [
    "Narrative",
    "STRUCTURE_NAMES",
    "build_seed",
    "compose_narrative",
    "fnv1a_32",
    "generate",
    "pick",
]

"""Append-only archive of published snapshots and the indexes beside them.

Key layout inside the blob store::

    gw-{n}.json          first published snapshot for gameweek n
    gw-{n}.v{k}.json     k-th revision (k >= 2), never overwritten
    history.json         [{id, title, url, filename?}] newest first
    ai-summary.json      {gameweek, summary, generatedAt} of the latest week
    used-templates.json  [{gw, templateId}]

Only the three index keys are ever rewritten. A snapshot key, once written, is
immutable; corrections are stored under the next revision key and the history
entry for that gameweek is pointed at it through ``filename``.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ValidationError

from .composer import isoformat_utc, narrate
from .narrative import STRUCTURE_NAMES
from .store import BlobStore
from .types import (
    AISummary,
    ButlerSummary,
    HistoryItem,
    ManagerProgression,
    Progression,
    ProgressionPoint,
    Snapshot,
    UsedTemplate,
)

_logger = logging.getLogger(__name__)

HISTORY_KEY = "history.json"
SUMMARY_KEY = "ai-summary.json"
TEMPLATES_KEY = "used-templates.json"

_SNAPSHOT_KEY_RE = re.compile(r"^gw-(\d+)(?:\.v(\d+))?\.json$")
_SENTENCE_END_RE = re.compile(r"[.!?]")
_TITLE_LIMIT = 50
_TITLE_CUT = 47
_MISSING_RANK = 999


class ArchiveError(RuntimeError):
    """Raised when archived data cannot be read or written."""


class SnapshotNotFoundError(ArchiveError):
    """Raised when no snapshot exists for the requested gameweek."""

    def __init__(self, gameweek: int) -> None:
        self.gameweek = gameweek
        super().__init__(f"No snapshot stored for GW {gameweek}")


@dataclass(frozen=True, slots=True)
class PublishResult:
    gameweek: int
    key: str
    version: int
    history_item: HistoryItem
    summary_changed: bool


def snapshot_key(gameweek: int, version: int = 1) -> str:
    if version <= 1:
        return f"gw-{gameweek}.json"
    return f"gw-{gameweek}.v{version}.json"


def parse_snapshot_key(key: str) -> tuple[int, int] | None:
    """Return ``(gameweek, version)`` for a snapshot key, else ``None``."""

    match = _SNAPSHOT_KEY_RE.match(key)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2) or 1)


def history_title(gameweek: int, summary: str) -> str:
    """``GW {n} – {first sentence}``, shortened when the sentence runs long."""

    text = summary.strip()
    match = _SENTENCE_END_RE.search(text)
    first = text[: match.start()].strip() if match else text
    if len(first) > _TITLE_LIMIT:
        first = first[:_TITLE_CUT] + "..."
    return f"GW {gameweek} – {first}" if first else f"GW {gameweek}"


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SnapshotArchive:
    """Publish, correct and browse snapshots kept in a :class:`BlobStore`."""

    def __init__(self, store: BlobStore, *, clock: Callable[[], datetime] = _utc_now) -> None:
        self._store = store
        self._clock = clock

    # ------------------------------------------------------------------
    # Blob helpers
    # ------------------------------------------------------------------
    def _read_json(self, key: str) -> Any | None:
        raw = self._store.read_text(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ArchiveError(f"{key} is not valid JSON: {exc}") from exc

    def _write_json(self, key: str, payload: Any, *, overwrite: bool = False) -> None:
        text = json.dumps(payload, indent=2, ensure_ascii=False)
        self._store.write_text(key, text + "\n", overwrite=overwrite)

    def _read_list(self, key: str, model: type[BaseModel]) -> list[Any]:
        payload = self._read_json(key)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise ArchiveError(f"{key} must hold a JSON list")
        try:
            return [model.model_validate(item) for item in payload]
        except ValidationError as exc:
            raise ArchiveError(f"{key} has an unexpected shape: {exc}") from exc

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def versions(self, gameweek: int) -> list[int]:
        found = []
        for key in self._store.list_keys(f"gw-{gameweek}."):
            parsed = parse_snapshot_key(key)
            if parsed is not None and parsed[0] == gameweek:
                found.append(parsed[1])
        return sorted(found)

    def current_key(self, gameweek: int) -> str | None:
        """Key a reader should load for ``gameweek``: the history redirect if any."""

        for item in self.history():
            if item.id == gameweek and item.filename:
                return item.filename
        versions = self.versions(gameweek)
        if not versions:
            return None
        return snapshot_key(gameweek, versions[-1])

    def load_snapshot(self, gameweek: int, *, key: str | None = None) -> Snapshot:
        key = key or self.current_key(gameweek)
        payload = self._read_json(key) if key else None
        if payload is None:
            raise SnapshotNotFoundError(gameweek)
        try:
            return Snapshot.model_validate(payload)
        except ValidationError as exc:
            raise ArchiveError(f"{key} is not a valid snapshot: {exc}") from exc

    def publish(self, snapshot: Snapshot) -> PublishResult:
        """Store ``snapshot`` under the next free key for its gameweek and update the indexes."""

        gameweek = snapshot.meta.gameweek
        existing = self.versions(gameweek)
        version = existing[-1] + 1 if existing else 1
        key = snapshot_key(gameweek, version)
        self._write_json(key, snapshot.to_json_dict())
        _logger.info("Stored %s", key)

        item = HistoryItem(
            id=gameweek,
            title=history_title(gameweek, snapshot.butler.summary),
            url=self._store.url_for(key),
            filename=key if version > 1 else None,
        )
        self._upsert_history(item)
        changed = self._update_summary(gameweek, snapshot.butler.summary)
        self._record_template(gameweek, snapshot.butler.template_id)
        return PublishResult(
            gameweek=gameweek, key=key, version=version, history_item=item, summary_changed=changed
        )

    def hotfix(
        self, gameweek: int, *, summary: str | None = None, structure: str = "classic"
    ) -> PublishResult:
        """Write a corrected revision of ``gameweek`` with new commentary.

        Without ``summary`` the stored data is re-narrated using ``structure``.
        The original revision is left untouched.
        """

        if structure not in STRUCTURE_NAMES:
            raise ArchiveError(f"Unknown narrative structure {structure!r}")
        current = self.load_snapshot(gameweek)
        if summary is None:
            corrected = narrate(current, structure, hotfix=True)
        else:
            index = STRUCTURE_NAMES.index(structure)
            corrected = current.model_copy(
                update={
                    "butler": ButlerSummary(
                        summary=summary.strip(), template_id=f"{index}-manual-hotfix-{structure}"
                    )
                }
            )

        versions = self.versions(gameweek)
        version = (versions[-1] if versions else 1) + 1
        key = snapshot_key(gameweek, version)
        self._write_json(key, corrected.to_json_dict())
        _logger.info("Stored hotfix %s (template %s)", key, corrected.butler.template_id)

        previous = next((item for item in self.history() if item.id == gameweek), None)
        item = HistoryItem(
            id=gameweek,
            title=previous.title if previous else history_title(gameweek, corrected.butler.summary),
            url=self._store.url_for(key),
            filename=key,
        )
        self._upsert_history(item)
        changed = self._update_summary(gameweek, corrected.butler.summary)
        self._record_template(gameweek, corrected.butler.template_id)
        return PublishResult(
            gameweek=gameweek, key=key, version=version, history_item=item, summary_changed=changed
        )

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------
    def history(self) -> list[HistoryItem]:
        return self._read_list(HISTORY_KEY, HistoryItem)

    def _upsert_history(self, item: HistoryItem) -> None:
        items = [existing for existing in self.history() if existing.id != item.id]
        items.append(item)
        items.sort(key=lambda entry: entry.id, reverse=True)
        self._write_json(
            HISTORY_KEY,
            [entry.model_dump(mode="json", by_alias=True, exclude_none=True) for entry in items],
            overwrite=True,
        )

    def latest_summary(self) -> AISummary | None:
        payload = self._read_json(SUMMARY_KEY)
        if payload is None:
            return None
        try:
            return AISummary.model_validate(payload)
        except ValidationError as exc:
            raise ArchiveError(f"{SUMMARY_KEY} has an unexpected shape: {exc}") from exc

    def summary_changed(self, gameweek: int, summary: str) -> bool:
        """True when ``summary`` differs from what polling consumers last saw."""

        latest = self.latest_summary()
        return latest is None or latest.gameweek != gameweek or latest.summary != summary

    def _update_summary(self, gameweek: int, summary: str) -> bool:
        latest = self.latest_summary()
        if latest is not None and latest.gameweek > gameweek:
            _logger.debug("Keeping %s for GW %s", SUMMARY_KEY, latest.gameweek)
            return False
        if not self.summary_changed(gameweek, summary):
            return False
        record = AISummary(gameweek=gameweek, summary=summary, generated_at=isoformat_utc(self._clock()))
        self._write_json(SUMMARY_KEY, record.model_dump(mode="json", by_alias=True), overwrite=True)
        return True

    def used_templates(self) -> list[UsedTemplate]:
        return self._read_list(TEMPLATES_KEY, UsedTemplate)

    def _record_template(self, gameweek: int, template_id: str) -> None:
        entries = [entry for entry in self.used_templates() if entry.gw != gameweek]
        entries.append(UsedTemplate(gw=gameweek, template_id=template_id))
        entries.sort(key=lambda entry: entry.gw)
        self._write_json(
            TEMPLATES_KEY,
            [entry.model_dump(mode="json", by_alias=True) for entry in entries],
            overwrite=True,
        )

    # ------------------------------------------------------------------
    # Progression
    # ------------------------------------------------------------------
    def progression(self) -> Progression:
        """Rank series per manager, from the top and bottom three of each base snapshot."""

        snapshots: list[tuple[int, Snapshot]] = []
        for key in self._store.list_keys("gw-"):
            parsed = parse_snapshot_key(key)
            if parsed is None or parsed[1] != 1 or parsed[0] <= 0:
                continue
            try:
                snapshots.append((parsed[0], self.load_snapshot(parsed[0], key=key)))
            except ArchiveError as exc:
                _logger.warning("Skipping %s in progression: %s", key, exc)
        if not snapshots:
            return Progression()

        snapshots.sort(key=lambda item: item[0])
        series: dict[str, list[ProgressionPoint]] = {}
        for gameweek, snapshot in snapshots:
            for team in (*snapshot.top3, *snapshot.bottom3):
                points = series.setdefault(team.manager, [])
                # top3 and bottom3 overlap in leagues of fewer than six
                if any(point.gw == gameweek for point in points):
                    continue
                points.append(ProgressionPoint(gw=gameweek, rank=team.rank))

        gameweeks = tuple(gameweek for gameweek, _ in snapshots)
        latest = gameweeks[-1]

        def latest_rank(manager: ManagerProgression) -> int:
            return next((point.rank for point in manager.data if point.gw == latest), _MISSING_RANK)

        managers = [
            ManagerProgression(name=name, data=tuple(sorted(points, key=lambda point: point.gw)))
            for name, points in series.items()
        ]
        managers.sort(key=latest_rank)
        return Progression(managers=tuple(managers), gameweeks=gameweeks)


__all__ = [
    "ArchiveError",
    "HISTORY_KEY",
    "PublishResult",
    "SUMMARY_KEY",
    "SnapshotArchive",
    "SnapshotNotFoundError",
    "TEMPLATES_KEY",
    "history_title",
    "parse_snapshot_key",
    "snapshot_key",
]

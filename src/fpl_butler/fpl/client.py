"""Thin typed client over the public FPL JSON endpoints.

The client never retries: a failed request surfaces as :class:`UpstreamError`
and the caller decides whether the resource is required (abort the composition)
or optional (substitute a fallback).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, TypeVar

import aiohttp
from pydantic import BaseModel, ValidationError

from ..config import DEFAULT_BASE_URL, Settings
from ..types import (
    Bootstrap,
    EntryHistory,
    EntryPicks,
    LeagueEntry,
    LeagueStandings,
    Transfer,
)

_logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Classic leagues are paged 50 rows at a time; private leagues rarely pass one page.
_MAX_STANDINGS_PAGES = 20


class UpstreamError(RuntimeError):
    """Raised when an FPL resource cannot be retrieved."""

    def __init__(self, url: str, status: int | None, message: str | None = None) -> None:
        self.url = url
        self.status = status
        detail = message or (f"HTTP {status}" if status is not None else "request failed")
        super().__init__(f"{url} -> {detail}")


class UpstreamFormatError(UpstreamError):
    """Raised when a resource answers with something other than the expected JSON."""

    def __init__(self, url: str, content_type: str, message: str | None = None) -> None:
        self.content_type = content_type
        super().__init__(url, None, message or f"non-JSON response ({content_type or 'no content type'})")


class FPLClient:
    """Fetch and validate FPL resources over a shared ``aiohttp`` session."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str = DEFAULT_BASE_URL,
        headers: Mapping[str, str] | None = None,
        timeout: float = 12.0,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})
        self._timeout = timeout

    @classmethod
    def from_settings(cls, session: aiohttp.ClientSession, settings: Settings) -> FPLClient:
        return cls(
            session,
            base_url=settings.base_url,
            headers=settings.headers,
            timeout=settings.request_timeout,
        )

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    async def fetch_json(self, url: str) -> Any:
        """GET ``url`` and return the decoded JSON body."""

        _logger.debug("Fetching %s", url)
        try:
            async with self._session.get(
                url,
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                if response.status < 200 or response.status >= 300:
                    body = await response.text()
                    _logger.debug("FPL %s for %s: %s", response.status, url, body[:200])
                    raise UpstreamError(url, response.status)
                content_type = response.headers.get("Content-Type", "")
                if "application/json" not in content_type:
                    raise UpstreamFormatError(url, content_type)
                return await response.json(content_type=None)
        except TimeoutError as exc:
            raise UpstreamError(url, None, f"timed out after {self._timeout:g}s") from exc
        except aiohttp.ClientError as exc:
            raise UpstreamError(url, None, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise UpstreamFormatError(url, "application/json", f"invalid JSON body: {exc}") from exc

    async def _fetch_model(self, path: str, model: type[ModelT]) -> ModelT:
        url = self.url(path)
        payload = await self.fetch_json(url)
        return _validate(url, model, payload)

    async def get_bootstrap(self) -> Bootstrap:
        return await self._fetch_model("bootstrap-static/", Bootstrap)

    async def get_league_standings(self, league_id: str | int) -> LeagueStandings:
        """Return every standings row of a classic league, following pagination."""

        league_name = ""
        entries: list[LeagueEntry] = []
        page = 1
        while True:
            url = self.url(f"leagues-classic/{league_id}/standings/?page_standings={page}")
            payload = await self.fetch_json(url)
            if not isinstance(payload, dict):
                raise UpstreamFormatError(url, "application/json", "standings payload is not an object")
            league_name = league_name or str((payload.get("league") or {}).get("name", ""))
            standings = payload.get("standings") or {}
            for row in standings.get("results") or []:
                entries.append(_validate(url, LeagueEntry, row))
            if not standings.get("has_next") or page >= _MAX_STANDINGS_PAGES:
                break
            page += 1

        return LeagueStandings(league_name=league_name, entries=tuple(entries))

    async def get_live_points(self, gameweek: int) -> Mapping[int, int]:
        """Return a read-only ``player id -> points`` map for ``gameweek``."""

        url = self.url(f"event/{gameweek}/live/")
        payload = await self.fetch_json(url)
        if not isinstance(payload, dict):
            raise UpstreamFormatError(url, "application/json", "live payload is not an object")
        points: dict[int, int] = {}
        for element in payload.get("elements") or []:
            if not isinstance(element, dict):
                continue
            try:
                player_id = int(element.get("id", element.get("element")))
            except (TypeError, ValueError):
                continue
            stats = element.get("stats") or {}
            points[player_id] = int(stats.get("total_points") or 0)
        return MappingProxyType(points)

    async def get_entry_picks(self, entry_id: int, gameweek: int) -> EntryPicks:
        return await self._fetch_model(f"entry/{entry_id}/event/{gameweek}/picks/", EntryPicks)

    async def get_entry_history(self, entry_id: int) -> EntryHistory:
        return await self._fetch_model(f"entry/{entry_id}/history/", EntryHistory)

    async def get_entry_transfers(self, entry_id: int) -> tuple[Transfer, ...]:
        url = self.url(f"entry/{entry_id}/transfers/")
        payload = await self.fetch_json(url)
        if not isinstance(payload, list):
            return ()
        return tuple(_validate(url, Transfer, item) for item in payload)


def _validate(url: str, model: type[ModelT], payload: Any) -> ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamFormatError(
            url,
            "application/json",
            f"unexpected {model.__name__} payload: {exc.error_count()} validation error(s)",
        ) from exc


__all__ = [
    "FPLClient",
    "UpstreamError",
    "UpstreamFormatError",
]

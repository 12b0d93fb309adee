"""Shared helpers for interacting with the public FPL API."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import aiohttp
from dateutil.parser import parse as parse_datetime

FPL_TIMEZONE = ZoneInfo("UTC")


def create_session(headers: dict[str, str] | None = None) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(headers=headers)


async def safe_close_session(session: aiohttp.ClientSession) -> None:
    if not session.closed:
        await session.close()


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name!r}") from exc


def parse_fpl_datetime(value: str) -> datetime:
    parsed = parse_datetime(value)
    if not isinstance(parsed, datetime):
        raise ValueError(f"Expected datetime, got {type(parsed)}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=FPL_TIMEZONE)
    return parsed.astimezone(FPL_TIMEZONE)


def format_deadline(value: str, local_tz: ZoneInfo) -> tuple[str, str]:
    """Return ``(DD.MM.YYYY, HH:MM)`` for an FPL deadline in ``local_tz``."""

    local = parse_fpl_datetime(value).astimezone(local_tz)
    return local.strftime("%d.%m.%Y"), local.strftime("%H:%M")


def player_label(player_id: int, catalog: Mapping[int, str] | None = None) -> str:
    if catalog is not None and player_id in catalog:
        return catalog[player_id]
    return f"#{player_id}"


__all__ = [
    "FPL_TIMEZONE",
    "create_session",
    "format_deadline",
    "parse_fpl_datetime",
    "player_label",
    "resolve_timezone",
    "safe_close_session",
]

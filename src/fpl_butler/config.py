"""Runtime configuration for the butler, sourced from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

PROJECT_ROOT = Path(__file__).resolve().parents[2]

DEFAULT_LEAGUE_ID = "155099"
DEFAULT_BASE_URL = "https://fantasy.premierleague.com/api"
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; FPL-Butler/1.0)"
DEFAULT_REFERER = "https://fantasy.premierleague.com/"
DEFAULT_STORE_DIR = PROJECT_ROOT / "var" / "butler"
DEFAULT_TIMEZONE = "Europe/Oslo"

_ENV_LOADED = False


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


@dataclass(frozen=True, slots=True)
class Settings:
    """Everything a composition or publish run needs to know up front."""

    league_id: str = DEFAULT_LEAGUE_ID
    base_url: str = DEFAULT_BASE_URL
    user_agent: str = DEFAULT_USER_AGENT
    referer: str = DEFAULT_REFERER
    request_timeout: float = 12.0
    batch_size: int = 5
    form_window: int = 3
    store_dir: Path = field(default=DEFAULT_STORE_DIR)
    timezone: str = DEFAULT_TIMEZONE

    @property
    def headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
            "Referer": self.referer,
        }

    def with_overrides(self, **changes: object) -> Settings:
        """Return a copy with every non-``None`` override applied."""

        applied = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **applied)  # type: ignore[arg-type]


def _load_env_file(path: Path) -> None:
    """Load simple KEY=VALUE pairs from an ``.env`` file into ``os.environ``.

    Variables already present in the environment win over the file.
    """

    try:
        raw_lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return

    for raw_line in raw_lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue

        if value and value[0] in {'"', "'"} and value[-1] == value[0]:
            value = value[1:-1]
        else:
            value = value.split(" #", 1)[0].rstrip()

        os.environ.setdefault(key, os.path.expandvars(value))


def _ensure_env_loaded() -> None:
    """Load the project ``.env`` file once per interpreter session."""

    global _ENV_LOADED
    if _ENV_LOADED:
        return
    _load_env_file(PROJECT_ROOT / ".env")
    _ENV_LOADED = True


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from ``env`` (``os.environ`` plus ``.env`` by default)."""

    if env is None:
        _ensure_env_loaded()
        env = os.environ

    store_dir = env.get("FPL_BUTLER_STORE_DIR")
    timezone = env.get("FPL_BUTLER_TIMEZONE") or DEFAULT_TIMEZONE
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"FPL_BUTLER_TIMEZONE is not a known timezone: {timezone!r}") from exc

    return Settings(
        league_id=env.get("FPL_LEAGUE_ID") or DEFAULT_LEAGUE_ID,
        base_url=(env.get("FPL_API_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        user_agent=env.get("FPL_USER_AGENT") or DEFAULT_USER_AGENT,
        referer=env.get("FPL_REFERER") or DEFAULT_REFERER,
        request_timeout=_positive_float(env, "FPL_REQUEST_TIMEOUT", 12.0),
        batch_size=_positive_int(env, "FPL_BATCH_SIZE", 5),
        form_window=_positive_int(env, "FPL_FORM_WINDOW", 3),
        store_dir=Path(store_dir) if store_dir else DEFAULT_STORE_DIR,
        timezone=timezone,
    )


__all__ = [
    "ConfigError",
    "PROJECT_ROOT",
    "Settings",
    "load_settings",
]

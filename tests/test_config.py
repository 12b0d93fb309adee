"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from fpl_butler import config


def test_defaults_when_environment_is_empty() -> None:
    settings = config.load_settings({})

    assert settings.league_id == config.DEFAULT_LEAGUE_ID
    assert settings.batch_size == 5
    assert settings.form_window == 3
    assert settings.request_timeout == 12.0
    assert settings.timezone == "Europe/Oslo"
    assert settings.headers == {
        "User-Agent": config.DEFAULT_USER_AGENT,
        "Accept": "application/json",
        "Referer": config.DEFAULT_REFERER,
    }


def test_environment_overrides(tmp_path: Path) -> None:
    settings = config.load_settings(
        {
            "FPL_LEAGUE_ID": "777",
            "FPL_API_BASE_URL": "https://mirror.test/api/",
            "FPL_REQUEST_TIMEOUT": "4.5",
            "FPL_BATCH_SIZE": "3",
            "FPL_FORM_WINDOW": "5",
            "FPL_BUTLER_STORE_DIR": str(tmp_path),
            "FPL_BUTLER_TIMEZONE": "UTC",
        }
    )

    assert settings.league_id == "777"
    assert settings.base_url == "https://mirror.test/api"
    assert settings.request_timeout == 4.5
    assert settings.batch_size == 3
    assert settings.form_window == 5
    assert settings.store_dir == tmp_path
    assert settings.timezone == "UTC"


@pytest.mark.parametrize(
    "name,value",
    [
        ("FPL_BATCH_SIZE", "many"),
        ("FPL_BATCH_SIZE", "0"),
        ("FPL_REQUEST_TIMEOUT", "-1"),
        ("FPL_BUTLER_TIMEZONE", "Mars/Olympus_Mons"),
    ],
)
def test_invalid_values_raise_config_error(name: str, value: str) -> None:
    with pytest.raises(config.ConfigError, match=name):
        config.load_settings({name: value})


def test_with_overrides_ignores_none(tmp_path: Path) -> None:
    settings = config.Settings()

    updated = settings.with_overrides(league_id="12", store_dir=None)

    assert updated.league_id == "12"
    assert updated.store_dir == settings.store_dir
    assert settings.league_id == config.DEFAULT_LEAGUE_ID


def test_env_file_does_not_override_existing_variables(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "\n".join(
            [
                "# local settings",
                "export FPL_LEAGUE_ID=999",
                'FPL_USER_AGENT="Butler Test Agent"',
                "FPL_BATCH_SIZE=4 # smaller batches",
                "FPL_FORM_WINDOW=6",
                "not a pair",
            ]
        ),
        encoding="utf-8",
    )
    environ = {"FPL_FORM_WINDOW": "2"}
    monkeypatch.setattr(config.os, "environ", environ)

    config._load_env_file(env_file)

    assert environ == {
        "FPL_FORM_WINDOW": "2",
        "FPL_LEAGUE_ID": "999",
        "FPL_USER_AGENT": "Butler Test Agent",
        "FPL_BATCH_SIZE": "4",
    }


def test_missing_env_file_is_ignored(tmp_path: Path) -> None:
    config._load_env_file(tmp_path / "absent.env")

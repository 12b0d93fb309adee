"""Command-line interface for composing and publishing weekly snapshots."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .archive import ArchiveError, PublishResult, SnapshotArchive, SnapshotNotFoundError
from .composer import SnapshotComposer, compose_with_retry, open_client
from .config import ConfigError, Settings, load_settings
from .fpl.client import UpstreamError
from .fpl.gameweeks import find_current_gameweek
from .narrative import STRUCTURE_NAMES
from .store import FileBlobStore, StoreError
from .types import Snapshot

EXIT_OK = 0
EXIT_COMPOSE_FAILED = 1
EXIT_USAGE = 2
EXIT_NOT_FOUND = 3
EXIT_STORE_FAILED = 4

_logger = logging.getLogger(__name__)


def _add_common_arguments(parser: argparse.ArgumentParser, *, upstream: bool = True) -> None:
    parser.add_argument(
        "--store-dir",
        type=Path,
        default=None,
        help="Directory holding published snapshots (default: FPL_BUTLER_STORE_DIR or var/butler)",
    )
    if upstream:
        parser.add_argument("--league-id", default=None, help="Classic league ID (default: FPL_LEAGUE_ID)")
        parser.add_argument(
            "--retries",
            type=int,
            default=1,
            help="Composition attempts when an FPL resource fails (default: 1)",
        )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fpl-butler",
        description="Compose, publish and browse weekly FPL league snapshots",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    compose_parser = subparsers.add_parser("compose", help="Compose a snapshot and print it as JSON")
    compose_parser.add_argument(
        "--gameweek", type=int, default=None, help="Gameweek to compose (default: current/next)"
    )
    compose_parser.add_argument(
        "--output", type=Path, default=None, help="Write the snapshot JSON here instead of stdout"
    )
    _add_common_arguments(compose_parser)

    publish_parser = subparsers.add_parser("publish", help="Compose a snapshot and store it")
    publish_parser.add_argument(
        "--gameweek", type=int, default=None, help="Gameweek to publish (default: current/next)"
    )
    _add_common_arguments(publish_parser)

    check_parser = subparsers.add_parser(
        "check", help="Publish the current gameweek once it has finished"
    )
    check_parser.add_argument(
        "--force",
        action="store_true",
        help="Publish a new revision even if the gameweek is already stored",
    )
    _add_common_arguments(check_parser)

    hotfix_parser = subparsers.add_parser(
        "hotfix", help="Store a corrected revision of a published gameweek"
    )
    hotfix_parser.add_argument("--gameweek", type=int, required=True, help="Gameweek to correct")
    hotfix_parser.add_argument(
        "--structure",
        choices=STRUCTURE_NAMES,
        default="classic",
        help="Narrative structure to re-render with (default: classic)",
    )
    hotfix_parser.add_argument("--summary", default=None, help="Replacement commentary text")
    _add_common_arguments(hotfix_parser, upstream=False)

    history_parser = subparsers.add_parser("history", help="Print the history index")
    _add_common_arguments(history_parser, upstream=False)

    summary_parser = subparsers.add_parser("summary", help="Print the latest published commentary")
    _add_common_arguments(summary_parser, upstream=False)

    progression_parser = subparsers.add_parser(
        "progression", help="Print per-manager rank progression across stored gameweeks"
    )
    _add_common_arguments(progression_parser, upstream=False)

    return parser


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger("fpl_butler")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setLevel(level)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _publish_payload(result: PublishResult) -> dict[str, Any]:
    return {
        "gameweek": result.gameweek,
        "key": result.key,
        "version": result.version,
        "summaryChanged": result.summary_changed,
        "history": result.history_item.model_dump(mode="json", by_alias=True, exclude_none=True),
    }


def _archive(settings: Settings) -> SnapshotArchive:
    return SnapshotArchive(FileBlobStore(settings.store_dir))


async def _compose(settings: Settings, gameweek: int | None, retries: int) -> Snapshot:
    async with open_client(settings) as client:
        composer = SnapshotComposer.from_settings(client, settings)
        if gameweek is None:
            gameweek = await composer.target_gameweek()
            _logger.info("Resolved target gameweek %s", gameweek)
        return await compose_with_retry(
            composer, settings.league_id, gameweek, attempts=max(1, retries)
        )


def _run_compose(args: argparse.Namespace, settings: Settings) -> int:
    snapshot = asyncio.run(_compose(settings, args.gameweek, args.retries))
    payload = snapshot.to_json_dict()
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        print(f"Snapshot for GW {snapshot.meta.gameweek} written to {args.output}")
    else:
        _print_json(payload)
    return EXIT_OK


def _run_publish(args: argparse.Namespace, settings: Settings) -> int:
    snapshot = asyncio.run(_compose(settings, args.gameweek, args.retries))
    result = _archive(settings).publish(snapshot)
    _print_json(_publish_payload(result))
    return EXIT_OK


async def _check(settings: Settings, archive: SnapshotArchive, force: bool, retries: int) -> dict[str, Any]:
    async with open_client(settings) as client:
        bootstrap = await client.get_bootstrap()
        status = find_current_gameweek(bootstrap.events, datetime.now(UTC))
        if status is None:
            return {"action": "none", "message": "No current gameweek found"}
        if not status.finished:
            return {
                "action": "waiting",
                "gameweek": status.id,
                "message": f"Gameweek {status.id} is still ongoing",
            }
        if archive.versions(status.id) and not force:
            return {
                "action": "exists",
                "gameweek": status.id,
                "message": f"Gameweek {status.id} is already published",
            }

        composer = SnapshotComposer.from_settings(client, settings)
        snapshot = await compose_with_retry(
            composer, settings.league_id, status.id, attempts=max(1, retries)
        )
    result = archive.publish(snapshot)
    return {
        "action": "generated",
        "gameweek": status.id,
        "message": f"Gameweek {status.id} finished and snapshot generated",
        "details": _publish_payload(result),
    }


def _run_check(args: argparse.Namespace, settings: Settings) -> int:
    outcome = asyncio.run(_check(settings, _archive(settings), args.force, args.retries))
    _logger.info(outcome["message"])
    _print_json(outcome)
    return EXIT_OK


def _run_hotfix(args: argparse.Namespace, settings: Settings) -> int:
    result = _archive(settings).hotfix(args.gameweek, summary=args.summary, structure=args.structure)
    _print_json(_publish_payload(result))
    return EXIT_OK


def _run_history(args: argparse.Namespace, settings: Settings) -> int:
    items = _archive(settings).history()
    _print_json([item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items])
    return EXIT_OK


def _run_summary(args: argparse.Namespace, settings: Settings) -> int:
    latest = _archive(settings).latest_summary()
    if latest is None:
        print("No summary has been published yet", file=sys.stderr)
        return EXIT_NOT_FOUND
    _print_json(latest.model_dump(mode="json", by_alias=True))
    return EXIT_OK


def _run_progression(args: argparse.Namespace, settings: Settings) -> int:
    _print_json(_archive(settings).progression().model_dump(mode="json", by_alias=True))
    return EXIT_OK


_COMMANDS = {
    "compose": _run_compose,
    "publish": _run_publish,
    "check": _run_check,
    "hotfix": _run_hotfix,
    "history": _run_history,
    "summary": _run_summary,
    "progression": _run_progression,
}


def main(argv: Sequence[str] | None = None) -> int:
    if argv is not None and not isinstance(argv, Sequence):
        argv = list(argv)
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        settings = load_settings().with_overrides(
            league_id=getattr(args, "league_id", None),
            store_dir=args.store_dir,
        )
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    handler = _COMMANDS.get(args.command)
    if handler is None:
        parser.error(f"Unknown command {args.command}")
        return EXIT_USAGE

    try:
        return handler(args, settings)
    except UpstreamError as exc:
        print(f"Composition failed: {exc}", file=sys.stderr)
        return EXIT_COMPOSE_FAILED
    except SnapshotNotFoundError as exc:
        print(f"Not found: {exc}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except (ArchiveError, StoreError) as exc:
        print(f"Archive error: {exc}", file=sys.stderr)
        return EXIT_STORE_FAILED


if __name__ == "__main__":  # pragma: no cover - entry point
    raise SystemExit(main())

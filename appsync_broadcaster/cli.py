"""Command-line helpers for publishing events and checking token issuance.

Configuration comes from the ``APPSYNC_*`` environment variables read by
``BroadcasterConfig.from_env``; ``APPSYNC_LOG_LEVEL`` sets the log level.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import typing as typ

from appsync_broadcaster.config import BroadcasterConfig
from appsync_broadcaster.errors import AggregateBroadcastError, AuthError, ConfigError
from appsync_broadcaster.factory import create_broadcaster
from appsync_broadcaster.logging import (
    configure_logging,
    get_logger,
    log_warning,
)

if typ.TYPE_CHECKING:
    from appsync_broadcaster.broadcaster import AppSyncBroadcaster

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="appsync-broadcast", description=__doc__.splitlines()[0]
    )
    commands = parser.add_subparsers(dest="command", required=True)

    publish = commands.add_parser("publish", help="Broadcast an event to channels")
    publish.add_argument(
        "channels", nargs="+", help="Channel names without the namespace"
    )
    publish.add_argument("--event", required=True, help="Event name")
    publish.add_argument(
        "--data", default="{}", help="JSON object sent as the event payload"
    )

    commands.add_parser("token", help="Fetch a Cognito token to verify credentials")
    return parser


def _parse_payload(raw: str) -> dict[str, object] | None:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload


async def _publish(
    broadcaster: AppSyncBroadcaster,
    channels: list[str],
    event: str,
    payload: dict[str, object],
) -> int:
    try:
        outcome = await broadcaster.broadcast(channels, event, payload)
    except AggregateBroadcastError as exc:
        print(f"broadcast failed: {exc}")
        return EXIT_FAILED
    finally:
        await broadcaster.aclose()

    print(f"delivered to {outcome.successes}/{len(channels)} channel(s)")
    for failure in outcome.failures:
        print(f"  - {failure.channel}: {failure.error}")
    return EXIT_OK


async def _token(broadcaster: AppSyncBroadcaster) -> int:
    credentials = broadcaster.credentials
    try:
        token = await credentials.fetch_new_token()
    except AuthError as exc:
        print(f"token request failed: {exc}")
        return EXIT_FAILED
    finally:
        await broadcaster.aclose()

    print(f"token issued ({len(token)} characters)")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Run the ``appsync-broadcast`` command.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. ``None`` defaults to ``sys.argv``.

    Returns
    -------
    int
        Exit code: 0 on success, 1 when delivery or token issuance fails,
        2 for configuration or usage errors.

    """
    args = _build_parser().parse_args(argv)

    raw_level = os.environ.get("APPSYNC_LOG_LEVEL")
    _, invalid_level = configure_logging(raw_level)
    if invalid_level and raw_level:
        log_warning(logger, "Invalid APPSYNC_LOG_LEVEL %r; using INFO", raw_level)

    payload: dict[str, object] = {}
    if args.command == "publish":
        parsed = _parse_payload(args.data)
        if parsed is None:
            print("--data must be a JSON object")
            return EXIT_USAGE
        payload = parsed

    try:
        broadcaster = create_broadcaster(BroadcasterConfig.from_env())
    except ConfigError as exc:
        print(f"configuration error: {exc}")
        return EXIT_USAGE

    if args.command == "token":
        return asyncio.run(_token(broadcaster))
    return asyncio.run(_publish(broadcaster, args.channels, args.event, payload))


if __name__ == "__main__":
    raise SystemExit(main())

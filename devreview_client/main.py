"""
Client entry point.

Loads configuration, configures logging, signs in and runs a command:
- ``watch``: follow the submission list live
- ``decide``: accept or reject one submission and notify the developer
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from devreview_shared.logging_config import configure_logging

from .api import ReviewApiClient
from .config import ClientConfig, load_config
from .errors import ReviewClientError
from .feed import SubmissionFeed
from .session import DecisionOutcome, ReviewSession


def _print_view(view) -> None:
    for entry in view.entries:
        s = entry.submission
        marker = "*" if entry.is_updating else " "
        print(f"{marker} {s.id}  {s.status.value:<8}  {s.full_name} <{s.email}>  {s.location}")
    print(f"-- {len(view)} submission(s)")


async def _signed_in_client(config: ClientConfig) -> ReviewApiClient:
    email, password = config.credentials.email, config.credentials.password
    if not email or not password:
        raise ReviewClientError(
            f"Set {config.credentials.email_env} and {config.credentials.password_env}"
        )
    api = ReviewApiClient(
        config.server.url,
        verify_tls=config.server.verify_tls,
        request_timeout=config.server.request_timeout_seconds,
    )
    await api.login(email, password)
    return api


async def watch(config: ClientConfig, status: str | None, search: str | None) -> None:
    api = await _signed_in_client(config)
    session = ReviewSession(api, status=status, search=search, on_change=_print_view)
    feed = SubmissionFeed(
        api,
        reconnect_base=config.feed.reconnect_base_seconds,
        reconnect_max=config.feed.reconnect_max_seconds,
    )
    session.attach(feed)
    await feed.start()
    try:
        await asyncio.Event().wait()
    finally:
        await feed.close()
        await api.close()


async def decide(config: ClientConfig, submission_id: str, decision: str, feedback: str) -> int:
    api = await _signed_in_client(config)
    try:
        session = ReviewSession(api)
        result = await session.decide(submission_id, decision, feedback)
    finally:
        await api.close()

    if result.outcome == DecisionOutcome.NOTIFY_FAILED:
        print(f"Decision saved as {result.submission.status.value}, but the email failed: {result.error}")
        return 2
    print(f"Decision saved as {result.submission.status.value}; developer notified.")
    return 0


def run() -> None:
    """CLI entry point for the client."""
    parser = argparse.ArgumentParser(description="Developer Review client")
    parser.add_argument(
        "-c", "--config",
        default="devreview-client.yaml",
        help="Path to configuration file (default: devreview-client.yaml)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    watch_p = sub.add_parser("watch", help="Follow the submission list live")
    watch_p.add_argument("--status", choices=["pending", "accepted", "rejected"])
    watch_p.add_argument("--search")

    decide_p = sub.add_parser("decide", help="Accept or reject a submission")
    decide_p.add_argument("submission_id")
    decide_p.add_argument("decision", choices=["accepted", "rejected"])
    decide_p.add_argument("--feedback", required=True)

    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.logging.level, config.logging.format)
    log = structlog.get_logger()
    log.info("client.config_loaded", config_path=args.config, server=config.server.url)

    try:
        if args.command == "watch":
            asyncio.run(watch(config, args.status, args.search))
        else:
            sys.exit(asyncio.run(decide(config, args.submission_id, args.decision, args.feedback)))
    except KeyboardInterrupt:
        pass
    except ReviewClientError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()

#!/usr/bin/env python3
"""CLI script to run one incremental HubSpot sync over every stored account.

Usage:
    uv run python scripts/run_sync.py
    uv run python scripts/run_sync.py --object-types contacts,meetings --sink redis --log-level DEBUG

Connects to the account store using DATABASE_URL from environment or .env file,
creates the hubspot_accounts table if needed, then syncs each account in turn
and hands normalized events to the configured sink. Exits non-zero when any
account finished with errors.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.hubsync
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def run(settings) -> int:
    """Run the sync once; return the number of accounts that had errors."""
    from src.hubsync.core.database import close_db, get_session, init_db
    from src.hubsync.config import SinkBackend
    from src.hubsync.sinks import LogEventSink
    from src.hubsync.store import SqlAccountStore
    from src.hubsync.sync import SyncOrchestrator

    await init_db()

    if settings.EVENT_SINK == SinkBackend.redis:
        import redis.asyncio as aioredis

        from src.hubsync.sinks import RedisStreamEventSink

        sink = RedisStreamEventSink(
            aioredis.from_url(settings.REDIS_URL, decode_responses=True),
            stream=settings.EVENT_STREAM_NAME,
            maxlen=settings.EVENT_STREAM_MAXLEN,
        )
    else:
        sink = LogEventSink()

    orchestrator = SyncOrchestrator.from_settings(
        settings,
        store=SqlAccountStore(get_session),
        sink=sink,
    )

    try:
        results = await orchestrator.run()
    finally:
        await sink.close()
        await close_db()

    failed = [result for result in results if not result.succeeded]
    print(f"Synced {len(results)} account(s), {sum(r.events_flushed for r in results)} event(s)")
    for result in failed:
        print(f"  {result.hub_id}: {'; '.join(result.errors)}")
    return len(failed)


def main() -> None:
    from src.hubsync.config import Settings
    from src.hubsync.core.logging import configure_structlog

    parser = argparse.ArgumentParser(description="Run an incremental HubSpot sync")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (e.g., DEBUG)")
    parser.add_argument(
        "--object-types",
        default=None,
        help="Comma-separated object types to sync (e.g., companies,contacts)",
    )
    parser.add_argument("--sink", choices=["log", "redis"], default=None, help="Override EVENT_SINK")
    args = parser.parse_args()

    overrides = {}
    if args.log_level:
        overrides["LOG_LEVEL"] = args.log_level
    if args.object_types:
        overrides["SYNC_OBJECT_TYPES"] = args.object_types
    if args.sink:
        overrides["EVENT_SINK"] = args.sink
    settings = Settings(**overrides)

    configure_structlog(settings.LOG_LEVEL, settings.ENVIRONMENT)

    failed = asyncio.run(run(settings))
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()

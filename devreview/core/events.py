"""
Realtime submission change feed over Redis Pub/Sub + SSE.

Features:
- Single pub/sub channel carrying submission.created / submission.updated
- Per-stream scoping: evaluators see every row, developers only their own
- ``stream.ready`` on every connect so clients re-fetch (no replay buffer)
- Keepalive heartbeat comments
- Graceful cleanup on disconnect
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Optional
from uuid import UUID

import structlog
from fastapi import Request

from devreview.core.redis import get_redis
from devreview.models.submission import Submission
from devreview_shared.schemas.submissions import SubmissionRead

log = structlog.get_logger()

REDIS_PUBSUB_CHANNEL = "dr:submissions:pubsub"
HEARTBEAT_INTERVAL = 30  # seconds
POLL_TIMEOUT = 1.0

SUBMISSION_CREATED = "submission.created"
SUBMISSION_UPDATED = "submission.updated"
STREAM_READY = "stream.ready"


def build_event(event_type: str, submission: Submission) -> dict[str, Any]:
    payload = SubmissionRead.model_validate(submission).model_dump(mode="json")
    return {
        "type": event_type,
        "submission_id": str(submission.id),
        "user_id": str(submission.user_id),
        "payload": payload,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def publish_submission_event(event_type: str, submission: Submission) -> Optional[dict[str, Any]]:
    """
    Publish a committed change to every connected stream.

    Best-effort: the mutation is already durable, so a publish failure is
    logged and swallowed. Clients recover through their re-fetch on reconnect.
    """
    event_data = build_event(event_type, submission)
    try:
        redis = await get_redis()
        await redis.publish(REDIS_PUBSUB_CHANNEL, json.dumps(event_data))
    except Exception as exc:
        log.warning(
            "events.publish_failed",
            event_type=event_type,
            submission_id=str(submission.id),
            error=str(exc),
        )
        return None
    return event_data


def _matches_scope(event_data: dict, user_id: UUID | None) -> bool:
    """None scope = evaluator stream, receives everything."""
    if user_id is None:
        return True
    return str(event_data.get("user_id")) == str(user_id)


async def submission_event_stream(
    request: Request,
    user_id: UUID | None = None,
) -> AsyncGenerator[dict, None]:
    """
    SSE generator for the submission change feed.

    At-most-once delivery: anything published while a client is
    disconnected is lost, which is why every connect starts with
    ``stream.ready`` telling the client to reconcile by re-fetching.
    """
    redis = await get_redis()
    pubsub = redis.pubsub()
    await pubsub.subscribe(REDIS_PUBSUB_CHANNEL)

    scope = "all" if user_id is None else str(user_id)
    log.info("events.stream_opened", scope=scope)

    try:
        yield {
            "event": STREAM_READY,
            "data": json.dumps({"scope": scope, "resync": True}),
        }
        last_sent = time.monotonic()

        while True:
            if await request.is_disconnected():
                break

            try:
                message = await asyncio.wait_for(
                    pubsub.get_message(ignore_subscribe_messages=True, timeout=POLL_TIMEOUT),
                    timeout=HEARTBEAT_INTERVAL,
                )
            except asyncio.TimeoutError:
                message = None

            if message is None or message.get("type") != "message":
                if time.monotonic() - last_sent >= HEARTBEAT_INTERVAL:
                    last_sent = time.monotonic()
                    yield {"comment": "heartbeat"}
                continue

            try:
                event_data = json.loads(message["data"])
            except (TypeError, ValueError) as exc:
                log.warning("events.bad_message", error=str(exc))
                continue

            if not _matches_scope(event_data, user_id):
                continue

            last_sent = time.monotonic()
            yield {
                "event": event_data["type"],
                "data": json.dumps(event_data),
            }

    except asyncio.CancelledError:
        log.info("events.stream_cancelled", scope=scope)
        raise
    finally:
        await pubsub.unsubscribe(REDIS_PUBSUB_CHANNEL)
        await pubsub.aclose()
        log.info("events.stream_closed", scope=scope)

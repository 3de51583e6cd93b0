import asyncio
import json
from typing import Any, AsyncIterator, Optional

from fastapi.encoders import jsonable_encoder

from logger.logger import logger
from services.change_feed import Subscription, SubscriptionError

KEEPALIVE_FRAME = ": keep-alive\n\n"


def format_sse(event: str, data: Any, event_id: Optional[str] = None) -> str:
    """Encode one Server-Sent Events frame with a JSON payload"""
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(jsonable_encoder(data), separators=(',', ':'))}")
    return "\n".join(lines) + "\n\n"


def parse_last_event_id(value: Optional[str]) -> Optional[str]:
    """Last-Event-ID header to resume token; a blank header means no resume"""
    if value is None or not value.strip():
        return None
    return value.strip()


async def event_stream(subscription: Subscription, keepalive_seconds: float) -> AsyncIterator[str]:
    """
    Render a subscription as SSE frames

    Fresh subscriptions open with one ``snapshot`` frame; each change event
    follows as a frame named after its op. A subscription error is sent once
    as an ``error`` frame and ends the stream. The subscription is cancelled
    when the stream ends or the client goes away.
    """
    try:
        feed = subscription.feed
        if not subscription.resumed:
            yield format_sse("snapshot", subscription.snapshot, feed.resume_token(subscription.snapshot_seq))

        while True:
            try:
                event = await asyncio.wait_for(subscription.__anext__(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            except StopAsyncIteration:
                break
            except SubscriptionError as e:
                yield format_sse("error", {"detail": str(e)})
                break

            yield format_sse(event.op.value, event.document or {"id": event.doc_id}, feed.resume_token(event.seq))
    finally:
        subscription.cancel()
        logger.info(f"Closed {subscription.kind.value} stream for {subscription.owner_id}")

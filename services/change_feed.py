import asyncio
import uuid
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from logger.logger import logger
from models.enums import ChangeKind, ChangeOp
from models.feed_model import ChangeEvent


class SubscriptionError(Exception):
    """Raised once from a subscription that the feed had to terminate"""
    pass


class ResumeExpired(Exception):
    """The resume token is older than the retained replay window"""
    pass


_CLOSED = object()


class Subscription:
    """
    A cancellable async iterator over change events for one feed key.

    The listener fills ``snapshot`` before live events start flowing; events
    published in between are buffered and delivered right after.
    """

    def __init__(self, feed: "ChangeFeed", kind: ChangeKind, owner_id: str,
                 peer_id: Optional[str] = None, max_queue: int = 256):
        self.feed = feed
        self.kind = kind
        self.owner_id = owner_id
        self.peer_id = peer_id
        self.snapshot: List[Dict[str, Any]] = []
        self.snapshot_seq = 0
        self.resumed = False
        self.max_queue = max_queue
        # one extra slot keeps room for the final item
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue + 1)
        self._buffer: Optional[List[ChangeEvent]] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: ChangeEvent) -> bool:
        if event.kind != self.kind or event.owner_id != self.owner_id:
            return False
        return self.peer_id is None or event.peer_id == self.peer_id

    def hold(self) -> None:
        """Buffer published events until release()"""
        self._buffer = []

    def release(self) -> None:
        buffered, self._buffer = self._buffer or [], None
        for event in buffered:
            self.offer(event)

    def offer(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        if self._buffer is not None:
            self._buffer.append(event)
            return
        if self._queue.qsize() >= self.max_queue:
            logger.warning(
                f"Change feed subscriber for {self.kind.value}/{self.owner_id} fell behind, dropping subscription"
            )
            self.fail(SubscriptionError("backpressure"))
            return
        self._queue.put_nowait(event)

    def fail(self, error: SubscriptionError) -> None:
        """Terminate the subscription; the consumer sees ``error`` exactly once"""
        if self._closed:
            return
        self._terminate(error)

    def cancel(self) -> None:
        """Stop delivery. Safe to call more than once."""
        if self._closed:
            return
        self._terminate(_CLOSED)

    close = cancel

    def end(self) -> None:
        """Stop accepting events; the consumer drains what is queued, then stops"""
        if self._closed:
            return
        self._closed = True
        self._buffer = None
        self.feed.unsubscribe(self)
        self._queue.put_nowait(_CLOSED)

    def _terminate(self, final_item) -> None:
        self._closed = True
        self._buffer = None
        self.feed.unsubscribe(self)
        # Pending events are discarded, consumers resume from the last seq they saw
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(final_item)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, SubscriptionError):
            raise item
        return item

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.cancel()


class ChangeFeed:
    """
    Registers subscriptions and broadcasts change events to matching listeners.

    Resume tokens are ``"{epoch}-{seq}"``. The epoch is fixed per feed
    instance, so a token handed out by an earlier process never matches.
    """

    def __init__(self, queue_size: int = 256, replay_size: int = 1024, epoch: Optional[str] = None):
        self.queue_size = queue_size
        self.epoch = epoch or uuid.uuid4().hex[:12]
        self._seq = 0
        self._history: Deque[ChangeEvent] = deque(maxlen=replay_size)
        self._subscriptions: Dict[tuple, List[Subscription]] = {}

    @property
    def last_seq(self) -> int:
        return self._seq

    def resume_token(self, seq: int) -> str:
        return f"{self.epoch}-{seq}"

    def parse_resume_token(self, token: str) -> int:
        """seq of a token issued by this feed; anything else has expired"""
        epoch, _, seq = token.rpartition("-")
        if epoch != self.epoch or not seq.isdigit():
            raise ResumeExpired(f"Resume token {token!r} was not issued by this feed")
        return int(seq)

    @staticmethod
    def _key(kind: ChangeKind, owner_id: str) -> tuple:
        return (kind, owner_id)

    def subscribe(self, kind: ChangeKind, owner_id: str, peer_id: Optional[str] = None,
                  resume_after: Optional[str] = None) -> Subscription:
        """
        Register a subscription.

        With ``resume_after`` (a resume token) the retained events after its
        seq are queued immediately; otherwise the subscription starts out
        holding events so the caller can load a snapshot first and then call
        ``release()``.
        """
        subscription = Subscription(self, kind, owner_id, peer_id, max_queue=self.queue_size)
        if resume_after is not None:
            seq = self.parse_resume_token(resume_after)
            missed = self.replay_since(seq)
            subscription.resumed = True
            subscription.snapshot_seq = seq
            self._subscriptions.setdefault(self._key(kind, owner_id), []).append(subscription)
            for event in missed:
                if subscription.matches(event):
                    subscription.offer(event)
            return subscription

        subscription.hold()
        subscription.snapshot_seq = self._seq
        self._subscriptions.setdefault(self._key(kind, owner_id), []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        key = self._key(subscription.kind, subscription.owner_id)
        subs = self._subscriptions.get(key)
        if not subs:
            return
        try:
            subs.remove(subscription)
        except ValueError:
            return
        if not subs:
            self._subscriptions.pop(key, None)

    def replay_since(self, seq: int) -> List[ChangeEvent]:
        """Retained events with a seq greater than ``seq``"""
        if seq < 0 or seq > self._seq:
            raise ResumeExpired(f"Unknown resume token {seq}")
        if seq == self._seq:
            return []
        oldest = self._history[0].seq if self._history else self._seq + 1
        if seq < oldest - 1:
            raise ResumeExpired(f"Resume token {seq} is older than the retained window")
        return [event for event in self._history if event.seq > seq]

    def publish(self, kind: ChangeKind, op: ChangeOp, owner_id: str, peer_id: str,
                doc_id: str, document: Optional[Dict[str, Any]] = None) -> ChangeEvent:
        self._seq += 1
        event = ChangeEvent(
            seq=self._seq,
            kind=kind,
            op=op,
            owner_id=owner_id,
            peer_id=peer_id,
            doc_id=doc_id,
            document=document,
        )
        self._history.append(event)
        for subscription in list(self._subscriptions.get(self._key(kind, owner_id), [])):
            if subscription.matches(event):
                subscription.offer(event)
        return event

    def subscriber_count(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())

    def close_all(self) -> None:
        """End every open subscription, used on shutdown so streams finish"""
        for subs in list(self._subscriptions.values()):
            for subscription in list(subs):
                subscription.end()


_feed: Optional[ChangeFeed] = None


def get_change_feed() -> ChangeFeed:
    """Process-wide change feed, created on first use"""
    global _feed
    if _feed is None:
        from config import FEED_QUEUE_SIZE, FEED_REPLAY_SIZE
        _feed = ChangeFeed(queue_size=FEED_QUEUE_SIZE, replay_size=FEED_REPLAY_SIZE)
    return _feed

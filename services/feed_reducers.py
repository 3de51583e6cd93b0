"""
Pure reducers that fold change events into a subscriber's local view.

Views are plain lists of wire-form documents (the by-alias dumps of
``MessageResponse`` and ``RecentMessageResponse``). Reducers never mutate
their input and are safe to apply to re-delivered events.
"""
from typing import Any, Dict, Iterable, List

from models.enums import ChangeKind, ChangeOp
from models.feed_model import ChangeEvent

Document = Dict[str, Any]


def _message_sort_key(message: Document):
    return (message["timestamp"], message["messageId"])


def apply_message_event(view: List[Document], event: ChangeEvent) -> List[Document]:
    """Dedup by messageId and keep the log ordered by (timestamp, messageId)"""
    if event.kind != ChangeKind.MESSAGE:
        return list(view)

    remaining = [m for m in view if m["messageId"] != event.doc_id]
    if event.op == ChangeOp.DELETE or event.document is None:
        return remaining

    return sorted(remaining + [event.document], key=_message_sort_key)


def apply_recent_event(view: List[Document], event: ChangeEvent) -> List[Document]:
    """Remove any row for the same peer, then put the new row at the front"""
    if event.kind != ChangeKind.RECENT:
        return list(view)

    remaining = [entry for entry in view if entry["id"] != event.doc_id]
    if event.op == ChangeOp.DELETE or event.document is None:
        return remaining

    return [event.document] + remaining


class MessageLogView:
    """Materialised messages of one (owner, peer) partition"""

    def __init__(self, snapshot: Iterable[Document] = (), last_seq: int = 0):
        self.messages: List[Document] = sorted(snapshot, key=_message_sort_key)
        self.last_seq = last_seq

    def apply(self, event: ChangeEvent) -> List[Document]:
        # Already reflected in the snapshot or applied before
        if event.seq <= self.last_seq:
            return self.messages
        self.messages = apply_message_event(self.messages, event)
        self.last_seq = max(self.last_seq, event.seq)
        return self.messages

    def message_ids(self) -> List[str]:
        return [m["messageId"] for m in self.messages]


class RecentConversationsView:
    """Materialised recent-conversation rows of one owner, newest activity first"""

    def __init__(self, snapshot: Iterable[Document] = (), last_seq: int = 0):
        self.entries: List[Document] = list(snapshot)
        self.last_seq = last_seq

    def apply(self, event: ChangeEvent) -> List[Document]:
        if event.seq <= self.last_seq:
            return self.entries
        self.entries = apply_recent_event(self.entries, event)
        self.last_seq = max(self.last_seq, event.seq)
        return self.entries

    def peer_ids(self) -> List[str]:
        return [entry["id"] for entry in self.entries]

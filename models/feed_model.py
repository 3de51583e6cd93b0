from dataclasses import dataclass
from typing import Any, Dict, Optional

from models.enums import ChangeKind, ChangeOp


@dataclass(frozen=True)
class ChangeEvent:
    """An immutable change notification published by the change feed.

    ``seq`` is monotonic across the whole feed; together with the feed epoch
    it forms the resume token. ``document`` holds the by-alias form of the
    response model (``MessageResponse`` or ``RecentMessageResponse``) and is
    ``None`` for deletes.
    """

    seq: int
    kind: ChangeKind
    op: ChangeOp
    owner_id: str
    peer_id: str
    doc_id: str
    document: Optional[Dict[str, Any]] = None

from typing import List, Optional

from db.mongodb import RECENT_MESSAGES_COLLECTION, recent_message_key
from db.schemas.messages_schema import RecentMessageInDB

class RecentMessageRepository:
    """
    Repository for the recent-conversation index (recent_messages/{owner}/{peer})
    One row per (owner, peer), overwritten on every send
    """

    def __init__(self, db):
        self.db = db
        self.recent_messages = db[RECENT_MESSAGES_COLLECTION]

    async def upsert_entry(self, entry: RecentMessageInDB) -> bool:
        """
        Overwrite the row for (owner, peer), last write wins
        Returns True if the row was created, False if an existing row was replaced
        """
        result = await self.recent_messages.replace_one(
            {"_id": entry.key},
            entry.to_document(),
            upsert=True
        )
        return result.upserted_id is not None

    async def get_entry(self, owner_id: str, peer_id: str) -> Optional[RecentMessageInDB]:
        entry = await self.recent_messages.find_one({"_id": recent_message_key(owner_id, peer_id)})
        if not entry:
            return None
        return RecentMessageInDB(**entry)

    async def get_recent_messages(self, owner_id: str) -> List[RecentMessageInDB]:
        """Get all recent-conversation rows of a user, most recently touched first"""
        entries = await self.recent_messages.find(
            {"ownerId": owner_id}
        ).sort([("timestamp", -1), ("_id", 1)]).to_list(length=None)

        return [RecentMessageInDB(**entry) for entry in entries]

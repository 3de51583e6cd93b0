from typing import List, Optional

from db.mongodb import MESSAGES_COLLECTION, strip_mongodb_id
from db.schemas.messages_schema import MessageInDB

class MessageRepository:
    """
    Repository for the per-partition message logs (messages/{owner}/{peer}/{messageId})
    Every logical message is stored twice, once per participant partition
    """

    def __init__(self, db):
        self.db = db
        self.messages = db[MESSAGES_COLLECTION]

    @staticmethod
    def _partition(owner_id: str, peer_id: str) -> dict:
        return {"ownerId": owner_id, "peerId": peer_id}

    async def insert_message(self, message: MessageInDB) -> bool:
        """
        Insert a message copy into its partition
        Returns True if the copy was created, False if it already existed
        """
        key = {**self._partition(message.owner_id, message.peer_id), "messageId": message.message_id}
        result = await self.messages.update_one(
            key,
            {"$setOnInsert": message.model_dump(by_alias=True)},
            upsert=True
        )
        return result.upserted_id is not None

    async def find_message(self, owner_id: str, peer_id: str, message_id: str) -> Optional[MessageInDB]:
        """Get one message copy by its idempotency key"""
        message = await self.messages.find_one({
            **self._partition(owner_id, peer_id),
            "messageId": message_id
        })
        if not message:
            return None
        return MessageInDB(**strip_mongodb_id(message))

    async def get_messages(self, owner_id: str, peer_id: str, limit: Optional[int] = None) -> List[MessageInDB]:
        """
        Get messages of one partition, oldest first
        With a limit, the newest `limit` messages are returned (still oldest first)
        """
        cursor = self.messages.find(self._partition(owner_id, peer_id))
        if limit:
            cursor = cursor.sort([("timestamp", -1), ("messageId", -1)]).limit(limit)
            messages = await cursor.to_list(length=None)
            messages.reverse()
        else:
            cursor = cursor.sort([("timestamp", 1), ("messageId", 1)])
            messages = await cursor.to_list(length=None)

        return [MessageInDB(**strip_mongodb_id(message)) for message in messages]

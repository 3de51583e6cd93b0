from pymongo import ASCENDING, DESCENDING

from db.mongodb import USERS_COLLECTION, MESSAGES_COLLECTION, RECENT_MESSAGES_COLLECTION

async def init_db_indexes(db):
    """
    Initialize database with required indexes
    """
    # users/{uid}
    await db[USERS_COLLECTION].create_index([("email", ASCENDING)], unique=True)

    # messages/{owner}/{peer}/{messageId}: the unique key makes replayed sends no-ops
    await db[MESSAGES_COLLECTION].create_index(
        [("ownerId", ASCENDING), ("peerId", ASCENDING), ("messageId", ASCENDING)],
        unique=True
    )
    await db[MESSAGES_COLLECTION].create_index(
        [("ownerId", ASCENDING), ("peerId", ASCENDING), ("timestamp", ASCENDING)]
    )

    # recent_messages/{owner}/{peer}
    await db[RECENT_MESSAGES_COLLECTION].create_index([("ownerId", ASCENDING), ("timestamp", DESCENDING)])

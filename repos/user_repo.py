from typing import List, Optional

from db.mongodb import USERS_COLLECTION
from db.schemas.users_schema import UserInDB

class UserRepository:
    """
    Repository for the users collection (users/{uid})
    Handles all direct interactions with the database
    """

    def __init__(self, db):
        self.db = db
        self.users = db[USERS_COLLECTION]

    async def find_by_uid(self, uid: str) -> Optional[UserInDB]:
        """Point lookup by opaque user id"""
        user_dict = await self.users.find_one({"_id": uid})
        if not user_dict:
            return None
        return UserInDB(**user_dict)

    async def find_by_email(self, email: str) -> Optional[UserInDB]:
        """
        Find a user by email
        Emails are stored lowercased, so the lookup is case-insensitive
        """
        user_dict = await self.users.find_one({"email": email.strip().lower()})
        if not user_dict:
            return None
        return UserInDB(**user_dict)

    async def create_user(self, user: UserInDB) -> UserInDB:
        """
        Create a new user document keyed by uid
        Returns UserInDB model
        """
        document = user.to_document()
        document["email"] = document["email"].lower()
        await self.users.insert_one(document)
        return UserInDB(**document)

    async def list_users(self, excluding: Optional[str] = None) -> List[UserInDB]:
        """All users ordered by email, optionally without one uid"""
        query = {}
        if excluding:
            query["_id"] = {"$ne": excluding}

        users = await self.users.find(query).sort("email", 1).to_list(length=None)
        return [UserInDB(**user) for user in users]

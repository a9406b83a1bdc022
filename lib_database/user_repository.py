"""
User Repository - account storage and the admin operations that touch quota state.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from lib_database.database import Database
from lib_database.models import User, UserRole, StudentLevel

logger = logging.getLogger(__name__)


class UserRepository:
    """
    Repository for managing users in MongoDB.
    """

    def __init__(self, database: Database):
        self.db = database

    @property
    def users(self):
        return self.db.get_collection("users")

    @property
    def student_levels(self):
        return self.db.get_collection("student_levels")

    async def create_user(self, user: User) -> User:
        """
        Insert a new user.

        Raises:
            pymongo.errors.DuplicateKeyError: if the email is already registered
        """
        await self.users.insert_one(user.to_dict())
        logger.info("[Users] Created %s account: %s", user.role.value, user.email)
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        data = await self.users.find_one({"id": user_id})
        if data:
            return User.from_dict(data)
        return None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        data = await self.users.find_one({"email": email.lower()})
        if data:
            return User.from_dict(data)
        return None

    async def list_users(self) -> List[User]:
        """All users, newest first."""
        cursor = self.users.find({}).sort("created_at", -1)
        users = []
        async for data in cursor:
            users.append(User.from_dict(data))
        return users

    async def count_by_role(self, role: UserRole) -> int:
        return await self.users.count_documents({"role": role.value})

    async def touch_last_login(self, user_id: str):
        await self.users.update_one(
            {"id": user_id},
            {"$set": {"last_login": datetime.now().isoformat()}}
        )

    async def update_quota_fields(
        self,
        user_id: str,
        minutes_limit: Optional[float] = None,
        role: Optional[UserRole] = None
    ) -> Optional[User]:
        """
        Update the allowance and/or role of a user.

        Args:
            user_id: User identifier
            minutes_limit: New monthly minute allowance
            role: New role

        Returns:
            Updated User, or None when the user does not exist
        """
        updates = {}
        if minutes_limit is not None:
            updates["minutes_limit"] = minutes_limit
        if role is not None:
            updates["role"] = role.value

        result = await self.users.find_one_and_update(
            {"id": user_id},
            {"$set": updates},
            return_document=True
        )
        if result:
            logger.info("[Users] Updated %s: %s", user_id, updates)
            return User.from_dict(result)
        return None

    async def delete_user(self, user_id: str) -> bool:
        result = await self.users.delete_one({"id": user_id})
        return result.deleted_count > 0

    # ==================== STUDENT LEVELS ====================

    async def get_student_level(self, user_id: str) -> Optional[StudentLevel]:
        data = await self.student_levels.find_one({"user_id": user_id})
        if data:
            return StudentLevel.from_dict(data)
        return None

    async def upsert_student_level(
        self,
        user_id: str,
        level: str,
        topics: Optional[List[str]] = None,
        learning_goals: Optional[str] = None
    ) -> StudentLevel:
        """
        Create or replace the level row of a user.

        Args:
            user_id: User identifier
            level: CEFR level (A1..C2)
            topics: Preferred conversation topics
            learning_goals: Free-text goals

        Returns:
            The stored StudentLevel
        """
        now = datetime.now().isoformat()
        result = await self.student_levels.find_one_and_update(
            {"user_id": user_id},
            {
                "$set": {
                    "level": level,
                    "topics": topics or [],
                    "learning_goals": learning_goals,
                    "updated_at": now,
                },
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=True
        )
        logger.info("[Users] Level of %s set to %s", user_id, level)
        return StudentLevel.from_dict(result)

    async def get_levels_by_user(self) -> Dict[str, StudentLevel]:
        """Level rows of every user that has one, keyed by user id."""
        levels = {}
        async for data in self.student_levels.find({}):
            levels[data["user_id"]] = StudentLevel.from_dict(data)
        return levels

    async def delete_student_level(self, user_id: str):
        await self.student_levels.delete_many({"user_id": user_id})

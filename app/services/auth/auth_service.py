from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional, Dict
from datetime import datetime
from app.models.auth.user import UserInDB, UserRole


def is_admin(user: Optional[Dict]) -> bool:
    """Whether a user document carries the admin role"""
    return bool(user) and user.get("role") == UserRole.ADMIN.value


class AuthService:
    """User lookups for request authentication"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.users_collection = db.users

    async def get_user_by_email(self, email: str) -> Optional[Dict]:
        """Get user by email"""
        return await self.users_collection.find_one({"email": email})

    async def create_user(
        self,
        email: str,
        username: Optional[str] = None,
        full_name: Optional[str] = None,
        role: UserRole = UserRole.USER
    ) -> Dict:
        """Create a user record (used by seeding and tests; sign-up lives elsewhere)"""
        user_data = UserInDB(
            email=email,
            full_name=full_name,
            username=username,
            role=role,
            is_active=True,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow()
        )

        result = await self.users_collection.insert_one(user_data.model_dump())
        user = await self.users_collection.find_one({"_id": result.inserted_id})
        return user

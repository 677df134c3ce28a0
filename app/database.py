import os
import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Optional
from dotenv import load_dotenv
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


async def create_indexes(db: AsyncIOMotorDatabase):
    """Create contest engine indexes"""

    # Users collection indexes
    try:
        await db.users.create_index([("email", ASCENDING)], unique=True, sparse=True)
        logger.info("[OK] Created unique index on users.email")
    except PyMongoError as e:
        logger.warning(f"[WARN] Index on users.email may already exist: {e}")

    # Contest indexes
    try:
        await db.contests.create_index([("start_time", DESCENDING)])
        await db.contests.create_index([("created_by", ASCENDING), ("created_at", DESCENDING)])
        await db.contests.create_index([("difficulty", ASCENDING), ("start_time", DESCENDING)])
        await db.contests.create_index([("end_time", ASCENDING), ("ranks_finalized", ASCENDING)])
        logger.info("[OK] Created indexes on contests")
    except PyMongoError as e:
        logger.warning(f"[WARN] Indexes on contests may already exist: {e}")

    # Participation indexes; the unique pair is what makes a second
    # registration of the same user impossible
    try:
        await db.contest_participations.create_index(
            [("contest_id", ASCENDING), ("user_id", ASCENDING)],
            unique=True
        )
        await db.contest_participations.create_index(
            [("contest_id", ASCENDING), ("score", DESCENDING), ("time_spent", ASCENDING)]
        )
        await db.contest_participations.create_index([("user_id", ASCENDING)])
        logger.info("[OK] Created indexes on contest_participations")
    except PyMongoError as e:
        logger.warning(f"[WARN] Indexes on contest_participations may already exist: {e}")

    # Submission indexes
    try:
        await db.contest_submissions.create_index(
            [("contest_id", ASCENDING), ("user_id", ASCENDING), ("submitted_at", DESCENDING)]
        )
        await db.contest_submissions.create_index(
            [("contest_id", ASCENDING), ("user_id", ASCENDING), ("problem_id", ASCENDING)]
        )
        logger.info("[OK] Created indexes on contest_submissions")
    except PyMongoError as e:
        logger.warning(f"[WARN] Indexes on contest_submissions may already exist: {e}")

    # Audit trail indexes
    try:
        await db.contest_audit_log.create_index([("contest_id", ASCENDING), ("timestamp", DESCENDING)])
        logger.info("[OK] Created index on contest_audit_log")
    except PyMongoError as e:
        logger.warning(f"[WARN] Index on contest_audit_log may already exist: {e}")


class Database:
    client: Optional[AsyncIOMotorClient] = None

    @classmethod
    async def connect_db(cls):
        """Connect to MongoDB"""
        mongodb_url = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
        cls.client = AsyncIOMotorClient(mongodb_url)
        logger.info("[OK] Connected to MongoDB")

        # Create indexes
        await cls.create_indexes()

    @classmethod
    async def create_indexes(cls):
        """Create database indexes"""
        await create_indexes(cls.get_db())

    @classmethod
    async def close_db(cls):
        """Close MongoDB connection"""
        if cls.client:
            cls.client.close()
            logger.info("[OK] Disconnected from MongoDB")

    @classmethod
    def get_db(cls) -> Optional[AsyncIOMotorDatabase]:
        """Get database instance, or None before connect_db"""
        if cls.client is None:
            return None
        database_name = os.getenv("DATABASE_NAME", "codearena")
        return cls.client[database_name]

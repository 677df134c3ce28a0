import logging
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional, Dict, Any, List
from pymongo.errors import PyMongoError
from app.models.contest.audit import AuditAction, AuditEntry
from app.services.contest.status import utcnow

logger = logging.getLogger(__name__)


class AuditService:
    """Service for audit trail logging"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.audit_log = db.contest_audit_log

    async def log_action(
        self,
        contest_id: str,
        action: AuditAction,
        user_id: str,
        username: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Log an audit trail entry. Best effort: a failed write is logged, not raised."""
        entry = AuditEntry(
            contest_id=contest_id,
            action=action,
            user_id=user_id,
            username=username,
            entity_type=entity_type,
            entity_id=entity_id,
            changes=changes,
            metadata=metadata,
            timestamp=utcnow()
        )
        document = entry.model_dump()
        document["action"] = action.value

        try:
            await self.audit_log.insert_one(document)
            return True
        except PyMongoError as e:
            logger.warning(f"[WARN] Failed to write audit entry {action.value} for contest {contest_id}: {e}")
            return False

    async def get_contest_history(
        self,
        contest_id: str,
        limit: int = 100
    ) -> List[Dict]:
        """Get audit history for a contest, newest first"""
        return await self.audit_log.find({
            "contest_id": contest_id
        }).sort("timestamp", -1).limit(limit).to_list(length=limit)

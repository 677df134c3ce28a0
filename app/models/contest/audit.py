from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class AuditAction(str, Enum):
    """Audit action types"""
    # Contest actions
    CONTEST_CREATED = "contest_created"
    CONTEST_UPDATED = "contest_updated"
    CONTEST_DELETED = "contest_deleted"
    RANKS_FINALIZED = "ranks_finalized"

    # Participant actions
    USER_REGISTERED = "user_registered"

    # Submission actions
    SUBMISSION_CREATED = "submission_created"


class AuditEntry(BaseModel):
    """Audit trail entry"""
    contest_id: str
    action: AuditAction
    user_id: str
    username: str
    entity_type: str  # "contest", "participation", "submission"
    entity_id: Optional[str] = None
    changes: Optional[Dict[str, Any]] = None  # What changed
    metadata: Optional[Dict[str, Any]] = None  # Additional info
    timestamp: datetime

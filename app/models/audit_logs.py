from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum


class AuditAction(str, Enum):
    ATTENDANCE_OVERRIDE = "ATTENDANCE_OVERRIDE"


class AuditLog(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    action: AuditAction
    performed_by: str
    target_user: Optional[str] = None  # name/email kept in case the user is removed
    target_user_id: Optional[str] = None
    details: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: datetime

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from pytz import UTC
from pymongo.errors import PyMongoError

from models.audit_logs import AuditAction, AuditLog

logger = logging.getLogger(__name__)


async def log_audit_action(
    audit_logs_collection,
    action: AuditAction,
    performed_by: str,
    target_user: Optional[str] = None,
    target_user_id: Optional[str] = None,
    details: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Record an administrative action.

    Failures are logged and swallowed so the action being audited is never
    rolled back because of the audit trail. Returns whether the entry was stored.
    """
    entry = AuditLog(
        action=action,
        performed_by=performed_by,
        target_user=target_user,
        target_user_id=target_user_id,
        details=details,
        metadata=metadata or {},
        created_at=datetime.now(UTC),
    )
    try:
        await audit_logs_collection.insert_one(entry.model_dump())
        return True
    except PyMongoError as e:
        logger.warning(f"Audit logging failed for {action}: {e}")
        return False

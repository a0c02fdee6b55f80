from database import database
from models import AuditLog, AuditAction
from datetime import datetime
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


async def create_audit_log(
    action: AuditAction,
    actor_role: Optional[str] = "SYSTEM",
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    reason_code: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> str:
    """Create an audit log entry.

    Args:
        action: The audit action type
        actor_role: Who triggered the action (SYSTEM, WEBHOOK, PUBLIC)
        resource_type: Type of resource affected (e.g. 'onboarding_submission')
        resource_id: ID of the specific resource
        metadata: Additional metadata
        reason_code: Optional reason code for the action
        ip_address: IP address of the request

    Returns the audit_id, or "" when the write failed.
    """
    try:
        db = database.get_db()

        audit_log = AuditLog(
            action=action,
            actor_role=actor_role,
            resource_type=resource_type,
            resource_id=resource_id,
            metadata=metadata or None,
            reason_code=reason_code,
            ip_address=ip_address,
        )

        doc = audit_log.model_dump()
        doc["timestamp"] = doc["timestamp"].isoformat() if isinstance(doc["timestamp"], datetime) else doc["timestamp"]

        await db.audit_logs.insert_one(doc)
        logger.info(f"Audit log created: {action.value}")
        return audit_log.audit_id
    except Exception as e:
        logger.error(f"Failed to create audit log: {e}")
        # Never fail the main operation due to audit log failure
        return ""

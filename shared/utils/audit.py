"""
shared/utils/audit.py
Append-only admin audit trail.
"""

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import AdminAuditLog, User


async def log_admin_action(
    db: AsyncSession,
    admin: User,
    action: str,
    entity_type: str,
    entity_id: str,
    payload: dict | None = None,
    request: Request | None = None,
):
    """Append an immutable record to AdminAuditLog."""
    log = AdminAuditLog(
        admin_id=admin.id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        payload=payload or {},
        ip_address=request.client.host if request and request.client else None,
    )
    db.add(log)

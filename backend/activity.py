# activity.py — Activity trail written alongside each mutation
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from models import ActivityLog


def record_activity(
    db: AsyncSession,
    user_id: str,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    metadata: dict = None,
) -> ActivityLog:
    """Queue an activity row on the session; committed with the change it describes"""
    entry = ActivityLog(
        organization_id=organization_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        extra_data=metadata or {},
    )
    db.add(entry)
    return entry

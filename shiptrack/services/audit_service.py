from typing import Optional, Dict, Any, List, Iterable, Tuple, Callable
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import select, func, desc, and_
from sqlalchemy.ext.asyncio import AsyncSession

from shiptrack.core.exceptions import AuditWriteError
from shiptrack.database import async_session_factory
from shiptrack.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def snapshot(entity: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """Capture plain, JSON-friendly values of the given attributes."""
    values = {}
    for name in fields:
        value = getattr(entity, name, None)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        elif isinstance(value, uuid.UUID):
            value = str(value)
        elif isinstance(value, Decimal):
            value = float(value)
        values[name] = value
    return values


def diff_values(
    old: Dict[str, Any],
    new: Dict[str, Any],
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Reduce two snapshots to the keys whose values differ."""
    changed = [key for key in new if old.get(key) != new.get(key)]
    return (
        {key: old.get(key) for key in changed},
        {key: new.get(key) for key in changed},
    )


def describe_changes(label: str, old: Dict[str, Any], new: Dict[str, Any]) -> str:
    """
    Human readable change summary.

    >>> describe_changes("Shipment SHP1", {"status": "PENDING"}, {"status": "IN_TRANSIT"})
    'Updated Shipment SHP1: status PENDING -> IN_TRANSIT'
    """
    if not new:
        return f"Updated {label}: no changes"
    parts = [f"{key} {old.get(key)} -> {new.get(key)}" for key in new]
    return f"Updated {label}: " + ", ".join(parts)


class AuditService:
    """
    Audit service for writing and querying shipment/container audit entries.
    Runs inside the caller's session.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str,
        entity_type: str,
        performed_by: str,
        entity_id: Optional[uuid.UUID] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """
        Create an audit log entry.

        Args:
            action: The action performed (CREATE, UPDATE, DELETE, ATTACH, etc.)
            entity_type: SHIPMENT or CONTAINER
            performed_by: Actor id, or "system" for background sweeps
            entity_id: ID of the affected entity
            old_values: Previous values (for updates)
            new_values: New values (for creates/updates)
            description: Human-readable description
            ip_address: Client IP address
            user_agent: Client user agent

        Returns:
            The created AuditLog entry
        """
        audit_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            performed_by=performed_by,
            old_values=old_values,
            new_values=new_values,
            description=description,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(audit_log)
        await self.db.flush()
        return audit_log

    async def get_audit_logs(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        performed_by: Optional[str] = None,
        action: Optional[str] = None,
        page: int = 1,
        size: int = 50,
    ) -> Tuple[List[AuditLog], int]:
        """Get audit logs with filters, newest first."""
        conditions = []

        if entity_type:
            conditions.append(AuditLog.entity_type == entity_type.upper())
        if entity_id:
            conditions.append(AuditLog.entity_id == entity_id)
        if performed_by:
            conditions.append(AuditLog.performed_by == performed_by)
        if action:
            conditions.append(AuditLog.action == action.upper())

        query = select(AuditLog)
        count_query = select(func.count()).select_from(AuditLog)
        if conditions:
            query = query.where(and_(*conditions))
            count_query = count_query.where(and_(*conditions))

        total = await self.db.scalar(count_query) or 0

        query = query.order_by(desc(AuditLog.created_at)).offset((page - 1) * size).limit(size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total


@dataclass
class AuditEntry:
    """One pending audit row, handed to the recorder after the primary commit."""
    action: str
    entity_type: str
    entity_id: Optional[uuid.UUID]
    performed_by: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    description: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditRecorder:
    """
    Best-effort audit writer.

    Entries are written in their own session after the primary mutation has
    committed. A failed write is logged as AuditWriteError and reported as
    False, it never propagates to the caller.
    """

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        self.session_factory = session_factory or async_session_factory

    async def record(self, entry: AuditEntry) -> bool:
        return await self.record_many([entry])

    async def record_many(self, entries: List[AuditEntry]) -> bool:
        if not entries:
            return True
        try:
            async with self.session_factory() as session:
                service = AuditService(session)
                for entry in entries:
                    await service.log(
                        action=entry.action,
                        entity_type=entry.entity_type,
                        entity_id=entry.entity_id,
                        performed_by=entry.performed_by,
                        old_values=entry.old_values,
                        new_values=entry.new_values,
                        description=entry.description,
                        ip_address=entry.ip_address,
                        user_agent=entry.user_agent,
                    )
                await session.commit()
            return True
        except Exception as e:
            error = AuditWriteError(
                f"Failed to write {len(entries)} audit entr{'y' if len(entries) == 1 else 'ies'} "
                f"({entries[0].action} {entries[0].entity_type} {entries[0].entity_id}): {e}"
            )
            logger.error(str(error), exc_info=True)
            return False

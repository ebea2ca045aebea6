"""Audit trail for budget mutations.

Services call ``AuditRecorder.record`` once per state transition, inside the
same transaction as the change itself. The database recorder just adds an
``AuditLog`` row to the caller's session, so a rollback discards it together
with the change.
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import AuditAction
from buildledger.common.logging import get_logger
from buildledger.db.models.audit import AuditLog

logger = get_logger("audit")


class AuditRecorder(Protocol):
    async def record(
        self,
        db: AsyncSession,
        *,
        actor_id: uuid.UUID | None,
        action: AuditAction,
        entity_type: str,
        entity_id: uuid.UUID,
        project_id: uuid.UUID | None,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> None: ...


class DbAuditRecorder:
    async def record(
        self,
        db: AsyncSession,
        *,
        actor_id: uuid.UUID | None,
        action: AuditAction,
        entity_type: str,
        entity_id: uuid.UUID,
        project_id: uuid.UUID | None,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> None:
        db.add(
            AuditLog(
                entity_type=entity_type,
                entity_id=entity_id,
                project_id=project_id,
                action=action.value,
                actor_id=actor_id,
                diff={"before": before, "after": after},
            )
        )
        logger.info("Audit %s %s %s by %s", entity_type, entity_id, action.value, actor_id)


audit_recorder: AuditRecorder = DbAuditRecorder()

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from buildledger.common.money import Money
from buildledger.db.models.reallocation import BudgetReallocation


class ReallocationCreate(BaseModel):
    project_id: uuid.UUID
    from_category: str | None = None
    from_phase_id: uuid.UUID | None = None
    to_category: str | None = None
    to_phase_id: uuid.UUID | None = None
    amount: Decimal
    reason: str = ""


class ReallocationApprove(BaseModel):
    notes: str | None = None


class ReallocationReject(BaseModel):
    reason: str = ""


class ReallocationResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    reallocation_type: str
    from_category: str | None
    from_phase_id: uuid.UUID | None
    to_category: str | None
    to_phase_id: uuid.UUID | None
    amount: Money
    reason: str
    status: str
    warnings: list[str] = Field(default_factory=list)
    requested_by_id: uuid.UUID
    approved_by_id: uuid.UUID | None = None
    rejected_by_id: uuid.UUID | None = None
    rejection_reason: str | None = None
    approval_notes: str | None = None
    requested_at: datetime | None = None
    resolved_at: datetime | None = None

    @classmethod
    def from_orm_instance(cls, realloc: BudgetReallocation) -> "ReallocationResponse":
        return cls(
            id=realloc.id,
            project_id=realloc.project_id,
            reallocation_type=realloc.reallocation_type,
            from_category=realloc.from_category,
            from_phase_id=realloc.from_phase_id,
            to_category=realloc.to_category,
            to_phase_id=realloc.to_phase_id,
            amount=realloc.amount,
            reason=realloc.reason,
            status=realloc.status,
            warnings=list(realloc.warnings or []),
            requested_by_id=realloc.requested_by_id,
            approved_by_id=realloc.approved_by_id,
            rejected_by_id=realloc.rejected_by_id,
            rejection_reason=realloc.rejection_reason,
            approval_notes=realloc.approval_notes,
            requested_at=realloc.requested_at,
            resolved_at=realloc.resolved_at,
        )


class LineBalance(BaseModel):
    line: str
    before: Money
    after: Money


class ApprovalResult(BaseModel):
    reallocation: ReallocationResponse
    source: LineBalance
    destination: LineBalance

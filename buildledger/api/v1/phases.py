"""Phase budget figures and allocation."""

from __future__ import annotations

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_audit_recorder, get_db, get_engine_config, require_permission
from buildledger.common.permissions import MANAGE_PHASE_BUDGET, VIEW_FINANCES
from buildledger.common.responses import ApiResponse
from buildledger.core.audit.recorder import AuditRecorder
from buildledger.core.budget.allocation import PhaseAllocation
from buildledger.core.budget.ledger import BudgetLedger
from buildledger.core.budget.schemas import PhaseAllocationResult, PhaseFigures
from buildledger.core.policy import EngineConfig
from buildledger.db.models.user import User

router = APIRouter(prefix="/phases/{phase_id}", tags=["Phases"])


# ---------- Schemas ----------

class PhaseBudgetUpdate(BaseModel):
    budget_total: Decimal
    budget_breakdown: dict[str, Decimal] | None = None


# ---------- Endpoints ----------

@router.get("/budget", response_model=ApiResponse[PhaseFigures])
async def get_phase_budget(
    phase_id: uuid.UUID,
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    config: EngineConfig = Depends(get_engine_config),
    db: AsyncSession = Depends(get_db),
):
    figures = await BudgetLedger(config).phase(phase_id, db)
    return ApiResponse(data=figures)


@router.patch("/budget", response_model=ApiResponse[PhaseAllocationResult])
async def update_phase_budget(
    phase_id: uuid.UUID,
    body: PhaseBudgetUpdate,
    current_user: User = Depends(require_permission(MANAGE_PHASE_BUDGET)),
    config: EngineConfig = Depends(get_engine_config),
    audit: AuditRecorder = Depends(get_audit_recorder),
    db: AsyncSession = Depends(get_db),
):
    allocation = PhaseAllocation(config, audit=audit)
    result = await allocation.allocate(
        phase_id, body.budget_total, current_user, db, breakdown=body.budget_breakdown
    )
    message = "Phase budget updated"
    if result.warnings:
        message = "Phase budget updated with warnings"
    return ApiResponse(data=result, message=message)

"""Project budget ledger and contingency endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db, get_engine_config, require_permission
from buildledger.common.enums import ContingencyStatus
from buildledger.common.permissions import VIEW_FINANCES
from buildledger.common.responses import ApiResponse
from buildledger.core.budget.contingency import ContingencyTracker
from buildledger.core.budget.ledger import BudgetLedger
from buildledger.core.budget.schemas import CategoryFigures, ContingencySummary, ProjectLedger
from buildledger.core.policy import EngineConfig
from buildledger.db.models.user import User

router = APIRouter(prefix="/projects/{project_id}", tags=["Budgets"])


# ---------- Endpoints ----------

@router.get("/budget", response_model=ApiResponse[ProjectLedger])
async def get_project_budget(
    project_id: uuid.UUID,
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    config: EngineConfig = Depends(get_engine_config),
    db: AsyncSession = Depends(get_db),
):
    ledger = await BudgetLedger(config).summary(project_id, db)
    return ApiResponse(data=ledger)


@router.get("/budget/direct-construction", response_model=ApiResponse[CategoryFigures])
async def get_direct_construction_budget(
    project_id: uuid.UUID,
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    config: EngineConfig = Depends(get_engine_config),
    db: AsyncSession = Depends(get_db),
):
    figures = await BudgetLedger(config).direct_construction(project_id, db)
    return ApiResponse(data=figures)


@router.get("/budget/categories/{category}", response_model=ApiResponse[CategoryFigures])
async def get_category_budget(
    project_id: uuid.UUID,
    category: str,
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    config: EngineConfig = Depends(get_engine_config),
    db: AsyncSession = Depends(get_db),
):
    figures = await BudgetLedger(config).category(project_id, category, db)
    return ApiResponse(data=figures)


@router.get("/contingency", response_model=ApiResponse[ContingencySummary])
async def get_contingency(
    project_id: uuid.UUID,
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    config: EngineConfig = Depends(get_engine_config),
    db: AsyncSession = Depends(get_db),
):
    summary = await ContingencyTracker(config).summary(project_id, db)
    message = ""
    if summary.status != ContingencyStatus.HEALTHY:
        message = f"Contingency status is {summary.status.value}"
    return ApiResponse(data=summary, message=message)

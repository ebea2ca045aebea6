"""Budget reallocation requests and their approval workflow."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_audit_recorder, get_db, get_engine_config, require_permission
from buildledger.common.pagination import PaginatedResponse, PaginationParams, total_pages
from buildledger.common.permissions import (
    APPROVE_BUDGET_REALLOCATION,
    CREATE_BUDGET_REALLOCATION,
    DELETE_BUDGET_REALLOCATION,
    VIEW_FINANCES,
)
from buildledger.common.responses import ApiResponse
from buildledger.core.audit.recorder import AuditRecorder
from buildledger.core.policy import EngineConfig
from buildledger.core.reallocations.schemas import (
    ApprovalResult,
    ReallocationApprove,
    ReallocationCreate,
    ReallocationReject,
    ReallocationResponse,
)
from buildledger.core.reallocations.workflow import ReallocationWorkflow
from buildledger.db.models.user import User

router = APIRouter(prefix="/budget-reallocations", tags=["Budget Reallocations"])


class ReallocationListResponse(PaginatedResponse[ReallocationResponse]):
    pass


def get_workflow(
    config: EngineConfig = Depends(get_engine_config),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> ReallocationWorkflow:
    return ReallocationWorkflow(config, audit=audit)


# ---------- Endpoints ----------

@router.post("", response_model=ApiResponse[ReallocationResponse], status_code=201)
async def create_reallocation(
    body: ReallocationCreate,
    current_user: User = Depends(require_permission(CREATE_BUDGET_REALLOCATION)),
    workflow: ReallocationWorkflow = Depends(get_workflow),
    db: AsyncSession = Depends(get_db),
):
    realloc = await workflow.create(body, current_user, db)
    message = "Reallocation request submitted for approval"
    if realloc.warnings:
        message = "Reallocation request submitted with warnings"
    return ApiResponse(data=ReallocationResponse.from_orm_instance(realloc), message=message)


@router.get("", response_model=ApiResponse[ReallocationListResponse])
async def list_reallocations(
    project_id: uuid.UUID | None = Query(None),
    phase_id: uuid.UUID | None = Query(None, description="Matches either side of the move"),
    status: str | None = Query(None),
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    workflow: ReallocationWorkflow = Depends(get_workflow),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
):
    items, total = await workflow.list(
        db, params, project_id=project_id, phase_id=phase_id, status=status
    )
    return ApiResponse(
        data=ReallocationListResponse(
            items=[ReallocationResponse.from_orm_instance(r) for r in items],
            total=total,
            page=params.page,
            page_size=params.page_size,
            total_pages=total_pages(total, params.page_size),
        )
    )


@router.get("/{reallocation_id}", response_model=ApiResponse[ReallocationResponse])
async def get_reallocation(
    reallocation_id: uuid.UUID,
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    workflow: ReallocationWorkflow = Depends(get_workflow),
    db: AsyncSession = Depends(get_db),
):
    realloc = await workflow.get(reallocation_id, db)
    return ApiResponse(data=ReallocationResponse.from_orm_instance(realloc))


@router.post("/{reallocation_id}/approve", response_model=ApiResponse[ApprovalResult])
async def approve_reallocation(
    reallocation_id: uuid.UUID,
    body: ReallocationApprove | None = None,
    current_user: User = Depends(require_permission(APPROVE_BUDGET_REALLOCATION)),
    workflow: ReallocationWorkflow = Depends(get_workflow),
    db: AsyncSession = Depends(get_db),
):
    notes = body.notes if body else None
    result = await workflow.approve(reallocation_id, current_user, db, notes=notes)
    return ApiResponse(data=result, message="Reallocation approved")


@router.post("/{reallocation_id}/reject", response_model=ApiResponse[ReallocationResponse])
async def reject_reallocation(
    reallocation_id: uuid.UUID,
    body: ReallocationReject,
    current_user: User = Depends(require_permission(APPROVE_BUDGET_REALLOCATION)),
    workflow: ReallocationWorkflow = Depends(get_workflow),
    db: AsyncSession = Depends(get_db),
):
    realloc = await workflow.reject(reallocation_id, current_user, db, body.reason)
    return ApiResponse(
        data=ReallocationResponse.from_orm_instance(realloc), message="Reallocation rejected"
    )


@router.delete("/{reallocation_id}", response_model=ApiResponse[ReallocationResponse])
async def delete_reallocation(
    reallocation_id: uuid.UUID,
    current_user: User = Depends(require_permission(DELETE_BUDGET_REALLOCATION)),
    workflow: ReallocationWorkflow = Depends(get_workflow),
    db: AsyncSession = Depends(get_db),
):
    realloc = await workflow.soft_delete(reallocation_id, current_user, db)
    return ApiResponse(
        data=ReallocationResponse.from_orm_instance(realloc), message="Reallocation deleted"
    )

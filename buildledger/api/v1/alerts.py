"""Budget threshold alerts for projects and phases."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db, get_engine_config, require_permission
from buildledger.common.permissions import VIEW_FINANCES
from buildledger.common.responses import ApiResponse
from buildledger.core.alerts.engine import ThresholdAlertEngine
from buildledger.core.alerts.schemas import AlertReport
from buildledger.core.policy import EngineConfig
from buildledger.db.models.user import User

router = APIRouter(tags=["Alerts"])


@router.get("/projects/{project_id}/alerts", response_model=ApiResponse[AlertReport])
async def get_project_alerts(
    project_id: uuid.UUID,
    critical: float | None = Query(None, description="Critical threshold percent"),
    high: float | None = Query(None, description="High threshold percent"),
    medium: float | None = Query(None, description="Medium threshold percent"),
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    config: EngineConfig = Depends(get_engine_config),
    db: AsyncSession = Depends(get_db),
):
    engine = ThresholdAlertEngine(config)
    thresholds = engine.thresholds(critical=critical, high=high, medium=medium)
    report = await engine.for_project(project_id, db, thresholds)
    return ApiResponse(data=report)


@router.get("/phases/{phase_id}/alerts", response_model=ApiResponse[AlertReport])
async def get_phase_alerts(
    phase_id: uuid.UUID,
    critical: float | None = Query(None, description="Critical threshold percent"),
    high: float | None = Query(None, description="High threshold percent"),
    medium: float | None = Query(None, description="Medium threshold percent"),
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    config: EngineConfig = Depends(get_engine_config),
    db: AsyncSession = Depends(get_db),
):
    engine = ThresholdAlertEngine(config)
    thresholds = engine.thresholds(critical=critical, high=high, medium=medium)
    report = await engine.for_phase(phase_id, db, thresholds)
    return ApiResponse(data=report)

"""Spend trends, forecasts and recommendations."""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db, get_engine_config, require_permission
from buildledger.common.permissions import VIEW_FINANCES
from buildledger.common.responses import ApiResponse
from buildledger.core.analytics.forecast import ForecastEngine
from buildledger.core.analytics.recommendations import RecommendationEngine
from buildledger.core.analytics.schemas import ForecastReport, RecommendationReport, TrendReport
from buildledger.core.analytics.trends import TrendAnalyzer
from buildledger.core.policy import EngineConfig
from buildledger.db.models.user import User

router = APIRouter(prefix="/projects/{project_id}", tags=["Analytics"])


@router.get("/trends", response_model=ApiResponse[TrendReport])
async def get_trends(
    project_id: uuid.UUID,
    period: str | None = Query(None, description="week or month"),
    lookback: int | None = Query(None, description="Number of periods in the window"),
    threshold: float | None = Query(None, description="Material change percent"),
    as_of: date | None = Query(None, description="Reference date, defaults to today"),
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    config: EngineConfig = Depends(get_engine_config),
    db: AsyncSession = Depends(get_db),
):
    analyzer = TrendAnalyzer(config)
    trend = analyzer.settings(period=period, lookback=lookback, threshold=threshold)
    report = await analyzer.analyze(project_id, db, trend, as_of=as_of)
    return ApiResponse(data=report)


@router.get("/forecast", response_model=ApiResponse[ForecastReport])
async def get_forecast(
    project_id: uuid.UUID,
    as_of: date | None = Query(None, description="Reference date, defaults to today"),
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    config: EngineConfig = Depends(get_engine_config),
    db: AsyncSession = Depends(get_db),
):
    report = await ForecastEngine(config).forecast(project_id, db, as_of=as_of)
    return ApiResponse(data=report)


@router.get("/recommendations", response_model=ApiResponse[RecommendationReport])
async def get_recommendations(
    project_id: uuid.UUID,
    as_of: date | None = Query(None, description="Reference date, defaults to today"),
    current_user: User = Depends(require_permission(VIEW_FINANCES)),
    config: EngineConfig = Depends(get_engine_config),
    db: AsyncSession = Depends(get_db),
):
    report = await RecommendationEngine(config).recommend(project_id, db, as_of=as_of)
    return ApiResponse(data=report)

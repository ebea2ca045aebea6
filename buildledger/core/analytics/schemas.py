from __future__ import annotations

import uuid
from datetime import date

from pydantic import BaseModel

from buildledger.common.enums import ForecastConfidence, TrendDirection, TrendPeriod
from buildledger.common.money import Money, OptionalMoney, OptionalPercent


# ---------- Trends ----------


class PeriodBucket(BaseModel):
    period_start: date
    period_end: date
    total: Money
    delta: OptionalMoney = None


class TrendResult(BaseModel):
    category: str
    direction: TrendDirection
    change_percentage: OptionalPercent = None
    recent_total: Money
    baseline_average: Money
    series: list[PeriodBucket]


class TrendReport(BaseModel):
    project_id: uuid.UUID
    period: TrendPeriod
    lookback_periods: int
    threshold_percentage: OptionalPercent = None
    reference_date: date
    overall: TrendResult
    categories: list[TrendResult]


# ---------- Forecast ----------


class CategoryForecast(BaseModel):
    category: str
    budgeted: Money
    current_actual: Money
    projected_total: Money
    variance: Money
    variance_percentage: OptionalPercent = None
    average_period_spend: Money
    basis_periods: int
    remaining_periods: int
    confidence: ForecastConfidence
    insufficient_data: bool


class ForecastReport(BaseModel):
    project_id: uuid.UUID
    period: TrendPeriod
    reference_date: date
    horizon_end: date
    total_budgeted: Money
    total_projected: Money
    total_variance: Money
    categories: list[CategoryForecast]


# ---------- Recommendations ----------


class Recommendation(BaseModel):
    type: str
    priority: str
    category: str
    title: str
    message: str
    suggested_amount: OptionalMoney = None


class RecommendationReport(BaseModel):
    project_id: uuid.UUID
    total: int
    recommendations: list[Recommendation]

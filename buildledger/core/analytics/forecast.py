"""Run-rate spend forecasts.

Average spend over the completed periods is extrapolated across the periods
left until the project end date. With too little history the forecast falls
back to the current actual and says so.

The current actual and the run rate both come from the dated spend history up
to the reference date, so direct construction is measured from its spend
records rather than the phase running totals.
"""

from __future__ import annotations

import statistics
import uuid
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import ForecastConfidence
from buildledger.common.logging import get_logger
from buildledger.common.money import HUNDRED, ZERO
from buildledger.core.analytics.history import (
    SpendPoint,
    bucket_totals,
    category_total,
    fetch_spend_history,
)
from buildledger.core.analytics.periods import count_periods, period_start, previous_period, span
from buildledger.core.analytics.schemas import CategoryForecast, ForecastReport
from buildledger.core.budget.ledger import CATEGORY_ORDER, BudgetLedger, LedgerSnapshot
from buildledger.core.policy import EngineConfig, ForecastSettings

logger = get_logger("analytics.forecast")


def horizon_end(snapshot: LedgerSnapshot, reference: date, settings: ForecastSettings) -> date:
    if snapshot.project.end_date:
        return snapshot.project.end_date
    return reference + timedelta(days=settings.default_horizon_days)


def completed_periods(
    points: list[SpendPoint], category: str, reference: date, settings: ForecastSettings,
    project_start: date | None = None,
) -> list[Decimal]:
    """Totals of every full period before the one containing ``reference``."""
    dates = [p.spent_on for p in points if p.category == category]
    candidates = dates + ([project_start] if project_start else [])
    if not candidates:
        return []

    last = previous_period(period_start(reference, settings.period), settings.period)
    first = min(candidates)
    if first > last:
        return []

    totals = bucket_totals(points, settings.period, category)
    return [totals.get(start, ZERO) for start in span(first, last, settings.period)]


def confidence_for(totals: list[Decimal], settings: ForecastSettings) -> ForecastConfidence:
    if len(totals) < settings.min_periods:
        return ForecastConfidence.LOW
    mean = statistics.mean(totals)
    cv = statistics.pstdev(totals) / mean if mean > ZERO else ZERO
    if len(totals) >= settings.high_confidence_periods and cv <= settings.high_confidence_max_cv:
        return ForecastConfidence.HIGH
    return ForecastConfidence.MEDIUM


def forecast_category(
    category: str,
    budgeted: Decimal,
    current_actual: Decimal,
    totals: list[Decimal],
    remaining_periods: int,
    settings: ForecastSettings,
) -> CategoryForecast:
    confidence = confidence_for(totals, settings)
    insufficient = confidence == ForecastConfidence.LOW
    average = sum(totals, ZERO) / len(totals) if totals else ZERO

    if insufficient:
        projected = current_actual
    else:
        projected = current_actual + average * remaining_periods

    variance = projected - budgeted
    return CategoryForecast(
        category=category,
        budgeted=budgeted,
        current_actual=current_actual,
        projected_total=projected,
        variance=variance,
        variance_percentage=variance / budgeted * HUNDRED if budgeted > ZERO else None,
        average_period_spend=average,
        basis_periods=len(totals),
        remaining_periods=remaining_periods,
        confidence=confidence,
        insufficient_data=insufficient,
    )


def forecast_snapshot(
    snapshot: LedgerSnapshot,
    points: list[SpendPoint],
    reference: date,
    settings: ForecastSettings,
) -> ForecastReport:
    points = [p for p in points if p.spent_on <= reference]
    end = horizon_end(snapshot, reference, settings)
    remaining = count_periods(reference, end, settings.period)
    budgets = snapshot.category_budgets

    forecasts = []
    for category in CATEGORY_ORDER:
        totals = completed_periods(
            points, category.value, reference, settings, snapshot.project.start_date
        )
        forecasts.append(
            forecast_category(
                category.value,
                budgets[category],
                category_total(points, category.value),
                totals,
                remaining,
                settings,
            )
        )

    total_budgeted = snapshot.budget.total
    total_projected = sum((f.projected_total for f in forecasts), ZERO)
    return ForecastReport(
        project_id=snapshot.project.id,
        period=settings.period,
        reference_date=reference,
        horizon_end=end,
        total_budgeted=total_budgeted,
        total_projected=total_projected,
        total_variance=total_projected - total_budgeted,
        categories=forecasts,
    )


class ForecastEngine:
    def __init__(self, config: EngineConfig | None = None, ledger: BudgetLedger | None = None):
        self.config = config or EngineConfig.from_settings()
        self.ledger = ledger or BudgetLedger(self.config)

    async def forecast_for(
        self, snapshot: LedgerSnapshot, db: AsyncSession, as_of: date | None = None
    ) -> ForecastReport:
        reference = as_of or date.today()
        points = [
            p for p in await fetch_spend_history(snapshot.project.id, db) if p.spent_on <= reference
        ]
        report = forecast_snapshot(snapshot, points, reference, self.config.forecast)
        low = sum(1 for f in report.categories if f.insufficient_data)
        if low:
            logger.info(
                "Project %s forecast: %d categor%s with insufficient history",
                snapshot.project.id, low, "y" if low == 1 else "ies",
            )
        return report

    async def forecast(
        self, project_id: uuid.UUID, db: AsyncSession, as_of: date | None = None
    ) -> ForecastReport:
        snapshot = await self.ledger.load_snapshot(project_id, db)
        return await self.forecast_for(snapshot, db, as_of=as_of)

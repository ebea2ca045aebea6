from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import BudgetCategory, TrendDirection
from buildledger.common.logging import get_logger
from buildledger.common.money import HUNDRED
from buildledger.core.analytics.forecast import ForecastEngine
from buildledger.core.analytics.schemas import (
    ForecastReport,
    Recommendation,
    RecommendationReport,
    TrendReport,
)
from buildledger.core.analytics.trends import TrendAnalyzer
from buildledger.core.budget.contingency import ContingencyTracker
from buildledger.core.budget.ledger import BudgetLedger, LedgerSnapshot
from buildledger.core.budget.schemas import ContingencySummary
from buildledger.core.policy import EngineConfig

logger = get_logger("analytics.recommendations")

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}

USAGE_HIGH_PERCENT = Decimal("90")
USAGE_MEDIUM_PERCENT = Decimal("80")
CONTINGENCY_WATCH_PERCENT = Decimal("80")
FORECAST_OVERRUN_PERCENT = Decimal("10")
TREND_ACCELERATION_PERCENT = Decimal("20")

LEDGER_CATEGORIES = [
    BudgetCategory.DIRECT_CONSTRUCTION,
    BudgetCategory.PRE_CONSTRUCTION,
    BudgetCategory.INDIRECT,
]


def usage_recommendations(snapshot: LedgerSnapshot) -> list[Recommendation]:
    recs = []
    for category in LEDGER_CATEGORIES:
        figures = snapshot.category_figures(category)
        usage = figures.utilization_percentage
        if usage >= USAGE_HIGH_PERCENT:
            priority = "high"
        elif usage >= USAGE_MEDIUM_PERCENT:
            priority = "medium"
        else:
            continue
        recs.append(
            Recommendation(
                type="budget_adjustment",
                priority=priority,
                category=category.value,
                title=f"Review the {category.value} budget",
                message=(
                    f"{usage:.1f}% of the {category.value} budget has been used, "
                    f"{figures.remaining:,.2f} remains. Consider a reallocation before "
                    f"further commitments."
                ),
            )
        )
    return recs


def contingency_recommendations(summary: ContingencySummary) -> list[Recommendation]:
    usage = summary.raw_usage_percentage
    if usage > HUNDRED:
        return [
            Recommendation(
                type="contingency",
                priority="high",
                category=BudgetCategory.CONTINGENCY.value,
                title="Contingency reserve exhausted",
                message=(
                    f"Approved draws of {summary.drawn:,.2f} exceed the reserve of "
                    f"{summary.budgeted:,.2f}. Replenish it from another category."
                ),
                suggested_amount=summary.drawn - summary.budgeted,
            )
        ]
    if usage >= CONTINGENCY_WATCH_PERCENT:
        return [
            Recommendation(
                type="contingency",
                priority="medium",
                category=BudgetCategory.CONTINGENCY.value,
                title="Contingency reserve running low",
                message=(
                    f"{usage:.1f}% of the contingency reserve has been drawn, "
                    f"{summary.remaining:,.2f} remains."
                ),
            )
        ]
    return []


def forecast_recommendations(report: ForecastReport) -> list[Recommendation]:
    recs = []
    for forecast in report.categories:
        pct = forecast.variance_percentage
        if forecast.insufficient_data or pct is None or pct <= FORECAST_OVERRUN_PERCENT:
            continue
        recs.append(
            Recommendation(
                type="forecast_overrun",
                priority="high",
                category=forecast.category,
                title=f"{forecast.category} is forecast to overrun",
                message=(
                    f"At the current run rate {forecast.category} will reach "
                    f"{forecast.projected_total:,.2f} against a budget of "
                    f"{forecast.budgeted:,.2f} ({pct:.1f}% over)."
                ),
                suggested_amount=forecast.variance,
            )
        )
    return recs


def trend_recommendations(report: TrendReport) -> list[Recommendation]:
    recs = []
    for trend in report.categories:
        change = trend.change_percentage
        if trend.direction != TrendDirection.DECLINING:
            continue
        if change is not None and change <= TREND_ACCELERATION_PERCENT:
            continue
        detail = f"up {change:.1f}%" if change is not None else "up from nothing"
        recs.append(
            Recommendation(
                type="spend_trend",
                priority="medium",
                category=trend.category,
                title=f"{trend.category} spend is accelerating",
                message=(
                    f"Spend in the latest {report.period.value} was {trend.recent_total:,.2f}, "
                    f"{detail} on the recent average."
                ),
            )
        )
    return recs


def prioritize(recs: list[Recommendation]) -> list[Recommendation]:
    return sorted(recs, key=lambda r: PRIORITY_RANK.get(r.priority, len(PRIORITY_RANK)))


class RecommendationEngine:
    def __init__(self, config: EngineConfig | None = None, ledger: BudgetLedger | None = None):
        self.config = config or EngineConfig.from_settings()
        self.ledger = ledger or BudgetLedger(self.config)
        self.contingency = ContingencyTracker(self.config, self.ledger)
        self.forecasts = ForecastEngine(self.config, self.ledger)
        self.trends = TrendAnalyzer(self.config, self.ledger)

    async def recommend(
        self, project_id: uuid.UUID, db: AsyncSession, as_of: date | None = None
    ) -> RecommendationReport:
        snapshot = await self.ledger.load_snapshot(project_id, db)
        contingency = await self.contingency.summarize_snapshot(snapshot, db)
        forecast = await self.forecasts.forecast_for(snapshot, db, as_of=as_of)
        trends = await self.trends.analyze(project_id, db, as_of=as_of)

        recs = prioritize(
            usage_recommendations(snapshot)
            + contingency_recommendations(contingency)
            + forecast_recommendations(forecast)
            + trend_recommendations(trends)
        )
        logger.info("Project %s: %d recommendation(s)", project_id, len(recs))
        return RecommendationReport(project_id=project_id, total=len(recs), recommendations=recs)

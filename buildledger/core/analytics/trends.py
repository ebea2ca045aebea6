"""Period over period spend trends.

Only completed periods count: the window ends with the period before the one
containing the reference date. The most recent of them is compared with the
average of the periods before it. Rising spend is reported as ``declining``
budget health.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import BudgetCategory, TrendDirection, TrendPeriod
from buildledger.common.exceptions import BadRequestError
from buildledger.common.logging import get_logger
from buildledger.common.money import HUNDRED, ZERO
from buildledger.core.analytics.history import SpendPoint, bucket_totals, fetch_spend_history
from buildledger.core.analytics.periods import completed_window, period_end
from buildledger.core.analytics.schemas import PeriodBucket, TrendReport, TrendResult
from buildledger.core.budget.ledger import BudgetLedger
from buildledger.core.policy import EngineConfig, TrendSettings

logger = get_logger("analytics.trends")

OVERALL = "overall"
MAX_LOOKBACK = 104


def build_series(
    points: list[SpendPoint], starts: list[date], period: TrendPeriod, category: str | None
) -> list[PeriodBucket]:
    totals = bucket_totals(points, period, category)
    series: list[PeriodBucket] = []
    previous: Decimal | None = None
    for start in starts:
        total = totals.get(start, ZERO)
        series.append(
            PeriodBucket(
                period_start=start,
                period_end=period_end(start, period),
                total=total,
                delta=None if previous is None else total - previous,
            )
        )
        previous = total
    return series


def classify_trend(
    series: list[PeriodBucket], threshold: Decimal
) -> tuple[TrendDirection, Decimal | None, Decimal, Decimal]:
    """Return (direction, change %, recent total, baseline average)."""
    if len(series) < 2:
        recent = series[-1].total if series else ZERO
        return TrendDirection.STABLE, None, recent, ZERO

    recent = series[-1].total
    preceding = series[:-1]
    baseline = sum((b.total for b in preceding), ZERO) / len(preceding)

    if baseline == ZERO:
        if recent > ZERO:
            return TrendDirection.DECLINING, None, recent, baseline
        return TrendDirection.STABLE, ZERO, recent, baseline

    change = (recent - baseline) / baseline * HUNDRED
    if change >= threshold:
        direction = TrendDirection.DECLINING
    elif change <= -threshold:
        direction = TrendDirection.IMPROVING
    else:
        direction = TrendDirection.STABLE
    return direction, change, recent, baseline


def analyze_points(
    points: list[SpendPoint],
    reference: date,
    trend: TrendSettings,
    categories: list[str],
) -> tuple[TrendResult, list[TrendResult]]:
    starts = completed_window(reference, trend.lookback_periods, trend.period)

    def result_for(category: str | None) -> TrendResult:
        series = build_series(points, starts, trend.period, category)
        direction, change, recent, baseline = classify_trend(series, trend.material_change_percent)
        return TrendResult(
            category=category or OVERALL,
            direction=direction,
            change_percentage=change,
            recent_total=recent,
            baseline_average=baseline,
            series=series,
        )

    return result_for(None), [result_for(c) for c in categories]


class TrendAnalyzer:
    def __init__(self, config: EngineConfig | None = None, ledger: BudgetLedger | None = None):
        self.config = config or EngineConfig.from_settings()
        self.ledger = ledger or BudgetLedger(self.config)

    def settings(
        self,
        period: str | None = None,
        lookback: int | None = None,
        threshold: float | Decimal | None = None,
    ) -> TrendSettings:
        values = self.config.trends.model_dump()
        if period is not None:
            try:
                values["period"] = TrendPeriod(period)
            except ValueError:
                raise BadRequestError("period must be one of: week, month")
        if lookback is not None:
            if not 1 <= lookback <= MAX_LOOKBACK:
                raise BadRequestError(f"lookback must be between 1 and {MAX_LOOKBACK} periods")
            values["lookback_periods"] = lookback
        if threshold is not None:
            if threshold < 0:
                raise BadRequestError("threshold cannot be negative")
            values["material_change_percent"] = Decimal(str(threshold))
        return TrendSettings(**values)

    async def analyze(
        self,
        project_id: uuid.UUID,
        db: AsyncSession,
        trend: TrendSettings | None = None,
        as_of: date | None = None,
    ) -> TrendReport:
        trend = trend or self.config.trends
        reference = as_of or date.today()
        await self.ledger.get_project(project_id, db)

        since = completed_window(reference, trend.lookback_periods, trend.period)[0]
        history = await fetch_spend_history(project_id, db, since=since)
        points = [p for p in history if p.spent_on <= reference]
        overall, categories = analyze_points(
            points, reference, trend, [c.value for c in BudgetCategory]
        )
        logger.debug(
            "Project %s trend over %d %s periods: %s",
            project_id, trend.lookback_periods, trend.period.value, overall.direction.value,
        )

        return TrendReport(
            project_id=project_id,
            period=trend.period,
            lookback_periods=trend.lookback_periods,
            threshold_percentage=trend.material_change_percent,
            reference_date=reference,
            overall=overall,
            categories=categories,
        )

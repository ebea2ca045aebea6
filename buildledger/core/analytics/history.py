from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import BudgetCategory, RecordStatus, TrendPeriod
from buildledger.common.money import ZERO, to_decimal
from buildledger.core.analytics.periods import period_start
from buildledger.db import guard
from buildledger.db.models.contingency import ContingencyDraw
from buildledger.db.models.spend import SpendRecord


@dataclass(frozen=True)
class SpendPoint:
    category: str
    amount: Decimal
    spent_on: date


async def fetch_spend_history(
    project_id: uuid.UUID, db: AsyncSession, since: date | None = None
) -> list[SpendPoint]:
    """Approved, non-deleted spend for a project in date order.

    Contingency is spent through draws, so approved draws appear as
    ``contingency`` points and spend records filed under that category are
    left out, matching what the ledger reports as drawn.
    """
    contingency = BudgetCategory.CONTINGENCY.value
    spend = select(SpendRecord.category, SpendRecord.amount, SpendRecord.spent_on).where(
        SpendRecord.project_id == project_id,
        SpendRecord.active(),
        SpendRecord.status == RecordStatus.APPROVED.value,
        SpendRecord.category != contingency,
    )
    draws = select(ContingencyDraw.amount, ContingencyDraw.drawn_on).where(
        ContingencyDraw.project_id == project_id,
        ContingencyDraw.active(),
        ContingencyDraw.status == RecordStatus.APPROVED.value,
    )
    if since is not None:
        spend = spend.where(SpendRecord.spent_on >= since)
        draws = draws.where(ContingencyDraw.drawn_on >= since)

    spend_rows = await guard.execute(db, spend)
    draw_rows = await guard.execute(db, draws)
    points = [
        SpendPoint(category, to_decimal(amount), spent_on)
        for category, amount, spent_on in spend_rows.all()
    ]
    points.extend(
        SpendPoint(contingency, to_decimal(amount), drawn_on)
        for amount, drawn_on in draw_rows.all()
    )
    points.sort(key=lambda p: p.spent_on)
    return points


def category_total(points: list[SpendPoint], category: str) -> Decimal:
    return sum((p.amount for p in points if p.category == category), ZERO)


def bucket_totals(
    points: list[SpendPoint], period: TrendPeriod, category: str | None = None
) -> dict[date, Decimal]:
    """Sum spend per period start. ``category=None`` sums every category."""
    totals: dict[date, Decimal] = defaultdict(lambda: ZERO)
    for point in points:
        if category is None or point.category == category:
            totals[period_start(point.spent_on, period)] += point.amount
    return totals

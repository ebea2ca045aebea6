from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import BudgetCategory, ContingencyStatus, RecordStatus
from buildledger.common.money import HUNDRED, ZERO, non_negative, percentage, to_decimal
from buildledger.core.budget.ledger import BudgetLedger, LedgerSnapshot
from buildledger.core.budget.schemas import ContingencySummary
from buildledger.core.policy import ContingencyThresholds, EngineConfig
from buildledger.db import guard
from buildledger.db.models.contingency import ContingencyDraw


def contingency_status(
    budgeted: Decimal, drawn: Decimal, thresholds: ContingencyThresholds
) -> ContingencyStatus:
    if budgeted <= ZERO:
        return ContingencyStatus.EXCEEDED if drawn > ZERO else ContingencyStatus.HEALTHY

    usage = percentage(drawn, budgeted)
    if usage >= thresholds.exceeded:
        return ContingencyStatus.EXCEEDED
    if usage >= thresholds.critical:
        return ContingencyStatus.CRITICAL
    if usage >= thresholds.warning:
        return ContingencyStatus.WARNING
    return ContingencyStatus.HEALTHY


def summarize_contingency(
    snapshot: LedgerSnapshot,
    thresholds: ContingencyThresholds,
    pending_draws: int = 0,
    pending_amount: Decimal = ZERO,
) -> ContingencySummary:
    budgeted = snapshot.category_budgets[BudgetCategory.CONTINGENCY]
    drawn = snapshot.contingency_drawn
    raw_usage = percentage(drawn, budgeted)
    return ContingencySummary(
        project_id=snapshot.project.id,
        budgeted=budgeted,
        drawn=drawn,
        remaining=non_negative(budgeted - drawn),
        usage_percentage=min(raw_usage, HUNDRED),
        raw_usage_percentage=raw_usage,
        status=contingency_status(budgeted, drawn, thresholds),
        pending_draws=pending_draws,
        pending_amount=pending_amount,
    )


class ContingencyTracker:
    def __init__(self, config: EngineConfig | None = None, ledger: BudgetLedger | None = None):
        self.config = config or EngineConfig.from_settings()
        self.ledger = ledger or BudgetLedger(self.config)

    async def pending(self, project_id: uuid.UUID, db: AsyncSession) -> tuple[int, Decimal]:
        result = await guard.execute(
            db,
            select(func.count(ContingencyDraw.id), func.sum(ContingencyDraw.amount)).where(
                ContingencyDraw.project_id == project_id,
                ContingencyDraw.active(),
                ContingencyDraw.status == RecordStatus.PENDING.value,
            ),
        )
        count, amount = result.one()
        return count or 0, to_decimal(amount)

    async def summarize_snapshot(
        self, snapshot: LedgerSnapshot, db: AsyncSession
    ) -> ContingencySummary:
        count, amount = await self.pending(snapshot.project.id, db)
        return summarize_contingency(snapshot, self.config.contingency, count, amount)

    async def summary(self, project_id: uuid.UUID, db: AsyncSession) -> ContingencySummary:
        snapshot = await self.ledger.load_snapshot(project_id, db)
        return await self.summarize_snapshot(snapshot, db)

"""Authoritative budget figures for projects, categories and phases.

The pure helpers at the top of the module do all of the arithmetic; the
``BudgetLedger`` service only loads records and hands them over, so every
figure in the API comes from the same few functions.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import BudgetCategory, BudgetKind, PhaseSpendCategory, RecordStatus
from buildledger.common.exceptions import BadRequestError, NotFoundError
from buildledger.common.logging import get_logger
from buildledger.common.money import HUNDRED, ZERO, non_negative, percentage, to_decimal
from buildledger.core.budget.schemas import (
    BudgetValidation,
    CategoryFigures,
    EnhancedBudget,
    FlatBudget,
    LedgerFigures,
    PhaseFigures,
    ProjectLedger,
    parse_budget,
)
from buildledger.core.policy import EngineConfig, EstimationRatios
from buildledger.db import guard
from buildledger.db.models.contingency import ContingencyDraw
from buildledger.db.models.phase import ProjectPhase
from buildledger.db.models.project import Project
from buildledger.db.models.spend import SpendRecord

logger = get_logger("budget.ledger")

CATEGORY_ORDER = [
    BudgetCategory.DIRECT_CONSTRUCTION,
    BudgetCategory.PRE_CONSTRUCTION,
    BudgetCategory.INDIRECT,
    BudgetCategory.CONTINGENCY,
]


# ---------------------------------------------------------------------------
# Pure computations
# ---------------------------------------------------------------------------


def compute_figures(budgeted: Decimal, spent: Decimal, allocated: Decimal = ZERO) -> dict:
    return {
        "budgeted": budgeted,
        "spent": spent,
        "remaining": non_negative(budgeted - spent),
        "allocated": allocated,
        "unallocated": non_negative(budgeted - allocated),
        "utilization_percentage": percentage(spent, budgeted),
    }


def resolve_category_budgets(
    budget: FlatBudget | EnhancedBudget, ratios: EstimationRatios
) -> dict[BudgetCategory, Decimal]:
    if budget.kind == BudgetKind.ENHANCED.value:
        return {
            BudgetCategory.DIRECT_CONSTRUCTION: budget.direct_construction,
            BudgetCategory.PRE_CONSTRUCTION: budget.pre_construction,
            BudgetCategory.INDIRECT: budget.indirect,
            BudgetCategory.CONTINGENCY: budget.contingency,
        }

    total = budget.total
    pre_construction = total * ratios.pre_construction_ratio
    indirect = total * ratios.indirect_ratio
    contingency = (
        budget.contingency if budget.contingency is not None else total * ratios.contingency_ratio
    )
    return {
        BudgetCategory.DIRECT_CONSTRUCTION: non_negative(
            total - pre_construction - indirect - contingency
        ),
        BudgetCategory.PRE_CONSTRUCTION: pre_construction,
        BudgetCategory.INDIRECT: indirect,
        BudgetCategory.CONTINGENCY: contingency,
    }


def convert_flat_to_enhanced(
    budget: FlatBudget | EnhancedBudget, ratios: EstimationRatios
) -> EnhancedBudget:
    """Materialize the estimated categories so they can be moved individually."""
    if isinstance(budget, EnhancedBudget):
        return budget
    amounts = resolve_category_budgets(budget, ratios)
    return EnhancedBudget(
        total=budget.total,
        direct_construction=amounts[BudgetCategory.DIRECT_CONSTRUCTION],
        pre_construction=amounts[BudgetCategory.PRE_CONSTRUCTION],
        indirect=amounts[BudgetCategory.INDIRECT],
        contingency=amounts[BudgetCategory.CONTINGENCY],
    )


def validate_budget(
    budget: FlatBudget | EnhancedBudget,
    ratios: EstimationRatios,
    total_phase_budgets: Decimal = ZERO,
) -> BudgetValidation:
    errors: list[str] = []
    warnings: list[str] = []

    if budget.total < ZERO:
        errors.append("Total budget cannot be negative")

    if isinstance(budget, EnhancedBudget):
        for name in ("direct_construction", "pre_construction", "indirect", "contingency"):
            if getattr(budget, name) < ZERO:
                errors.append(f"Budget category '{name}' cannot be negative")
        category_sum = budget.category_sum()
        if category_sum > budget.total:
            warnings.append(
                f"Budget categories sum to {category_sum:,.2f}, exceeding the declared "
                f"total of {budget.total:,.2f} by {category_sum - budget.total:,.2f}"
            )
    elif budget.contingency is not None and budget.contingency > budget.total:
        warnings.append(
            f"Contingency {budget.contingency:,.2f} exceeds the total budget {budget.total:,.2f}"
        )

    dcc = resolve_category_budgets(budget, ratios)[BudgetCategory.DIRECT_CONSTRUCTION]
    if total_phase_budgets > dcc:
        warnings.append(
            f"Phase budgets total {total_phase_budgets:,.2f}, exceeding the direct "
            f"construction budget of {dcc:,.2f} by {total_phase_budgets - dcc:,.2f}"
        )

    return BudgetValidation(is_valid=not errors, errors=errors, warnings=warnings)


def phase_figures(phase: ProjectPhase) -> PhaseFigures:
    breakdown = phase.budget_breakdown or {}
    actual = phase.actual_spending or {}

    by_category: dict[str, LedgerFigures] = {}
    for category in PhaseSpendCategory:
        budgeted = to_decimal(breakdown.get(category.value))
        spent = to_decimal(actual.get(category.value))
        if budgeted or spent:
            by_category[category.value] = LedgerFigures(**compute_figures(budgeted, spent))

    allocated = sum((to_decimal(breakdown.get(c.value)) for c in PhaseSpendCategory), ZERO)
    return PhaseFigures(
        phase_id=phase.id,
        phase_name=phase.name,
        order_index=phase.order_index or 0,
        committed=to_decimal(phase.committed_total),
        by_category=by_category,
        **compute_figures(
            to_decimal(phase.budget_total), to_decimal(phase.actual_spending_total), allocated
        ),
    )


def phase_headroom(phase: ProjectPhase) -> Decimal:
    return non_negative(
        to_decimal(phase.budget_total)
        - to_decimal(phase.actual_spending_total)
        - to_decimal(phase.committed_total)
    )


@dataclass
class LedgerSnapshot:
    """Everything needed to answer ledger questions for one project."""

    project: Project
    budget: FlatBudget | EnhancedBudget
    ratios: EstimationRatios
    phases: list[ProjectPhase]
    spend_by_category: dict[str, Decimal] = field(default_factory=dict)
    contingency_drawn: Decimal = ZERO

    @property
    def category_budgets(self) -> dict[BudgetCategory, Decimal]:
        return resolve_category_budgets(self.budget, self.ratios)

    @property
    def total_phase_budgets(self) -> Decimal:
        return sum((to_decimal(p.budget_total) for p in self.phases), ZERO)

    @property
    def total_phase_spending(self) -> Decimal:
        return sum((to_decimal(p.actual_spending_total) for p in self.phases), ZERO)

    def spent(self, category: BudgetCategory) -> Decimal:
        if category == BudgetCategory.DIRECT_CONSTRUCTION:
            return self.total_phase_spending
        if category == BudgetCategory.CONTINGENCY:
            return self.contingency_drawn
        return self.spend_by_category.get(category.value, ZERO)

    def category_figures(self, category: BudgetCategory) -> CategoryFigures:
        allocated = (
            self.total_phase_budgets if category == BudgetCategory.DIRECT_CONSTRUCTION else ZERO
        )
        return CategoryFigures(
            category=category.value,
            estimated=self.budget.kind == BudgetKind.FLAT.value,
            **compute_figures(self.category_budgets[category], self.spent(category), allocated),
        )

    def headroom(self, category: BudgetCategory) -> Decimal:
        figures = self.category_figures(category)
        if category == BudgetCategory.DIRECT_CONSTRUCTION:
            return figures.unallocated
        return figures.remaining

    def to_ledger(self) -> ProjectLedger:
        categories = [self.category_figures(c) for c in CATEGORY_ORDER]
        total_spent = sum((c.spent for c in categories), ZERO)
        total_budget = self.budget.total
        display = min(percentage(total_spent, total_budget), HUNDRED)
        return ProjectLedger(
            project_id=self.project.id,
            project_title=self.project.title,
            currency=self.project.currency,
            budget_kind=self.budget.kind,
            total_budget=total_budget,
            total_spent=total_spent,
            total_remaining=non_negative(total_budget - total_spent),
            display_utilization_percentage=display,
            direct_construction=categories[0],
            categories=categories,
            phases=[phase_figures(p) for p in self.phases],
            validation=validate_budget(self.budget, self.ratios, self.total_phase_budgets),
        )


def _locked(query: Select) -> Select:
    # The identity map would otherwise keep attribute values read earlier in the session
    return query.with_for_update().execution_options(populate_existing=True)


def parse_category(value: str) -> BudgetCategory:
    try:
        return BudgetCategory(value)
    except ValueError:
        valid = ", ".join(c.value for c in BudgetCategory)
        raise BadRequestError(f"Invalid category '{value}'. Must be one of: {valid}")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class BudgetLedger:
    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig.from_settings()

    async def get_project(
        self, project_id: uuid.UUID, db: AsyncSession, for_update: bool = False
    ) -> Project:
        query = select(Project).where(Project.id == project_id, Project.active())
        if for_update:
            query = _locked(query)
        result = await guard.execute(db, query)
        project = result.scalar_one_or_none()
        if not project:
            raise NotFoundError("Project", str(project_id))
        return project

    async def get_phase(
        self, phase_id: uuid.UUID, db: AsyncSession, project_id: uuid.UUID | None = None
    ) -> ProjectPhase:
        query = select(ProjectPhase).where(ProjectPhase.id == phase_id, ProjectPhase.active())
        if project_id is not None:
            query = query.where(ProjectPhase.project_id == project_id)
        result = await guard.execute(db, query)
        phase = result.scalar_one_or_none()
        if not phase:
            raise NotFoundError("Phase", str(phase_id))
        return phase

    async def list_phases(
        self, project_id: uuid.UUID, db: AsyncSession, for_update: bool = False
    ) -> list[ProjectPhase]:
        query = (
            select(ProjectPhase)
            .where(ProjectPhase.project_id == project_id, ProjectPhase.active())
            .order_by(ProjectPhase.order_index)
        )
        if for_update:
            query = _locked(query)
        result = await guard.execute(db, query)
        return list(result.scalars().all())

    async def load_snapshot(
        self, project_or_id: Project | uuid.UUID, db: AsyncSession, for_update: bool = False
    ) -> LedgerSnapshot:
        """Load the project, its phases and spend totals.

        With ``for_update`` the project and phase rows are locked until the
        transaction ends and re-read from the database, so a caller that
        writes budgets back plans against the committed figures.
        """
        if isinstance(project_or_id, Project) and not for_update:
            project = project_or_id
        else:
            project_id = project_or_id.id if isinstance(project_or_id, Project) else project_or_id
            project = await self.get_project(project_id, db, for_update=for_update)

        phases = await self.list_phases(project.id, db, for_update=for_update)

        spend_rows = await guard.execute(
            db,
            select(SpendRecord.category, func.sum(SpendRecord.amount))
            .where(
                SpendRecord.project_id == project.id,
                SpendRecord.active(),
                SpendRecord.status == RecordStatus.APPROVED.value,
            )
            .group_by(SpendRecord.category),
        )
        spend_by_category = {category: to_decimal(total) for category, total in spend_rows.all()}

        drawn = await guard.execute(
            db,
            select(func.sum(ContingencyDraw.amount)).where(
                ContingencyDraw.project_id == project.id,
                ContingencyDraw.active(),
                ContingencyDraw.status == RecordStatus.APPROVED.value,
            ),
        )

        return LedgerSnapshot(
            project=project,
            budget=parse_budget(project.budget),
            ratios=self.config.estimation,
            phases=phases,
            spend_by_category=spend_by_category,
            contingency_drawn=to_decimal(drawn.scalar()),
        )

    async def summary(self, project_id: uuid.UUID, db: AsyncSession) -> ProjectLedger:
        snapshot = await self.load_snapshot(project_id, db)
        ledger = snapshot.to_ledger()
        if ledger.validation.warnings:
            logger.info(
                "Project %s budget has %d warning(s)", project_id, len(ledger.validation.warnings)
            )
        return ledger

    async def direct_construction(self, project_id: uuid.UUID, db: AsyncSession) -> CategoryFigures:
        snapshot = await self.load_snapshot(project_id, db)
        return snapshot.category_figures(BudgetCategory.DIRECT_CONSTRUCTION)

    async def category(
        self, project_id: uuid.UUID, category: BudgetCategory | str, db: AsyncSession
    ) -> CategoryFigures:
        if not isinstance(category, BudgetCategory):
            category = parse_category(category)
        snapshot = await self.load_snapshot(project_id, db)
        return snapshot.category_figures(category)

    async def phase(self, phase_id: uuid.UUID, db: AsyncSession) -> PhaseFigures:
        phase = await self.get_phase(phase_id, db)
        # A phase of a deleted project is as good as gone
        await self.get_project(phase.project_id, db)
        return phase_figures(phase)

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from buildledger.common.enums import BudgetKind, ContingencyStatus
from buildledger.common.money import ZERO, Money, OptionalMoney, Percent, to_decimal


# ---------- Budget shapes ----------


class FlatBudget(BaseModel):
    """Single total; category amounts are estimated from ratios."""

    kind: Literal["flat"] = BudgetKind.FLAT.value
    total: Decimal = ZERO
    contingency: Decimal | None = None

    @field_validator("total", mode="before")
    @classmethod
    def _total(cls, value):
        return to_decimal(value)

    @field_validator("contingency", mode="before")
    @classmethod
    def _contingency(cls, value):
        # None means "not stated": the estimation ratio applies
        return None if value is None else to_decimal(value)


class EnhancedBudget(BaseModel):
    kind: Literal["enhanced"] = BudgetKind.ENHANCED.value
    total: Decimal = ZERO
    direct_construction: Decimal = ZERO
    pre_construction: Decimal = ZERO
    indirect: Decimal = ZERO
    contingency: Decimal = ZERO

    @field_validator(
        "total", "direct_construction", "pre_construction", "indirect", "contingency",
        mode="before",
    )
    @classmethod
    def _amounts(cls, value):
        return to_decimal(value)

    def category_sum(self) -> Decimal:
        return self.direct_construction + self.pre_construction + self.indirect + self.contingency


ProjectBudget = Annotated[Union[FlatBudget, EnhancedBudget], Field(discriminator="kind")]

_budget_adapter: TypeAdapter[FlatBudget | EnhancedBudget] = TypeAdapter(ProjectBudget)


def parse_budget(payload: dict | None) -> FlatBudget | EnhancedBudget:
    """Load the stored JSON payload. Untagged or empty payloads read as flat."""
    if not payload:
        return FlatBudget()
    data = dict(payload)
    data.setdefault("kind", BudgetKind.FLAT.value)
    return _budget_adapter.validate_python(data)


def dump_budget(budget: FlatBudget | EnhancedBudget) -> dict:
    return budget.model_dump(mode="json")


# ---------- Ledger figures ----------


class LedgerFigures(BaseModel):
    budgeted: Money
    spent: Money
    remaining: Money
    allocated: Money
    unallocated: Money
    utilization_percentage: Percent


class CategoryFigures(LedgerFigures):
    category: str
    estimated: bool = False


class PhaseFigures(LedgerFigures):
    phase_id: uuid.UUID
    phase_name: str
    order_index: int
    committed: Money
    by_category: dict[str, LedgerFigures] = Field(default_factory=dict)


class BudgetValidation(BaseModel):
    is_valid: bool
    errors: list[str]
    warnings: list[str]


class ProjectLedger(BaseModel):
    project_id: uuid.UUID
    project_title: str
    currency: str
    budget_kind: str
    total_budget: Money
    total_spent: Money
    total_remaining: Money
    # Capped at 100 for display, the per-category figures stay uncapped
    display_utilization_percentage: Percent
    direct_construction: CategoryFigures
    categories: list[CategoryFigures]
    phases: list[PhaseFigures]
    validation: BudgetValidation


# ---------- Contingency ----------


class ContingencySummary(BaseModel):
    project_id: uuid.UUID
    budgeted: Money
    drawn: Money
    remaining: Money
    usage_percentage: Percent
    raw_usage_percentage: Percent
    status: ContingencyStatus
    pending_draws: int
    pending_amount: Money


# ---------- Phase allocation ----------


class PhaseAllocationResult(BaseModel):
    phase: PhaseFigures
    total_phase_budgets: Money
    direct_construction_budget: Money
    over_allocated_by: OptionalMoney = None
    warnings: list[str]

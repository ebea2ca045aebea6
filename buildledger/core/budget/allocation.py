"""Setting a phase's budget.

Over-allocation against the direct construction budget is reported, not
blocked: the request succeeds and the caller gets the warnings back.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import AuditAction, BudgetCategory, PhaseSpendCategory
from buildledger.common.exceptions import BadRequestError
from buildledger.common.logging import get_logger
from buildledger.common.money import ZERO, to_decimal
from buildledger.core.audit.recorder import AuditRecorder, audit_recorder
from buildledger.core.budget.ledger import BudgetLedger, phase_figures
from buildledger.core.budget.schemas import PhaseAllocationResult
from buildledger.core.policy import EngineConfig
from buildledger.db import guard
from buildledger.db.models.user import User

logger = get_logger("budget.allocation")


def _validate_breakdown(breakdown: dict[str, Decimal]) -> dict[str, Decimal]:
    valid = {c.value for c in PhaseSpendCategory}
    cleaned = {}
    for key, value in breakdown.items():
        if key not in valid:
            raise BadRequestError(
                f"Invalid breakdown category '{key}'. Must be one of: {', '.join(sorted(valid))}"
            )
        amount = to_decimal(value)
        if amount < ZERO:
            raise BadRequestError(f"Breakdown amount for '{key}' cannot be negative")
        cleaned[key] = amount
    return cleaned


class PhaseAllocation:
    def __init__(
        self,
        config: EngineConfig | None = None,
        ledger: BudgetLedger | None = None,
        audit: AuditRecorder | None = None,
    ):
        self.config = config or EngineConfig.from_settings()
        self.ledger = ledger or BudgetLedger(self.config)
        self.audit = audit or audit_recorder

    async def allocate(
        self,
        phase_id: uuid.UUID,
        budget_total: Decimal,
        actor: User,
        db: AsyncSession,
        breakdown: dict[str, Decimal] | None = None,
    ) -> PhaseAllocationResult:
        if not budget_total.is_finite() or budget_total < ZERO:
            raise BadRequestError("Phase budget cannot be negative")
        cleaned = _validate_breakdown(breakdown) if breakdown is not None else None

        phase = await self.ledger.get_phase(phase_id, db)
        snapshot = await self.ledger.load_snapshot(phase.project_id, db)

        before = {
            "budget_total": str(to_decimal(phase.budget_total)),
            "budget_breakdown": dict(phase.budget_breakdown or {}),
        }

        phase.budget_total = budget_total
        if cleaned is not None:
            phase.budget_breakdown = {k: str(v) for k, v in cleaned.items()}
        await guard.flush(db)

        # Snapshot phases share the identity map, so totals already include the change
        total_phases = snapshot.total_phase_budgets
        dcc = snapshot.category_budgets[BudgetCategory.DIRECT_CONSTRUCTION]

        warnings = []
        over_by = None
        if total_phases > dcc:
            over_by = total_phases - dcc
            warnings.append(
                f"Phase budgets total {total_phases:,.2f}, exceeding the direct construction "
                f"budget of {dcc:,.2f} by {over_by:,.2f}"
            )
        breakdown_sum = sum((to_decimal(v) for v in (phase.budget_breakdown or {}).values()), ZERO)
        if breakdown_sum > budget_total:
            warnings.append(
                f"Breakdown totals {breakdown_sum:,.2f}, exceeding the phase budget of "
                f"{budget_total:,.2f}"
            )

        await self.audit.record(
            db,
            actor_id=actor.id,
            action=AuditAction.BUDGET_ALLOCATED,
            entity_type="project_phase",
            entity_id=phase.id,
            project_id=phase.project_id,
            before=before,
            after={
                "budget_total": str(budget_total),
                "budget_breakdown": dict(phase.budget_breakdown or {}),
            },
        )
        await guard.flush(db)

        if warnings:
            logger.warning("Phase %s allocation warnings: %s", phase.id, "; ".join(warnings))

        return PhaseAllocationResult(
            phase=phase_figures(phase),
            total_phase_budgets=total_phases,
            direct_construction_budget=dcc,
            over_allocated_by=over_by,
            warnings=warnings,
        )

"""Approval workflow for moving budget between lines.

A request is created ``pending`` and is resolved exactly once. Resolution is a
conditional ``UPDATE ... WHERE status = 'pending'``: when two resolutions
race, the database lets exactly one of them through and the loser sees zero
affected rows. The status change, the monetary move and the audit row all
share the caller's transaction.

Approval locks the project and its phases before reading balances. Phase
budgets move by SQL arithmetic and the project budget document is only
written back while ``budget_version`` still matches what was read.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Select, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import (
    AuditAction,
    BudgetCategory,
    ReallocationStatus,
    ReallocationType,
)
from buildledger.common.exceptions import BadRequestError, InvalidStateError, NotFoundError
from buildledger.common.logging import get_logger
from buildledger.common.money import ZERO
from buildledger.common.pagination import PaginationParams, paginate
from buildledger.core.audit.recorder import AuditRecorder, audit_recorder
from buildledger.core.budget.ledger import (
    BudgetLedger,
    LedgerSnapshot,
    convert_flat_to_enhanced,
    parse_category,
    phase_headroom,
)
from buildledger.core.budget.schemas import EnhancedBudget, dump_budget
from buildledger.core.policy import EngineConfig
from buildledger.core.reallocations.schemas import (
    ApprovalResult,
    LineBalance,
    ReallocationCreate,
    ReallocationResponse,
)
from buildledger.db import guard
from buildledger.db.models.phase import ProjectPhase
from buildledger.db.models.project import Project
from buildledger.db.models.reallocation import BudgetReallocation
from buildledger.db.models.user import User

logger = get_logger("reallocations.workflow")

ENTITY_TYPE = "budget_reallocation"

VALID_TRANSITIONS = {
    ReallocationStatus.PENDING.value: [
        ReallocationStatus.APPROVED.value,
        ReallocationStatus.REJECTED.value,
    ],
    ReallocationStatus.APPROVED.value: [],
    ReallocationStatus.REJECTED.value: [],
}

ENHANCED_FIELDS = {
    BudgetCategory.DIRECT_CONSTRUCTION: "direct_construction",
    BudgetCategory.PRE_CONSTRUCTION: "pre_construction",
    BudgetCategory.INDIRECT: "indirect",
    BudgetCategory.CONTINGENCY: "contingency",
}


@dataclass
class BudgetLine:
    category: BudgetCategory | None = None
    phase: ProjectPhase | None = None

    @property
    def is_phase(self) -> bool:
        return self.phase is not None

    @property
    def key(self) -> tuple[str, str]:
        if self.phase is not None:
            return ("phase", str(self.phase.id))
        return ("category", self.category.value)

    @property
    def label(self) -> str:
        if self.phase is not None:
            return f"phase '{self.phase.name}'"
        return f"category '{self.category.value}'"


@dataclass
class PlannedMove:
    source: LineBalance
    destination: LineBalance
    budget: EnhancedBudget | None = None
    budget_version: int | None = None
    phase_deltas: dict[uuid.UUID, Decimal] = field(default_factory=dict)


def derive_type(source: BudgetLine, destination: BudgetLine) -> ReallocationType:
    if source.is_phase and destination.is_phase:
        return ReallocationType.PHASE_TO_PHASE
    if not source.is_phase and not destination.is_phase:
        return ReallocationType.CATEGORY_TO_CATEGORY

    category_side = destination if source.is_phase else source
    if category_side.category != BudgetCategory.DIRECT_CONSTRUCTION:
        raise BadRequestError(
            "Phase budgets can only be exchanged with other phases or the direct construction pool"
        )
    if source.is_phase:
        return ReallocationType.PHASE_TO_PROJECT
    return ReallocationType.PROJECT_TO_PHASE


def source_headroom(snapshot: LedgerSnapshot, line: BudgetLine) -> Decimal:
    if line.is_phase:
        return phase_headroom(line.phase)
    return snapshot.headroom(line.category)


def _pool_balance(snapshot: LedgerSnapshot) -> Decimal:
    """Direct construction budget not yet handed to a phase. May go negative."""
    dcc = snapshot.category_budgets[BudgetCategory.DIRECT_CONSTRUCTION]
    return dcc - snapshot.total_phase_budgets


def plan_move(
    snapshot: LedgerSnapshot, source: BudgetLine, destination: BudgetLine, amount: Decimal
) -> PlannedMove:
    """Work out the debit and credit. Raises before anything is written."""
    rtype = derive_type(source, destination)

    if rtype == ReallocationType.CATEGORY_TO_CATEGORY:
        budget = convert_flat_to_enhanced(snapshot.budget, snapshot.ratios)
        src_field = ENHANCED_FIELDS[source.category]
        dst_field = ENHANCED_FIELDS[destination.category]
        src_before = getattr(budget, src_field)
        dst_before = getattr(budget, dst_field)
        if src_before < amount:
            raise BadRequestError(
                f"Insufficient budget in {source.label}: {src_before:,.2f} available, "
                f"{amount:,.2f} requested"
            )
        updated = budget.model_copy(
            update={src_field: src_before - amount, dst_field: dst_before + amount}
        )
        return PlannedMove(
            source=LineBalance(line=source.label, before=src_before, after=src_before - amount),
            destination=LineBalance(
                line=destination.label, before=dst_before, after=dst_before + amount
            ),
            budget=updated,
            budget_version=snapshot.project.budget_version,
        )

    if rtype == ReallocationType.PROJECT_TO_PHASE:
        available = snapshot.headroom(BudgetCategory.DIRECT_CONSTRUCTION)
        if available < amount:
            raise BadRequestError(
                f"Insufficient unallocated direct construction budget: {available:,.2f} "
                f"available, {amount:,.2f} requested"
            )
        pool = _pool_balance(snapshot)
        phase_before = destination.phase.budget_total or ZERO
        return PlannedMove(
            source=LineBalance(line=source.label, before=pool, after=pool - amount),
            destination=LineBalance(
                line=destination.label, before=phase_before, after=phase_before + amount
            ),
            phase_deltas={destination.phase.id: amount},
        )

    src_before = source.phase.budget_total or ZERO
    if src_before < amount:
        raise BadRequestError(
            f"Insufficient budget in {source.label}: {src_before:,.2f} available, "
            f"{amount:,.2f} requested"
        )

    if rtype == ReallocationType.PHASE_TO_PROJECT:
        pool = _pool_balance(snapshot)
        return PlannedMove(
            source=LineBalance(line=source.label, before=src_before, after=src_before - amount),
            destination=LineBalance(line=destination.label, before=pool, after=pool + amount),
            phase_deltas={source.phase.id: -amount},
        )

    dst_before = destination.phase.budget_total or ZERO
    return PlannedMove(
        source=LineBalance(line=source.label, before=src_before, after=src_before - amount),
        destination=LineBalance(
            line=destination.label, before=dst_before, after=dst_before + amount
        ),
        phase_deltas={source.phase.id: -amount, destination.phase.id: amount},
    )


def _balance_diff(move: PlannedMove, side: str) -> dict:
    return {
        "source": {"line": move.source.line, "budgeted": str(getattr(move.source, side))},
        "destination": {
            "line": move.destination.line,
            "budgeted": str(getattr(move.destination, side)),
        },
    }


class ReallocationWorkflow:
    def __init__(
        self,
        config: EngineConfig | None = None,
        ledger: BudgetLedger | None = None,
        audit: AuditRecorder | None = None,
    ):
        self.config = config or EngineConfig.from_settings()
        self.ledger = ledger or BudgetLedger(self.config)
        self.audit = audit or audit_recorder

    # ---------- Reads ----------

    async def get(self, reallocation_id: uuid.UUID, db: AsyncSession) -> BudgetReallocation:
        result = await guard.execute(
            db,
            select(BudgetReallocation).where(
                BudgetReallocation.id == reallocation_id, BudgetReallocation.active()
            ),
        )
        realloc = result.scalar_one_or_none()
        if not realloc:
            raise NotFoundError("Budget reallocation", str(reallocation_id))
        return realloc

    def list_query(
        self,
        project_id: uuid.UUID | None = None,
        phase_id: uuid.UUID | None = None,
        status: str | None = None,
    ) -> Select:
        query = select(BudgetReallocation).where(BudgetReallocation.active())
        if project_id:
            query = query.where(BudgetReallocation.project_id == project_id)
        if phase_id:
            query = query.where(
                or_(
                    BudgetReallocation.from_phase_id == phase_id,
                    BudgetReallocation.to_phase_id == phase_id,
                )
            )
        if status:
            if status not in VALID_TRANSITIONS:
                raise BadRequestError(
                    f"status must be one of: {', '.join(VALID_TRANSITIONS)}"
                )
            query = query.where(BudgetReallocation.status == status)
        return query.order_by(BudgetReallocation.requested_at.desc())

    async def list(
        self,
        db: AsyncSession,
        params: PaginationParams,
        project_id: uuid.UUID | None = None,
        phase_id: uuid.UUID | None = None,
        status: str | None = None,
    ) -> tuple[list[BudgetReallocation], int]:
        query = self.list_query(project_id=project_id, phase_id=phase_id, status=status)
        return await paginate(
            db, query, params, BudgetReallocation,
            sortable={"requested_at", "amount", "status", "resolved_at"},
        )

    # ---------- Create ----------

    async def _resolve_line(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        category: str | None,
        phase_id: uuid.UUID | None,
        side: str,
    ) -> BudgetLine:
        if category and phase_id:
            raise BadRequestError(f"The {side} must be either a category or a phase, not both")
        if phase_id:
            phase = await self.ledger.get_phase(phase_id, db, project_id=project_id)
            return BudgetLine(phase=phase)
        if category:
            return BudgetLine(category=parse_category(category))
        raise BadRequestError(f"A {side} category or phase is required")

    async def create(
        self, payload: ReallocationCreate, actor: User, db: AsyncSession
    ) -> BudgetReallocation:
        reason = (payload.reason or "").strip()
        if not reason:
            raise BadRequestError("A reason for the reallocation is required")
        amount = payload.amount
        if not amount.is_finite() or amount <= ZERO:
            raise BadRequestError("Amount must be greater than zero")

        snapshot = await self.ledger.load_snapshot(payload.project_id, db)
        source = await self._resolve_line(
            db, payload.project_id, payload.from_category, payload.from_phase_id, "source"
        )
        destination = await self._resolve_line(
            db, payload.project_id, payload.to_category, payload.to_phase_id, "destination"
        )
        if source.key == destination.key:
            raise BadRequestError("Source and destination must be different budget lines")
        rtype = derive_type(source, destination)

        warnings: list[str] = []
        available = source_headroom(snapshot, source)
        if available < amount:
            warnings.append(
                f"Insufficient headroom in {source.label}: {available:,.2f} available, "
                f"{amount:,.2f} requested"
            )

        realloc = BudgetReallocation(
            project_id=payload.project_id,
            reallocation_type=rtype.value,
            from_category=source.category.value if source.category else None,
            from_phase_id=source.phase.id if source.phase else None,
            to_category=destination.category.value if destination.category else None,
            to_phase_id=destination.phase.id if destination.phase else None,
            amount=amount,
            reason=reason,
            status=ReallocationStatus.PENDING.value,
            warnings=warnings,
            requested_by_id=actor.id,
        )
        db.add(realloc)
        await guard.flush(db)

        await self.audit.record(
            db,
            actor_id=actor.id,
            action=AuditAction.CREATED,
            entity_type=ENTITY_TYPE,
            entity_id=realloc.id,
            project_id=realloc.project_id,
            before=None,
            after={
                "status": realloc.status,
                "type": rtype.value,
                "amount": str(amount),
                "source": source.label,
                "destination": destination.label,
            },
        )
        await guard.flush(db)
        await db.refresh(realloc)

        logger.info(
            "Reallocation %s created: %s %s -> %s (%d warning(s))",
            realloc.id, amount, source.label, destination.label, len(warnings),
        )
        return realloc

    # ---------- Resolve ----------

    def _ensure_pending(self, realloc: BudgetReallocation, new_status: str) -> None:
        if new_status not in VALID_TRANSITIONS.get(realloc.status, []):
            raise InvalidStateError(
                f"Reallocation has already been {realloc.status}", current_status=realloc.status
            )

    async def _transition(
        self, db: AsyncSession, realloc: BudgetReallocation, new_status: str, **values
    ) -> None:
        result = await guard.execute(
            db,
            update(BudgetReallocation)
            .where(
                BudgetReallocation.id == realloc.id,
                BudgetReallocation.status == ReallocationStatus.PENDING.value,
                BudgetReallocation.active(),
            )
            .values(status=new_status, **values)
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:
            current = await guard.execute(
                db, select(BudgetReallocation.status).where(BudgetReallocation.id == realloc.id)
            )
            current_status = current.scalar_one_or_none()
            logger.info(
                "Reallocation %s lost the race to %s: already %s",
                realloc.id, new_status, current_status,
            )
            raise InvalidStateError(
                f"Reallocation has already been {current_status}", current_status=current_status
            )

    async def _commit(self, db: AsyncSession, realloc: BudgetReallocation) -> None:
        # The status change is already issued, so finish the transaction even if
        # the caller goes away
        await asyncio.shield(db.commit())
        await db.refresh(realloc)

    async def _apply_move(
        self, db: AsyncSession, snapshot: LedgerSnapshot, move: PlannedMove
    ) -> None:
        project = snapshot.project
        if move.budget is not None:
            result = await guard.execute(
                db,
                update(Project)
                .where(Project.id == project.id, Project.budget_version == move.budget_version)
                .values(budget=dump_budget(move.budget), budget_version=Project.budget_version + 1)
                .execution_options(synchronize_session=False),
            )
            if result.rowcount != 1:
                logger.warning(
                    "Project %s budget changed after version %s was read", project.id,
                    move.budget_version,
                )
                raise InvalidStateError(
                    "Project budget changed while the reallocation was being approved, "
                    "please retry",
                    current_status=ReallocationStatus.PENDING.value,
                )
            await db.refresh(project)
        for phase_id, delta in move.phase_deltas.items():
            await guard.execute(
                db,
                update(ProjectPhase)
                .where(ProjectPhase.id == phase_id)
                .values(budget_total=ProjectPhase.budget_total + delta)
                .execution_options(synchronize_session=False),
            )
        await guard.flush(db)

    async def approve(
        self,
        reallocation_id: uuid.UUID,
        actor: User,
        db: AsyncSession,
        notes: str | None = None,
    ) -> ApprovalResult:
        realloc = await self.get(reallocation_id, db)
        self._ensure_pending(realloc, ReallocationStatus.APPROVED.value)

        # Approvals on the same project queue on the project row from here on
        snapshot = await self.ledger.load_snapshot(realloc.project_id, db, for_update=True)
        source = await self._resolve_line(
            db, realloc.project_id, realloc.from_category, realloc.from_phase_id, "source"
        )
        destination = await self._resolve_line(
            db, realloc.project_id, realloc.to_category, realloc.to_phase_id, "destination"
        )
        move = plan_move(snapshot, source, destination, realloc.amount)

        await self._transition(
            db,
            realloc,
            ReallocationStatus.APPROVED.value,
            approved_by_id=actor.id,
            approval_notes=(notes or "").strip() or None,
            resolved_at=datetime.now(timezone.utc),
        )
        try:
            await self._apply_move(db, snapshot, move)
        except InvalidStateError:
            await db.rollback()
            raise
        await self.audit.record(
            db,
            actor_id=actor.id,
            action=AuditAction.APPROVED,
            entity_type=ENTITY_TYPE,
            entity_id=realloc.id,
            project_id=realloc.project_id,
            before={"status": ReallocationStatus.PENDING.value, **_balance_diff(move, "before")},
            after={
                "status": ReallocationStatus.APPROVED.value,
                "amount": str(realloc.amount),
                **_balance_diff(move, "after"),
            },
        )
        await self._commit(db, realloc)

        logger.info(
            "Reallocation %s approved by %s: moved %s from %s to %s",
            realloc.id, actor.id, realloc.amount, move.source.line, move.destination.line,
        )
        return ApprovalResult(
            reallocation=ReallocationResponse.from_orm_instance(realloc),
            source=move.source,
            destination=move.destination,
        )

    async def reject(
        self, reallocation_id: uuid.UUID, actor: User, db: AsyncSession, reason: str | None
    ) -> BudgetReallocation:
        rejection_reason = (reason or "").strip()
        if not rejection_reason:
            raise BadRequestError("A rejection reason is required")

        realloc = await self.get(reallocation_id, db)
        self._ensure_pending(realloc, ReallocationStatus.REJECTED.value)

        await self._transition(
            db,
            realloc,
            ReallocationStatus.REJECTED.value,
            rejected_by_id=actor.id,
            rejection_reason=rejection_reason,
            resolved_at=datetime.now(timezone.utc),
        )
        await self.audit.record(
            db,
            actor_id=actor.id,
            action=AuditAction.REJECTED,
            entity_type=ENTITY_TYPE,
            entity_id=realloc.id,
            project_id=realloc.project_id,
            before={"status": ReallocationStatus.PENDING.value},
            after={"status": ReallocationStatus.REJECTED.value, "reason": rejection_reason},
        )
        await self._commit(db, realloc)

        logger.info("Reallocation %s rejected by %s", realloc.id, actor.id)
        return realloc

    async def soft_delete(
        self, reallocation_id: uuid.UUID, actor: User, db: AsyncSession
    ) -> BudgetReallocation:
        realloc = await self.get(reallocation_id, db)
        realloc.soft_delete()
        await self.audit.record(
            db,
            actor_id=actor.id,
            action=AuditAction.DELETED,
            entity_type=ENTITY_TYPE,
            entity_id=realloc.id,
            project_id=realloc.project_id,
            before={"status": realloc.status, "is_deleted": False},
            after={"status": realloc.status, "is_deleted": True},
        )
        await guard.flush(db)
        logger.info("Reallocation %s deleted by %s", realloc.id, actor.id)
        return realloc

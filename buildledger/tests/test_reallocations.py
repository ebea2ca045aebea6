import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update

from buildledger.common.enums import AuditAction, BudgetCategory, ReallocationType
from buildledger.common.exceptions import BadRequestError, InvalidStateError, NotFoundError
from buildledger.common.pagination import PaginationParams
from buildledger.core.budget.schemas import EnhancedBudget, parse_budget
from buildledger.core.policy import EngineConfig
from buildledger.core.reallocations.schemas import ReallocationCreate
from buildledger.core.reallocations.workflow import BudgetLine, ReallocationWorkflow, plan_move
from buildledger.db.models.project import Project
from buildledger.tests.factories import add_spend, flat, make_phase, make_project


def _payload(project, amount="10000", reason="Rebalance after tender", **lines) -> ReallocationCreate:
    return ReallocationCreate(project_id=project.id, amount=Decimal(amount), reason=reason, **lines)


def _params(page_size: int = 20) -> PaginationParams:
    return PaginationParams(page=1, page_size=page_size, sort_by=None, sort_order="desc")


@pytest.fixture
def workflow(audit):
    return ReallocationWorkflow(EngineConfig(), audit=audit)


@pytest.fixture
async def project_setup(db_session, owner_user):
    project = await make_project(db_session, owner_user)
    phase_a = await make_phase(
        db_session, project, "Foundation", budget_total=300000, spent=100000, committed=50000
    )
    phase_b = await make_phase(db_session, project, "Walls", budget_total=200000, order_index=1)
    return project, phase_a, phase_b


# ---------- Create ----------


@pytest.mark.asyncio
async def test_create_category_reallocation(db_session, owner_user, workflow, audit, project_setup):
    project, _, _ = project_setup

    realloc = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )
    assert realloc.status == "pending"
    assert realloc.reallocation_type == ReallocationType.CATEGORY_TO_CATEGORY.value
    assert realloc.warnings == []
    assert realloc.requested_by_id == owner_user.id
    assert audit.actions() == [AuditAction.CREATED]


@pytest.mark.asyncio
async def test_create_records_headroom_warning(db_session, owner_user, workflow, project_setup):
    project, _, _ = project_setup
    await add_spend(db_session, project, "preconstruction", 45000, date(2026, 4, 1))

    realloc = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )
    assert realloc.status == "pending"
    assert len(realloc.warnings) == 1
    assert "5,000.00 available" in realloc.warnings[0]


@pytest.mark.asyncio
async def test_create_phase_headroom_counts_commitments(
    db_session, owner_user, workflow, project_setup
):
    project, phase_a, phase_b = project_setup

    realloc = await workflow.create(
        _payload(project, amount="160000", from_phase_id=phase_a.id, to_phase_id=phase_b.id),
        owner_user,
        db_session,
    )
    assert realloc.reallocation_type == ReallocationType.PHASE_TO_PHASE.value
    assert "150,000.00 available" in realloc.warnings[0]


@pytest.mark.asyncio
async def test_create_derives_pool_types(db_session, owner_user, workflow, project_setup):
    project, phase_a, _ = project_setup

    to_phase = await workflow.create(
        _payload(project, from_category="dcc", to_phase_id=phase_a.id), owner_user, db_session
    )
    from_phase = await workflow.create(
        _payload(project, from_phase_id=phase_a.id, to_category="dcc"), owner_user, db_session
    )
    assert to_phase.reallocation_type == ReallocationType.PROJECT_TO_PHASE.value
    assert from_phase.reallocation_type == ReallocationType.PHASE_TO_PROJECT.value


@pytest.mark.parametrize(
    "amount, reason, lines",
    [
        ("0", "Valid reason", {"from_category": "preconstruction", "to_category": "indirect"}),
        ("-5", "Valid reason", {"from_category": "preconstruction", "to_category": "indirect"}),
        ("100", "   ", {"from_category": "preconstruction", "to_category": "indirect"}),
        ("100", "Valid reason", {"from_category": "indirect", "to_category": "indirect"}),
        ("100", "Valid reason", {"from_category": "marketing", "to_category": "indirect"}),
        ("100", "Valid reason", {"to_category": "indirect"}),
    ],
)
@pytest.mark.asyncio
async def test_create_rejects_invalid_requests(
    db_session, owner_user, workflow, audit, project_setup, amount, reason, lines
):
    project, _, _ = project_setup
    with pytest.raises(BadRequestError):
        await workflow.create(_payload(project, amount=amount, reason=reason, **lines), owner_user, db_session)
    assert audit.entries == []


@pytest.mark.asyncio
async def test_phase_lines_only_exchange_with_pool(db_session, owner_user, workflow, project_setup):
    project, phase_a, _ = project_setup
    with pytest.raises(BadRequestError):
        await workflow.create(
            _payload(project, from_phase_id=phase_a.id, to_category="indirect"),
            owner_user,
            db_session,
        )
    with pytest.raises(BadRequestError):
        await workflow.create(
            _payload(project, from_category="dcc", from_phase_id=phase_a.id, to_category="indirect"),
            owner_user,
            db_session,
        )


@pytest.mark.asyncio
async def test_create_rejects_foreign_or_missing_phase(
    db_session, owner_user, workflow, project_setup
):
    project, phase_a, _ = project_setup
    other_project = await make_project(db_session, owner_user, title="Other")
    foreign = await make_phase(db_session, other_project, "Foreign", budget_total=1000)

    with pytest.raises(NotFoundError):
        await workflow.create(
            _payload(project, from_phase_id=phase_a.id, to_phase_id=foreign.id),
            owner_user,
            db_session,
        )
    with pytest.raises(NotFoundError):
        await workflow.create(
            _payload(project, from_phase_id=phase_a.id, to_phase_id=uuid.uuid4()),
            owner_user,
            db_session,
        )
    with pytest.raises(NotFoundError):
        await workflow.create(
            ReallocationCreate(
                project_id=uuid.uuid4(), from_category="dcc", to_category="indirect",
                amount=Decimal("1"), reason="x",
            ),
            owner_user,
            db_session,
        )


# ---------- Approve ----------


@pytest.mark.asyncio
async def test_approve_category_move_conserves_total(
    db_session, owner_user, accountant_user, workflow, audit, project_setup
):
    project, _, _ = project_setup
    realloc = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )

    result = await workflow.approve(realloc.id, accountant_user, db_session, notes="ok")
    assert result.reallocation.status == "approved"
    assert result.reallocation.approved_by_id == accountant_user.id
    assert result.reallocation.approval_notes == "ok"
    assert result.reallocation.resolved_at is not None
    assert result.source.before - result.source.after == Decimal("10000")
    assert result.destination.after - result.destination.before == Decimal("10000")

    budget = parse_budget(project.budget)
    assert budget.pre_construction == Decimal("40000")
    assert budget.indirect == Decimal("60000")
    assert budget.category_sum() == Decimal("1000000")
    assert audit.actions() == [AuditAction.CREATED, AuditAction.APPROVED]
    assert audit.entries[-1]["before"]["status"] == "pending"
    assert audit.entries[-1]["after"]["status"] == "approved"


@pytest.mark.asyncio
async def test_approve_converts_flat_budget(db_session, owner_user, accountant_user, workflow):
    project = await make_project(db_session, owner_user, budget=flat(1000000))
    realloc = await workflow.create(
        _payload(project, amount="20000", from_category="contingency", to_category="dcc"),
        owner_user,
        db_session,
    )

    await workflow.approve(realloc.id, accountant_user, db_session)

    budget = parse_budget(project.budget)
    assert isinstance(budget, EnhancedBudget)
    assert budget.direct_construction == Decimal("870000")
    assert budget.contingency == Decimal("30000")
    assert budget.total == Decimal("1000000")
    assert budget.category_sum() == Decimal("1000000")


@pytest.mark.asyncio
async def test_approve_phase_to_phase(
    db_session, owner_user, accountant_user, workflow, project_setup
):
    project, phase_a, phase_b = project_setup
    realloc = await workflow.create(
        _payload(project, amount="50000", from_phase_id=phase_a.id, to_phase_id=phase_b.id),
        owner_user,
        db_session,
    )

    await workflow.approve(realloc.id, accountant_user, db_session)

    await db_session.refresh(phase_a)
    await db_session.refresh(phase_b)
    assert phase_a.budget_total == Decimal("250000")
    assert phase_b.budget_total == Decimal("250000")


@pytest.mark.asyncio
async def test_approve_pool_to_phase(
    db_session, owner_user, accountant_user, workflow, project_setup
):
    project, _, phase_b = project_setup
    realloc = await workflow.create(
        _payload(project, amount="100000", from_category="dcc", to_phase_id=phase_b.id),
        owner_user,
        db_session,
    )

    result = await workflow.approve(realloc.id, accountant_user, db_session)

    await db_session.refresh(phase_b)
    assert phase_b.budget_total == Decimal("300000")
    assert result.source.before == Decimal("300000")
    assert result.source.after == Decimal("200000")


@pytest.mark.asyncio
async def test_approve_fails_when_source_too_small(
    db_session, owner_user, accountant_user, workflow, audit, project_setup
):
    project, _, _ = project_setup
    realloc = await workflow.create(
        _payload(project, amount="60000", from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )
    assert realloc.warnings

    with pytest.raises(BadRequestError):
        await workflow.approve(realloc.id, accountant_user, db_session)

    await db_session.refresh(realloc)
    assert realloc.status == "pending"
    assert audit.actions() == [AuditAction.CREATED]


@pytest.mark.asyncio
async def test_second_approval_is_invalid_state(
    db_session, owner_user, accountant_user, workflow, project_setup
):
    project, _, _ = project_setup
    realloc = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )
    await workflow.approve(realloc.id, accountant_user, db_session)

    with pytest.raises(InvalidStateError) as exc_info:
        await workflow.approve(realloc.id, accountant_user, db_session)
    assert exc_info.value.current_status == "approved"

    budget = parse_budget(project.budget)
    assert budget.pre_construction == Decimal("40000")


@pytest.mark.asyncio
async def test_racing_approvals_only_one_wins(
    db_session, session_factory, owner_user, accountant_user, workflow, project_setup
):
    project, phase_a, phase_b = project_setup
    realloc = await workflow.create(
        _payload(project, amount="10000", from_phase_id=phase_a.id, to_phase_id=phase_b.id),
        owner_user,
        db_session,
    )
    await db_session.commit()

    async with session_factory() as other:
        # The second session reads the request while it is still pending
        stale = await workflow.get(realloc.id, other)
        assert stale.status == "pending"

        await workflow.approve(realloc.id, accountant_user, db_session)

        with pytest.raises(InvalidStateError) as exc_info:
            await workflow.approve(realloc.id, accountant_user, other)
        assert exc_info.value.current_status == "approved"
        await other.rollback()

    await db_session.refresh(phase_a)
    await db_session.refresh(phase_b)
    assert phase_a.budget_total == Decimal("290000")
    assert phase_b.budget_total == Decimal("210000")


@pytest.mark.asyncio
async def test_concurrent_approvals_on_one_project_keep_both_moves(
    db_session, session_factory, owner_user, accountant_user, workflow, project_setup
):
    project, _, _ = project_setup
    first = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )
    second = await workflow.create(
        _payload(project, amount="5000", from_category="dcc", to_category="contingency"),
        owner_user,
        db_session,
    )
    await db_session.commit()

    async with session_factory() as other:
        # The second session holds a copy of the budget from before the first approval
        stale = await workflow.ledger.load_snapshot(project.id, other)
        assert stale.project.budget_version == 1

        await workflow.approve(first.id, accountant_user, db_session)
        await workflow.approve(second.id, accountant_user, other)

    await db_session.refresh(project)
    budget = parse_budget(project.budget)
    assert budget.pre_construction == Decimal("40000")
    assert budget.indirect == Decimal("60000")
    assert budget.direct_construction == Decimal("795000")
    assert budget.contingency == Decimal("105000")
    assert budget.total == Decimal("1000000")
    assert project.budget_version == 3


@pytest.mark.asyncio
async def test_budget_write_refuses_changed_version(
    db_session, owner_user, accountant_user, workflow, project_setup
):
    project, _, _ = project_setup
    realloc = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )
    snapshot = await workflow.ledger.load_snapshot(project.id, db_session)
    move = plan_move(
        snapshot,
        BudgetLine(category=BudgetCategory.PRE_CONSTRUCTION),
        BudgetLine(category=BudgetCategory.INDIRECT),
        realloc.amount,
    )
    # Another writer saves the budget between planning and writing
    await db_session.execute(
        update(Project)
        .where(Project.id == project.id)
        .values(budget_version=Project.budget_version + 1)
    )

    with pytest.raises(InvalidStateError) as exc_info:
        await workflow._apply_move(db_session, snapshot, move)
    assert exc_info.value.current_status == "pending"


@pytest.mark.asyncio
async def test_reject_beats_stale_approval(
    db_session, session_factory, owner_user, accountant_user, workflow, audit, project_setup
):
    project, _, _ = project_setup
    realloc = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )
    await db_session.commit()

    async with session_factory() as other:
        stale = await workflow.get(realloc.id, other)
        assert stale.status == "pending"

        await workflow.reject(realloc.id, accountant_user, db_session, "Out of scope")

        with pytest.raises(InvalidStateError) as exc_info:
            await workflow.approve(realloc.id, accountant_user, other)
        assert exc_info.value.current_status == "rejected"
        await other.rollback()

    await db_session.refresh(project)
    budget = parse_budget(project.budget)
    assert budget.pre_construction == Decimal("50000")
    assert budget.indirect == Decimal("50000")
    assert project.budget_version == 1
    assert audit.actions() == [AuditAction.CREATED, AuditAction.REJECTED]


@pytest.mark.asyncio
async def test_approval_beats_stale_reject(
    db_session, session_factory, owner_user, accountant_user, workflow, audit, project_setup
):
    project, _, _ = project_setup
    realloc = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )
    await db_session.commit()

    async with session_factory() as other:
        stale = await workflow.get(realloc.id, other)
        assert stale.status == "pending"

        await workflow.approve(realloc.id, accountant_user, db_session)

        with pytest.raises(InvalidStateError) as exc_info:
            await workflow.reject(realloc.id, accountant_user, other, "Too late")
        assert exc_info.value.current_status == "approved"
        await other.rollback()

    await db_session.refresh(realloc)
    assert realloc.status == "approved"
    assert realloc.rejection_reason is None
    budget = parse_budget(project.budget)
    assert budget.pre_construction == Decimal("40000")
    assert budget.indirect == Decimal("60000")
    assert audit.actions() == [AuditAction.CREATED, AuditAction.APPROVED]


# ---------- Reject / delete / list ----------


@pytest.mark.asyncio
async def test_reject_requires_reason(
    db_session, owner_user, accountant_user, workflow, audit, project_setup
):
    project, _, _ = project_setup
    realloc = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )

    for reason in ("", "   ", None):
        with pytest.raises(BadRequestError):
            await workflow.reject(realloc.id, accountant_user, db_session, reason)
    assert realloc.status == "pending"
    assert audit.actions() == [AuditAction.CREATED]


@pytest.mark.asyncio
async def test_reject_then_approve(
    db_session, owner_user, accountant_user, workflow, audit, project_setup
):
    project, _, _ = project_setup
    realloc = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )

    rejected = await workflow.reject(realloc.id, accountant_user, db_session, "  Not needed  ")
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Not needed"
    assert rejected.rejected_by_id == accountant_user.id

    with pytest.raises(InvalidStateError) as exc_info:
        await workflow.approve(realloc.id, accountant_user, db_session)
    assert exc_info.value.current_status == "rejected"

    budget = parse_budget(project.budget)
    assert budget.pre_construction == Decimal("50000")
    assert audit.actions() == [AuditAction.CREATED, AuditAction.REJECTED]


@pytest.mark.asyncio
async def test_soft_delete(db_session, owner_user, workflow, audit, project_setup):
    project, _, _ = project_setup
    realloc = await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )

    await workflow.soft_delete(realloc.id, owner_user, db_session)

    with pytest.raises(NotFoundError):
        await workflow.get(realloc.id, db_session)
    assert audit.actions()[-1] == AuditAction.DELETED


@pytest.mark.asyncio
async def test_list_filters(db_session, owner_user, accountant_user, workflow, project_setup):
    project, phase_a, phase_b = project_setup
    first = await workflow.create(
        _payload(project, from_phase_id=phase_a.id, to_phase_id=phase_b.id), owner_user, db_session
    )
    await workflow.create(
        _payload(project, from_category="preconstruction", to_category="indirect"),
        owner_user,
        db_session,
    )
    await workflow.approve(first.id, accountant_user, db_session)

    items, total = await workflow.list(db_session, _params(), project_id=project.id)
    assert total == 2

    items, total = await workflow.list(db_session, _params(), phase_id=phase_b.id)
    assert total == 1
    assert items[0].id == first.id

    items, total = await workflow.list(db_session, _params(), status="pending")
    assert total == 1
    assert items[0].id != first.id

    with pytest.raises(BadRequestError):
        await workflow.list(db_session, _params(), status="bogus")

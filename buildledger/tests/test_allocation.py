import uuid
from decimal import Decimal

import pytest

from buildledger.common.enums import AuditAction
from buildledger.common.exceptions import BadRequestError, NotFoundError
from buildledger.core.budget.allocation import PhaseAllocation
from buildledger.tests.factories import make_phase, make_project


@pytest.mark.asyncio
async def test_allocation_within_direct_construction(db_session, owner_user, engine_config, audit):
    project = await make_project(db_session, owner_user)
    phase = await make_phase(db_session, project)

    result = await PhaseAllocation(engine_config, audit=audit).allocate(
        phase.id, Decimal("300000"), owner_user, db_session,
        breakdown={"materials": Decimal("200000"), "labour": Decimal("100000")},
    )
    assert result.warnings == []
    assert result.over_allocated_by is None
    assert result.phase.budgeted == Decimal("300000")
    assert result.phase.allocated == Decimal("300000")
    assert result.direct_construction_budget == Decimal("800000")
    assert phase.budget_breakdown == {"materials": "200000", "labour": "100000"}


@pytest.mark.asyncio
async def test_over_allocation_is_reported_not_blocked(db_session, owner_user, engine_config, audit):
    project = await make_project(db_session, owner_user)
    await make_phase(db_session, project, "Foundation", budget_total=500000)
    walls = await make_phase(db_session, project, "Walls", order_index=1)

    result = await PhaseAllocation(engine_config, audit=audit).allocate(
        walls.id, Decimal("400000"), owner_user, db_session
    )
    assert walls.budget_total == Decimal("400000")
    assert result.total_phase_budgets == Decimal("900000")
    assert result.over_allocated_by == Decimal("100000")
    assert len(result.warnings) == 1
    assert "100,000.00" in result.warnings[0]


@pytest.mark.asyncio
async def test_breakdown_above_phase_total_warns(db_session, owner_user, engine_config, audit):
    project = await make_project(db_session, owner_user)
    phase = await make_phase(db_session, project)

    result = await PhaseAllocation(engine_config, audit=audit).allocate(
        phase.id, Decimal("100000"), owner_user, db_session,
        breakdown={"materials": Decimal("80000"), "labour": Decimal("40000")},
    )
    assert result.over_allocated_by is None
    assert result.warnings == [
        "Breakdown totals 120,000.00, exceeding the phase budget of 100,000.00"
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "total, breakdown",
    [
        ("-1", None),
        ("NaN", None),
        ("1000", {"marketing": Decimal("10")}),
        ("1000", {"materials": Decimal("-10")}),
    ],
)
async def test_allocation_rejects_bad_input(
    db_session, owner_user, engine_config, audit, total, breakdown
):
    project = await make_project(db_session, owner_user)
    phase = await make_phase(db_session, project, budget_total=5000)

    with pytest.raises(BadRequestError):
        await PhaseAllocation(engine_config, audit=audit).allocate(
            phase.id, Decimal(total), owner_user, db_session, breakdown=breakdown
        )
    assert phase.budget_total == Decimal("5000")
    assert audit.entries == []


@pytest.mark.asyncio
async def test_allocation_missing_phase(db_session, owner_user, engine_config, audit):
    with pytest.raises(NotFoundError):
        await PhaseAllocation(engine_config, audit=audit).allocate(
            uuid.uuid4(), Decimal("1000"), owner_user, db_session
        )


@pytest.mark.asyncio
async def test_allocation_is_audited(db_session, owner_user, engine_config, audit):
    project = await make_project(db_session, owner_user)
    phase = await make_phase(db_session, project, budget_total=500000)

    await PhaseAllocation(engine_config, audit=audit).allocate(
        phase.id, Decimal("450000"), owner_user, db_session
    )
    assert audit.actions() == [AuditAction.BUDGET_ALLOCATED]
    entry = audit.entries[0]
    assert entry["entity_type"] == "project_phase"
    assert entry["entity_id"] == phase.id
    assert entry["project_id"] == project.id
    assert entry["actor_id"] == owner_user.id
    assert entry["before"]["budget_total"] == "500000"
    assert entry["after"]["budget_total"] == "450000"

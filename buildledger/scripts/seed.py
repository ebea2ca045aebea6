"""
Seed script for BuildLedger.

Populates the database with one demo project: users for each role, an
enhanced budget, four phases with spend, weekly spend history, contingency
draws and a pending reallocation request.

Usage:
    python -m buildledger.scripts.seed
"""

import asyncio
import uuid
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select

from buildledger.common.enums import (
    BudgetCategory,
    RecordStatus,
    ReallocationStatus,
    ReallocationType,
    UserRole,
)
from buildledger.core.budget.schemas import EnhancedBudget, dump_budget
from buildledger.db.models import (
    BudgetReallocation,
    ContingencyDraw,
    Project,
    ProjectPhase,
    SpendRecord,
    User,
)
from buildledger.db.session import async_session_factory

ADMIN_EMAIL = "admin@buildledger.io"


async def main() -> None:
    async with async_session_factory() as session:
        # Guard: skip if already seeded
        result = await session.execute(select(User).where(User.email == ADMIN_EMAIL))
        if result.scalar_one_or_none() is not None:
            print("Database already seeded -- skipping.")
            return

        # ==================================================================
        # USERS
        # ==================================================================
        owner = User(
            id=uuid.uuid4(), email="wanjiru@example.com", full_name="Wanjiru Kamau",
            role=UserRole.OWNER.value,
        )
        manager = User(
            id=uuid.uuid4(), email="otieno@example.com", full_name="Brian Otieno",
            role=UserRole.PROJECT_MANAGER.value,
        )
        accountant = User(
            id=uuid.uuid4(), email="achieng@example.com", full_name="Grace Achieng",
            role=UserRole.ACCOUNTANT.value,
        )
        viewer = User(
            id=uuid.uuid4(), email="mutua@example.com", full_name="Peter Mutua",
            role=UserRole.VIEWER.value,
        )
        admin = User(
            id=uuid.uuid4(), email=ADMIN_EMAIL, full_name="Admin User",
            role=UserRole.ADMIN.value,
        )
        session.add_all([owner, manager, accountant, viewer, admin])

        # ==================================================================
        # PROJECT
        # ==================================================================
        today = date.today()
        start = today - timedelta(weeks=10)
        project = Project(
            id=uuid.uuid4(),
            owner_id=owner.id,
            title="Kilimani 4-Bedroom Maisonette",
            currency="KES",
            start_date=start,
            end_date=start + timedelta(weeks=40),
            budget=dump_budget(
                EnhancedBudget(
                    total=Decimal("12000000"),
                    direct_construction=Decimal("10000000"),
                    pre_construction=Decimal("600000"),
                    indirect=Decimal("600000"),
                    contingency=Decimal("800000"),
                )
            ),
        )
        session.add(project)

        # ==================================================================
        # PHASES
        # ==================================================================
        phase_rows = [
            ("Site Preparation", "800000", "760000", {"labour": "300000", "equipment": "500000"},
             {"labour": "280000", "equipment": "480000"}),
            ("Foundation", "2200000", "1650000", {"materials": "1400000", "labour": "800000"},
             {"materials": "1100000", "labour": "550000"}),
            ("Superstructure", "4500000", "900000", {"materials": "3000000", "labour": "1500000"},
             {"materials": "700000", "labour": "200000"}),
            ("Finishes", "2000000", "0", {"materials": "1200000", "subcontractors": "800000"}, {}),
        ]
        phases = []
        for index, (name, budget, spent, breakdown, actual) in enumerate(phase_rows):
            phase = ProjectPhase(
                id=uuid.uuid4(),
                project_id=project.id,
                name=name,
                order_index=index,
                budget_total=Decimal(budget),
                budget_breakdown=breakdown,
                actual_spending=actual,
                actual_spending_total=Decimal(spent),
                committed_total=Decimal("0"),
                prerequisite_phase_ids=[str(phases[-1].id)] if phases else [],
            )
            phases.append(phase)
        session.add_all(phases)

        # ==================================================================
        # SPEND HISTORY (weekly)
        # ==================================================================
        # Per phase these add up to the phase actual_spending_total above
        weekly_dcc = [
            (0, "180000"), (0, "190000"), (0, "195000"), (0, "195000"),
            (1, "400000"), (1, "410000"), (1, "420000"), (1, "420000"),
            (2, "440000"), (2, "460000"),
        ]
        records = []
        for week, (phase_index, amount) in enumerate(weekly_dcc):
            records.append(
                SpendRecord(
                    project_id=project.id,
                    phase_id=phases[phase_index].id,
                    category=BudgetCategory.DIRECT_CONSTRUCTION.value,
                    amount=Decimal(amount),
                    status=RecordStatus.APPROVED.value,
                    spent_on=start + timedelta(weeks=week, days=2),
                    description=f"Week {week + 1} site costs",
                )
            )
        for week, amount in [(0, "250000"), (2, "150000"), (5, "80000")]:
            records.append(
                SpendRecord(
                    project_id=project.id,
                    category=BudgetCategory.PRE_CONSTRUCTION.value,
                    amount=Decimal(amount),
                    status=RecordStatus.APPROVED.value,
                    spent_on=start + timedelta(weeks=week),
                    description="Design and permits",
                )
            )
        for week in range(10):
            records.append(
                SpendRecord(
                    project_id=project.id,
                    category=BudgetCategory.INDIRECT.value,
                    amount=Decimal("25000"),
                    status=RecordStatus.APPROVED.value,
                    spent_on=start + timedelta(weeks=week, days=4),
                    description="Site office and insurance",
                )
            )
        session.add_all(records)

        # ==================================================================
        # CONTINGENCY
        # ==================================================================
        session.add_all([
            ContingencyDraw(
                project_id=project.id, amount=Decimal("350000"),
                status=RecordStatus.APPROVED.value, drawn_on=start + timedelta(weeks=1, days=3),
                reason="Unforeseen rock excavation",
            ),
            ContingencyDraw(
                project_id=project.id, amount=Decimal("300000"),
                status=RecordStatus.APPROVED.value, drawn_on=start + timedelta(weeks=5, days=1),
                reason="Foundation redesign",
            ),
            ContingencyDraw(
                project_id=project.id, amount=Decimal("120000"),
                status=RecordStatus.PENDING.value, drawn_on=today, reason="Steel price escalation",
            ),
        ])

        # ==================================================================
        # REALLOCATIONS
        # ==================================================================
        session.add(
            BudgetReallocation(
                project_id=project.id,
                reallocation_type=ReallocationType.PHASE_TO_PHASE.value,
                from_phase_id=phases[3].id,
                to_phase_id=phases[1].id,
                amount=Decimal("150000"),
                reason="Foundation needs additional waterproofing",
                status=ReallocationStatus.PENDING.value,
                warnings=[],
                requested_by_id=manager.id,
            )
        )

        await session.commit()

        print("Seeded demo project:")
        print(f"  project  {project.id}  {project.title}")
        for user in (owner, manager, accountant, viewer, admin):
            print(f"  {user.role:<16} X-User-Id: {user.id}")


if __name__ == "__main__":
    asyncio.run(main())

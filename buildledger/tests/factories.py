"""Record builders shared by the test modules."""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import AuditAction, RecordStatus, UserRole
from buildledger.db.models import ContingencyDraw, Project, ProjectPhase, SpendRecord, User


class FakeAuditRecorder:
    def __init__(self):
        self.entries: list[dict] = []

    async def record(self, db, *, actor_id, action, entity_type, entity_id, project_id, before, after):
        self.entries.append({
            "actor_id": actor_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "project_id": project_id,
            "before": before,
            "after": after,
        })

    def actions(self) -> list[AuditAction]:
        return [e["action"] for e in self.entries]


async def make_user(
    db: AsyncSession, role: UserRole = UserRole.OWNER, full_name: str = "Test User",
    is_active: bool = True,
) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{role.value}_{uuid.uuid4().hex[:8]}@test.com",
        full_name=full_name,
        role=role.value,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


def enhanced(total, dcc, pre, indirect, contingency) -> dict:
    return {
        "kind": "enhanced",
        "total": str(total),
        "direct_construction": str(dcc),
        "pre_construction": str(pre),
        "indirect": str(indirect),
        "contingency": str(contingency),
    }


def flat(total, contingency=None) -> dict:
    payload = {"kind": "flat", "total": str(total)}
    if contingency is not None:
        payload["contingency"] = str(contingency)
    return payload


async def make_project(
    db: AsyncSession,
    owner: User,
    budget: dict | None = None,
    title: str = "Test Project",
    start_date: date | None = None,
    end_date: date | None = None,
) -> Project:
    project = Project(
        id=uuid.uuid4(),
        owner_id=owner.id,
        title=title,
        currency="KES",
        start_date=start_date,
        end_date=end_date,
        budget=budget if budget is not None else enhanced(1000000, 800000, 50000, 50000, 100000),
    )
    db.add(project)
    await db.flush()
    return project


async def make_phase(
    db: AsyncSession,
    project: Project,
    name: str = "Foundation",
    budget_total="0",
    spent="0",
    committed="0",
    breakdown: dict | None = None,
    actual: dict | None = None,
    order_index: int = 0,
) -> ProjectPhase:
    phase = ProjectPhase(
        id=uuid.uuid4(),
        project_id=project.id,
        name=name,
        order_index=order_index,
        budget_total=Decimal(str(budget_total)),
        actual_spending_total=Decimal(str(spent)),
        committed_total=Decimal(str(committed)),
        budget_breakdown=breakdown or {},
        actual_spending=actual or {},
        prerequisite_phase_ids=[],
    )
    db.add(phase)
    await db.flush()
    return phase


async def add_spend(
    db: AsyncSession,
    project: Project,
    category: str,
    amount,
    spent_on: date,
    status: RecordStatus = RecordStatus.APPROVED,
) -> SpendRecord:
    record = SpendRecord(
        project_id=project.id,
        category=category,
        amount=Decimal(str(amount)),
        status=status.value,
        spent_on=spent_on,
    )
    db.add(record)
    await db.flush()
    return record


async def add_draw(
    db: AsyncSession,
    project: Project,
    amount,
    status: RecordStatus = RecordStatus.APPROVED,
    drawn_on: date | None = None,
) -> ContingencyDraw:
    draw = ContingencyDraw(
        project_id=project.id,
        amount=Decimal(str(amount)),
        status=status.value,
        drawn_on=drawn_on or date(2026, 3, 3),
        reason="Test draw",
    )
    db.add(draw)
    await db.flush()
    return draw

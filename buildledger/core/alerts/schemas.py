from __future__ import annotations

import uuid

from pydantic import BaseModel

from buildledger.common.enums import AlertLevel
from buildledger.common.money import Money, Percent


class Alert(BaseModel):
    category: str
    # Kept as a plain string so unknown severities from other sources still sort
    severity: str
    level: AlertLevel
    utilization_percentage: Percent
    budgeted: Money
    actual: Money
    remaining: Money
    project_id: uuid.UUID
    project_name: str | None = None
    phase_id: uuid.UUID | None = None
    phase_name: str | None = None
    message: str


class AlertReport(BaseModel):
    project_id: uuid.UUID
    phase_id: uuid.UUID | None = None
    total: int
    counts: dict[str, int]
    alerts: list[Alert]

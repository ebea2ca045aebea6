"""Threshold based budget alerts.

Utilization of every budget line is compared against three thresholds
(critical, high, medium). Lines with spend but no budget raise a ``low``
alert. Output is always ordered most urgent first.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import AlertLevel, AlertSeverity, BudgetCategory, ContingencyStatus
from buildledger.common.exceptions import BadRequestError
from buildledger.common.logging import get_logger
from buildledger.common.money import ZERO, non_negative, percentage
from buildledger.core.alerts.schemas import Alert, AlertReport
from buildledger.core.budget.contingency import ContingencyTracker
from buildledger.core.budget.ledger import BudgetLedger, LedgerSnapshot, phase_figures
from buildledger.core.budget.schemas import ContingencySummary
from buildledger.core.policy import AlertThresholds, EngineConfig
from buildledger.db.models.phase import ProjectPhase
from buildledger.db.models.project import Project

logger = get_logger("alerts.engine")

SEVERITY_RANK = {
    AlertSeverity.CRITICAL.value: 0,
    AlertSeverity.HIGH.value: 1,
    AlertSeverity.MEDIUM.value: 2,
    AlertSeverity.LOW.value: 3,
}

CONTINGENCY_SEVERITY = {
    ContingencyStatus.EXCEEDED: AlertSeverity.CRITICAL,
    ContingencyStatus.CRITICAL: AlertSeverity.HIGH,
    ContingencyStatus.WARNING: AlertSeverity.MEDIUM,
}

PROJECT_CATEGORIES = [
    BudgetCategory.DIRECT_CONSTRUCTION,
    BudgetCategory.PRE_CONSTRUCTION,
    BudgetCategory.INDIRECT,
]


def severity_rank(severity: str) -> int:
    return SEVERITY_RANK.get(severity, len(SEVERITY_RANK))


def sort_alerts(alerts: list[Alert]) -> list[Alert]:
    # sorted() is stable, so equal severities keep evaluation order
    return sorted(alerts, key=lambda a: severity_rank(a.severity))


def classify(
    budgeted: Decimal, spent: Decimal, thresholds: AlertThresholds
) -> AlertSeverity | None:
    if budgeted <= ZERO:
        return AlertSeverity.LOW if spent > ZERO else None

    utilization = percentage(spent, budgeted)
    if utilization >= thresholds.critical:
        return AlertSeverity.CRITICAL
    if utilization >= thresholds.high:
        return AlertSeverity.HIGH
    if utilization >= thresholds.medium:
        return AlertSeverity.MEDIUM
    return None


def _message(label: str, severity: AlertSeverity, budgeted: Decimal, spent: Decimal) -> str:
    if severity == AlertSeverity.LOW and budgeted <= ZERO:
        return f"{label}: unbudgeted spend of {spent:,.2f}"
    utilization = percentage(spent, budgeted)
    if spent > budgeted:
        return f"{label} is over budget by {spent - budgeted:,.2f} ({utilization:.1f}% used)"
    return f"{label} has used {utilization:.1f}% of its budget"


def evaluate_line(
    *,
    category: str,
    level: AlertLevel,
    label: str,
    budgeted: Decimal,
    spent: Decimal,
    thresholds: AlertThresholds,
    project: Project,
    phase: ProjectPhase | None = None,
) -> Alert | None:
    severity = classify(budgeted, spent, thresholds)
    if severity is None:
        return None
    return Alert(
        category=category,
        severity=severity.value,
        level=level,
        utilization_percentage=percentage(spent, budgeted),
        budgeted=budgeted,
        actual=spent,
        remaining=non_negative(budgeted - spent),
        project_id=project.id,
        project_name=project.title,
        phase_id=phase.id if phase else None,
        phase_name=phase.name if phase else None,
        message=_message(label, severity, budgeted, spent),
    )


def phase_alerts(phase: ProjectPhase, project: Project, thresholds: AlertThresholds) -> list[Alert]:
    figures = phase_figures(phase)
    alerts = []

    total = evaluate_line(
        category="phase_total",
        level=AlertLevel.PHASE,
        label=f"Phase '{phase.name}'",
        budgeted=figures.budgeted,
        spent=figures.spent,
        thresholds=thresholds,
        project=project,
        phase=phase,
    )
    if total:
        alerts.append(total)

    for category, line in figures.by_category.items():
        alert = evaluate_line(
            category=category,
            level=AlertLevel.PHASE,
            label=f"Phase '{phase.name}' {category}",
            budgeted=line.budgeted,
            spent=line.spent,
            thresholds=thresholds,
            project=project,
            phase=phase,
        )
        if alert:
            alerts.append(alert)

    return alerts


def contingency_alert(summary: ContingencySummary, project: Project) -> Alert | None:
    severity = CONTINGENCY_SEVERITY.get(summary.status)
    if severity is None:
        return None
    if summary.budgeted <= ZERO:
        message = f"Contingency drawn {summary.drawn:,.2f} with no contingency budget"
    else:
        message = (
            f"Contingency is {summary.status.value}: "
            f"{summary.raw_usage_percentage:.1f}% of the reserve has been drawn"
        )
    return Alert(
        category=BudgetCategory.CONTINGENCY.value,
        severity=severity.value,
        level=AlertLevel.CONTINGENCY,
        utilization_percentage=summary.raw_usage_percentage,
        budgeted=summary.budgeted,
        actual=summary.drawn,
        remaining=summary.remaining,
        project_id=project.id,
        project_name=project.title,
        message=message,
    )


def project_alerts(
    snapshot: LedgerSnapshot, contingency: ContingencySummary, thresholds: AlertThresholds
) -> list[Alert]:
    project = snapshot.project
    alerts: list[Alert] = []

    for phase in snapshot.phases:
        alerts.extend(phase_alerts(phase, project, thresholds))

    for category in PROJECT_CATEGORIES:
        figures = snapshot.category_figures(category)
        alert = evaluate_line(
            category=category.value,
            level=AlertLevel.CATEGORY,
            label=f"Category '{category.value}'",
            budgeted=figures.budgeted,
            spent=figures.spent,
            thresholds=thresholds,
            project=project,
        )
        if alert:
            alerts.append(alert)

    alert = contingency_alert(contingency, project)
    if alert:
        alerts.append(alert)

    return sort_alerts(alerts)


def build_report(project_id: uuid.UUID, alerts: list[Alert], phase_id: uuid.UUID | None = None) -> AlertReport:
    counts = {severity.value: 0 for severity in AlertSeverity}
    for alert in alerts:
        counts[alert.severity] = counts.get(alert.severity, 0) + 1
    return AlertReport(
        project_id=project_id, phase_id=phase_id, total=len(alerts), counts=counts, alerts=alerts
    )


class ThresholdAlertEngine:
    def __init__(
        self,
        config: EngineConfig | None = None,
        ledger: BudgetLedger | None = None,
        contingency: ContingencyTracker | None = None,
    ):
        self.config = config or EngineConfig.from_settings()
        self.ledger = ledger or BudgetLedger(self.config)
        self.contingency = contingency or ContingencyTracker(self.config, self.ledger)

    def thresholds(
        self,
        critical: Decimal | float | None = None,
        high: Decimal | float | None = None,
        medium: Decimal | float | None = None,
    ) -> AlertThresholds:
        try:
            return self.config.alerts.merged(critical=critical, high=high, medium=medium)
        except ValidationError as exc:
            raise BadRequestError(
                "Invalid alert thresholds: must satisfy critical >= high >= medium >= 0"
            ) from exc

    async def for_project(
        self, project_id: uuid.UUID, db: AsyncSession, thresholds: AlertThresholds | None = None
    ) -> AlertReport:
        thresholds = thresholds or self.config.alerts
        snapshot = await self.ledger.load_snapshot(project_id, db)
        contingency = await self.contingency.summarize_snapshot(snapshot, db)
        alerts = project_alerts(snapshot, contingency, thresholds)
        logger.info("Project %s evaluated: %d alert(s)", project_id, len(alerts))
        return build_report(project_id, alerts)

    async def for_phase(
        self, phase_id: uuid.UUID, db: AsyncSession, thresholds: AlertThresholds | None = None
    ) -> AlertReport:
        thresholds = thresholds or self.config.alerts
        phase = await self.ledger.get_phase(phase_id, db)
        project = await self.ledger.get_project(phase.project_id, db)
        alerts = sort_alerts(phase_alerts(phase, project, thresholds))
        return build_report(project.id, alerts, phase_id=phase.id)

import uuid
from datetime import date
from decimal import Decimal

import pytest

from buildledger.common.enums import AlertLevel, AlertSeverity
from buildledger.common.exceptions import BadRequestError
from buildledger.core.alerts.engine import ThresholdAlertEngine, classify, sort_alerts
from buildledger.core.alerts.schemas import Alert
from buildledger.core.policy import AlertThresholds, EngineConfig
from buildledger.tests.factories import add_draw, add_spend, make_phase, make_project


def _alert(severity: str, category: str = "dcc") -> Alert:
    return Alert(
        category=category,
        severity=severity,
        level=AlertLevel.CATEGORY,
        utilization_percentage=Decimal("0"),
        budgeted=Decimal("0"),
        actual=Decimal("0"),
        remaining=Decimal("0"),
        project_id=uuid.uuid4(),
        message="test",
    )


@pytest.mark.parametrize(
    "spent, expected",
    [
        ("49.99", None),
        ("50", AlertSeverity.MEDIUM),
        ("75", AlertSeverity.HIGH),
        ("90", AlertSeverity.CRITICAL),
        ("140", AlertSeverity.CRITICAL),
    ],
)
def test_classify(spent, expected):
    assert classify(Decimal("100"), Decimal(spent), AlertThresholds()) == expected


def test_classify_unbudgeted_spend():
    assert classify(Decimal("0"), Decimal("10"), AlertThresholds()) == AlertSeverity.LOW
    assert classify(Decimal("0"), Decimal("0"), AlertThresholds()) is None


def test_sort_alerts_orders_by_severity_and_keeps_ties_stable():
    alerts = [
        _alert("low", "a"),
        _alert("medium", "b"),
        _alert("mystery", "c"),
        _alert("critical", "d"),
        _alert("medium", "e"),
        _alert("high", "f"),
    ]
    ordered = sort_alerts(alerts)
    assert [a.category for a in ordered] == ["d", "f", "b", "e", "a", "c"]


def test_thresholds_must_be_ordered():
    engine = ThresholdAlertEngine(EngineConfig())
    with pytest.raises(BadRequestError):
        engine.thresholds(critical=50, high=75)
    with pytest.raises(BadRequestError):
        engine.thresholds(medium=-1)
    merged = engine.thresholds(critical=95)
    assert merged.critical == Decimal("95")
    assert merged.high == Decimal("75")


async def _project_with_risk(db_session, owner_user):
    project = await make_project(db_session, owner_user)
    phase_a = await make_phase(
        db_session,
        project,
        "Foundation",
        budget_total=100000,
        spent=95000,
        breakdown={"materials": "50000"},
        actual={"materials": "30000"},
    )
    phase_b = await make_phase(db_session, project, "Extras", spent=1000, order_index=1)
    await add_spend(db_session, project, "preconstruction", 40000, date(2026, 3, 2))
    await add_draw(db_session, project, 85000)
    return project, phase_a, phase_b


@pytest.mark.asyncio
async def test_project_alerts_union_and_order(db_session, owner_user, engine_config):
    project, phase_a, phase_b = await _project_with_risk(db_session, owner_user)

    report = await ThresholdAlertEngine(engine_config).for_project(project.id, db_session)
    summary = [(a.severity, a.level, a.category) for a in report.alerts]
    assert summary == [
        ("critical", AlertLevel.PHASE, "phase_total"),
        ("high", AlertLevel.CATEGORY, "preconstruction"),
        ("medium", AlertLevel.PHASE, "materials"),
        ("medium", AlertLevel.CONTINGENCY, "contingency"),
        ("low", AlertLevel.PHASE, "phase_total"),
    ]
    assert report.alerts[0].phase_id == phase_a.id
    assert report.alerts[0].project_name == "Test Project"
    assert "unbudgeted" in report.alerts[-1].message
    assert report.counts == {"critical": 1, "high": 1, "medium": 2, "low": 1}


@pytest.mark.asyncio
async def test_phase_alerts(db_session, owner_user, engine_config):
    project, phase_a, _ = await _project_with_risk(db_session, owner_user)

    report = await ThresholdAlertEngine(engine_config).for_phase(phase_a.id, db_session)
    assert report.phase_id == phase_a.id
    assert [a.severity for a in report.alerts] == ["critical", "medium"]


@pytest.mark.asyncio
async def test_threshold_overrides(db_session, owner_user, engine_config):
    project, phase_a, _ = await _project_with_risk(db_session, owner_user)

    engine = ThresholdAlertEngine(engine_config)
    thresholds = engine.thresholds(critical=99, high=96, medium=94)
    report = await engine.for_phase(phase_a.id, db_session, thresholds)
    assert [a.severity for a in report.alerts] == ["medium"]

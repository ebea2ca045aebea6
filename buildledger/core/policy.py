"""Tunable rules for the budget engine.

Every computation takes an ``EngineConfig`` instead of reading module level
constants, so callers and tests can override a single threshold without
touching global state. ``EngineConfig.from_settings()`` is the production
default.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from buildledger.common.enums import TrendPeriod
from buildledger.config import Settings, settings


class EstimationRatios(BaseModel):
    pre_construction_ratio: Decimal = Decimal("0.05")
    indirect_ratio: Decimal = Decimal("0.05")
    contingency_ratio: Decimal = Decimal("0.05")


class AlertThresholds(BaseModel):
    critical: Decimal = Decimal("90")
    high: Decimal = Decimal("75")
    medium: Decimal = Decimal("50")

    @model_validator(mode="after")
    def _ordered(self) -> "AlertThresholds":
        if not (self.critical >= self.high >= self.medium >= 0):
            raise ValueError("thresholds must satisfy critical >= high >= medium >= 0")
        return self

    def merged(self, **overrides: Decimal | float | None) -> "AlertThresholds":
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return AlertThresholds(**values)


class ContingencyThresholds(BaseModel):
    warning: Decimal = Decimal("80")
    critical: Decimal = Decimal("90")
    exceeded: Decimal = Decimal("100")


class TrendSettings(BaseModel):
    period: TrendPeriod = TrendPeriod.WEEK
    lookback_periods: int = Field(12, ge=1, le=104)
    material_change_percent: Decimal = Decimal("10")


class ForecastSettings(BaseModel):
    period: TrendPeriod = TrendPeriod.WEEK
    min_periods: int = 3
    high_confidence_periods: int = 6
    high_confidence_max_cv: Decimal = Decimal("0.25")
    default_horizon_days: int = 365


class EngineConfig(BaseModel):
    estimation: EstimationRatios = Field(default_factory=EstimationRatios)
    alerts: AlertThresholds = Field(default_factory=AlertThresholds)
    contingency: ContingencyThresholds = Field(default_factory=ContingencyThresholds)
    trends: TrendSettings = Field(default_factory=TrendSettings)
    forecast: ForecastSettings = Field(default_factory=ForecastSettings)

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "EngineConfig":
        s = source or settings
        period = TrendPeriod(s.TREND_PERIOD)
        return cls(
            estimation=EstimationRatios(
                pre_construction_ratio=Decimal(str(s.ESTIMATED_PRE_CONSTRUCTION_RATIO)),
                indirect_ratio=Decimal(str(s.ESTIMATED_INDIRECT_RATIO)),
                contingency_ratio=Decimal(str(s.ESTIMATED_CONTINGENCY_RATIO)),
            ),
            alerts=AlertThresholds(
                critical=Decimal(str(s.ALERT_CRITICAL_PERCENT)),
                high=Decimal(str(s.ALERT_HIGH_PERCENT)),
                medium=Decimal(str(s.ALERT_MEDIUM_PERCENT)),
            ),
            contingency=ContingencyThresholds(
                warning=Decimal(str(s.CONTINGENCY_WARNING_PERCENT)),
                critical=Decimal(str(s.CONTINGENCY_CRITICAL_PERCENT)),
                exceeded=Decimal(str(s.CONTINGENCY_EXCEEDED_PERCENT)),
            ),
            trends=TrendSettings(
                period=period,
                lookback_periods=s.TREND_LOOKBACK_PERIODS,
                material_change_percent=Decimal(str(s.TREND_MATERIAL_CHANGE_PERCENT)),
            ),
            forecast=ForecastSettings(
                period=period,
                min_periods=s.FORECAST_MIN_PERIODS,
                high_confidence_periods=s.FORECAST_HIGH_CONFIDENCE_PERIODS,
                high_confidence_max_cv=Decimal(str(s.FORECAST_HIGH_CONFIDENCE_MAX_CV)),
                default_horizon_days=s.FORECAST_DEFAULT_HORIZON_DAYS,
            ),
        )

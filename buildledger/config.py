from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://buildledger:buildledger_dev@db:5432/buildledger"
    DB_STATEMENT_TIMEOUT_SECONDS: float = 10.0
    DB_POOL_SIZE: int = 5

    # Security
    ALLOWED_ORIGINS: str = "*"

    # Budget estimation for flat (legacy) budgets
    ESTIMATED_PRE_CONSTRUCTION_RATIO: float = 0.05
    ESTIMATED_INDIRECT_RATIO: float = 0.05
    ESTIMATED_CONTINGENCY_RATIO: float = 0.05

    # Alert thresholds (percent of budget consumed)
    ALERT_CRITICAL_PERCENT: float = 90.0
    ALERT_HIGH_PERCENT: float = 75.0
    ALERT_MEDIUM_PERCENT: float = 50.0

    # Contingency usage tiers
    CONTINGENCY_WARNING_PERCENT: float = 80.0
    CONTINGENCY_CRITICAL_PERCENT: float = 90.0
    CONTINGENCY_EXCEEDED_PERCENT: float = 100.0

    # Trends
    TREND_PERIOD: str = "week"
    TREND_LOOKBACK_PERIODS: int = 12
    TREND_MATERIAL_CHANGE_PERCENT: float = 10.0

    # Forecast
    FORECAST_MIN_PERIODS: int = 3
    FORECAST_HIGH_CONFIDENCE_PERIODS: int = 6
    FORECAST_HIGH_CONFIDENCE_MAX_CV: float = 0.25
    FORECAST_DEFAULT_HORIZON_DAYS: int = 365

    # App
    APP_ENV: str = "development"
    APP_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()

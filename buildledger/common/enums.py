import enum


class UserRole(str, enum.Enum):
    OWNER = "owner"
    PROJECT_MANAGER = "project_manager"
    ACCOUNTANT = "accountant"
    SUPERVISOR = "supervisor"
    VIEWER = "viewer"
    ADMIN = "admin"


class BudgetKind(str, enum.Enum):
    FLAT = "flat"
    ENHANCED = "enhanced"


class BudgetCategory(str, enum.Enum):
    DIRECT_CONSTRUCTION = "dcc"
    PRE_CONSTRUCTION = "preconstruction"
    INDIRECT = "indirect"
    CONTINGENCY = "contingency"


class PhaseSpendCategory(str, enum.Enum):
    MATERIALS = "materials"
    LABOUR = "labour"
    EQUIPMENT = "equipment"
    SUBCONTRACTORS = "subcontractors"


class RecordStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReallocationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReallocationType(str, enum.Enum):
    CATEGORY_TO_CATEGORY = "category_to_category"
    PHASE_TO_PHASE = "phase_to_phase"
    PROJECT_TO_PHASE = "project_to_phase"
    PHASE_TO_PROJECT = "phase_to_project"


class ContingencyStatus(str, enum.Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    EXCEEDED = "exceeded"


class AlertSeverity(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertLevel(str, enum.Enum):
    PROJECT = "project"
    CATEGORY = "category"
    PHASE = "phase"
    CONTINGENCY = "contingency"


class TrendDirection(str, enum.Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class TrendPeriod(str, enum.Enum):
    WEEK = "week"
    MONTH = "month"


class ForecastConfidence(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AuditAction(str, enum.Enum):
    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELETED = "deleted"
    BUDGET_ALLOCATED = "budget_allocated"

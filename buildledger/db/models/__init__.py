from buildledger.db.models.audit import AuditLog
from buildledger.db.models.contingency import ContingencyDraw
from buildledger.db.models.phase import ProjectPhase
from buildledger.db.models.project import Project
from buildledger.db.models.reallocation import BudgetReallocation
from buildledger.db.models.spend import SpendRecord
from buildledger.db.models.user import User

__all__ = [
    "AuditLog",
    "BudgetReallocation",
    "ContingencyDraw",
    "Project",
    "ProjectPhase",
    "SpendRecord",
    "User",
]

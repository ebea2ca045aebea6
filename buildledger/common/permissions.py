"""Role to permission lookup.

The permission table itself is owned by an external service in production;
``PermissionChecker`` is the seam the API layer calls through, and the
static table below mirrors what that service grants by default.
"""

from __future__ import annotations

from typing import Protocol

from buildledger.common.enums import UserRole

CREATE_BUDGET_REALLOCATION = "create_budget_reallocation"
APPROVE_BUDGET_REALLOCATION = "approve_budget_reallocation"
DELETE_BUDGET_REALLOCATION = "delete_budget_reallocation"
MANAGE_PHASE_BUDGET = "manage_phase_budget"
VIEW_FINANCES = "view_finances"

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    UserRole.ADMIN.value: frozenset({
        CREATE_BUDGET_REALLOCATION,
        APPROVE_BUDGET_REALLOCATION,
        DELETE_BUDGET_REALLOCATION,
        MANAGE_PHASE_BUDGET,
        VIEW_FINANCES,
    }),
    UserRole.OWNER.value: frozenset({
        CREATE_BUDGET_REALLOCATION,
        APPROVE_BUDGET_REALLOCATION,
        DELETE_BUDGET_REALLOCATION,
        MANAGE_PHASE_BUDGET,
        VIEW_FINANCES,
    }),
    UserRole.ACCOUNTANT.value: frozenset({
        CREATE_BUDGET_REALLOCATION,
        APPROVE_BUDGET_REALLOCATION,
        MANAGE_PHASE_BUDGET,
        VIEW_FINANCES,
    }),
    UserRole.PROJECT_MANAGER.value: frozenset({
        CREATE_BUDGET_REALLOCATION,
        MANAGE_PHASE_BUDGET,
        VIEW_FINANCES,
    }),
    UserRole.SUPERVISOR.value: frozenset({VIEW_FINANCES}),
    UserRole.VIEWER.value: frozenset({VIEW_FINANCES}),
}


class PermissionChecker(Protocol):
    def has_permission(self, role: str, permission: str) -> bool: ...


class StaticPermissionChecker:
    def __init__(self, table: dict[str, frozenset[str]] | None = None):
        self.table = table if table is not None else ROLE_PERMISSIONS

    def has_permission(self, role: str, permission: str) -> bool:
        return permission in self.table.get(role, frozenset())


permission_checker: PermissionChecker = StaticPermissionChecker()

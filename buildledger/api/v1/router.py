from fastapi import APIRouter

from buildledger.api.v1.alerts import router as alerts_router
from buildledger.api.v1.analytics import router as analytics_router
from buildledger.api.v1.budgets import router as budgets_router
from buildledger.api.v1.phases import router as phases_router
from buildledger.api.v1.reallocations import router as reallocations_router

v1_router = APIRouter()

v1_router.include_router(budgets_router)
v1_router.include_router(phases_router)
v1_router.include_router(alerts_router)
v1_router.include_router(analytics_router)
v1_router.include_router(reallocations_router)

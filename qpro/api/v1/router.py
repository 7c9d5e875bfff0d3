from fastapi import APIRouter

from qpro.api.v1.endpoints import (
    aggregations,
    contributions,
    kpi_progress,
    strategic_plan,
    targets,
)

api_router = APIRouter()

api_router.include_router(
    strategic_plan.router, prefix="/strategic-plan", tags=["strategic-plan"]
)
api_router.include_router(targets.router, prefix="/kpi-targets", tags=["targets"])
api_router.include_router(aggregations.router, prefix="/aggregations", tags=["aggregations"])
api_router.include_router(kpi_progress.router, prefix="/kpi-progress", tags=["kpi-progress"])
api_router.include_router(
    contributions.router, prefix="/kpi-contributions", tags=["kpi-contributions"]
)

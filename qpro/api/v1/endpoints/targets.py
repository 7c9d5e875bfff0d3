from fastapi import APIRouter, Depends, Query

from qpro.api.deps import get_plan_service
from qpro.schemas.strategic.plan import ResolvedTargetResponse
from qpro.services.strategic_plan_service import StrategicPlanService

router = APIRouter()


@router.get("", response_model=ResolvedTargetResponse)
async def resolve_kpi_target(
    kra_id: str = Query(..., alias="kraId"),
    initiative_id: str = Query(..., alias="initiativeId"),
    year: int = Query(..., ge=1900, le=2100),
    plan_service: StrategicPlanService = Depends(get_plan_service),
):
    """
    Meta de un KPI para un año.
    Un KRA/KPI desconocido devuelve target_type y target_value nulos (sin meta).
    """
    target = plan_service.resolve(kra_id, initiative_id, year)
    initiative = plan_service.get_initiative(kra_id, initiative_id)
    return ResolvedTargetResponse(
        kra_id=kra_id,
        initiative_id=initiative.id if initiative else initiative_id,
        year=year,
        target_type=target.type,
        target_value=target.value,
        target_scope=target.scope,
        unit_basis=target.unit_basis,
    )

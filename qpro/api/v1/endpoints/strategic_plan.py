from typing import List

from fastapi import APIRouter, Depends, Path

from qpro.api.deps import get_plan_service
from qpro.core.exceptions import NotFoundException
from qpro.schemas.response import SuccessResponse
from qpro.schemas.strategic.plan import InitiativeSummary, KRASummary
from qpro.services.strategic_plan_service import StrategicPlanService

router = APIRouter()


@router.get("/kras", response_model=SuccessResponse[List[KRASummary]])
async def list_kras(plan_service: StrategicPlanService = Depends(get_plan_service)):
    """Lista los KRAs del plan estratégico en su orden original"""
    kras = plan_service.list_kras()
    return SuccessResponse(
        data=kras,
        message="KRAs obtenidos",
        metadata={"total": len(kras), "period": plan_service.plan.meta.period},
    )


@router.get(
    "/kras/{kra_id}/initiatives",
    response_model=SuccessResponse[List[InitiativeSummary]],
)
async def list_initiatives(
    kra_id: str = Path(..., description="Acepta 'KRA 5', 'KRA5' o 'kra 5'"),
    plan_service: StrategicPlanService = Depends(get_plan_service),
):
    initiatives = plan_service.list_initiatives(kra_id)
    if initiatives is None:
        raise NotFoundException(f"KRA {kra_id} no existe en el plan")
    return SuccessResponse(data=initiatives, message="KPIs obtenidos")

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from qpro.core.exceptions import (
    NotFoundException,
    ProgressConflictError,
    ProgressConflictException,
)
from qpro.schemas.progress import KPIProgressResponse, ManualOverrideRequest, ProgressEntry
from qpro.services.contribution_service import ContributionService, get_contribution_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=KPIProgressResponse, response_model_by_alias=True)
async def get_kpi_progress(
    year: int = Query(..., ge=1900, le=2100),
    kra_id: Optional[str] = Query(None, alias="kraId"),
    quarter: Optional[int] = Query(None, ge=1, le=4),
    service: ContributionService = Depends(get_contribution_service),
):
    """
    Progreso por KPI y trimestre.
    Los KPIs sin registros devuelven trimestres vacíos con la meta del año.
    """
    response = service.progress(year, kra_id=kra_id, quarter=quarter)
    if response is None:
        raise NotFoundException(f"KRA {kra_id} no existe en el plan")
    return response


@router.put("/override", response_model=ProgressEntry, response_model_by_alias=True)
async def override_kpi_progress(
    payload: ManualOverrideRequest,
    service: ContributionService = Depends(get_contribution_service),
):
    """Fija o elimina (value = null) la corrección manual de un periodo"""
    try:
        record = service.override(payload)
    except ProgressConflictError as exc:
        raise ProgressConflictException(str(exc))
    if record is None:
        raise NotFoundException(
            f"KPI {payload.initiative_id} no existe en {payload.kra_id}"
        )
    initiative = service.plan_service.get_initiative(payload.kra_id, payload.initiative_id)
    return service.entry_for(initiative, record)

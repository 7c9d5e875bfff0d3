from fastapi import APIRouter, Depends, Path

from qpro.api.deps import enforce_rate_limit
from qpro.core.exceptions import ProgressConflictError, ProgressConflictException
from qpro.schemas.progress import ContributionCommitRequest, ContributionCommitResponse
from qpro.schemas.response import SuccessResponse
from qpro.services.contribution_service import ContributionService, get_contribution_service

router = APIRouter()


@router.post(
    "",
    response_model=ContributionCommitResponse,
    response_model_by_alias=True,
    dependencies=[Depends(enforce_rate_limit)],
)
async def commit_contributions(
    payload: ContributionCommitRequest,
    service: ContributionService = Depends(get_contribution_service),
):
    """
    Registra los aportes de un análisis aprobado.
    Reaprobar el mismo análisis reemplaza sus aportes; una versión
    desactualizada en expectedVersions responde 409.
    """
    try:
        return service.commit(payload)
    except ProgressConflictError as exc:
        raise ProgressConflictException(str(exc))


@router.delete("/{analysis_id}", response_model=SuccessResponse[dict])
async def remove_contributions(
    analysis_id: str = Path(...),
    service: ContributionService = Depends(get_contribution_service),
):
    """Descuenta del progreso los aportes de un análisis"""
    records = service.remove(analysis_id)
    return SuccessResponse(
        data={"analysis_id": analysis_id, "updated_kpis": len(records)},
        message="Aportes descontados",
    )

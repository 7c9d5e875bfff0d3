from datetime import date

from fastapi import APIRouter, Depends, Response

from qpro.api.deps import enforce_rate_limit, get_plan_service
from qpro.schemas.aggregation import (
    AggregationRequest,
    AggregationResultResponse,
    ExportRequest,
)
from qpro.schemas.analysis import ValidationRequest, ValidationResult
from qpro.services.aggregation_service import aggregate
from qpro.services.export_service import ExportService
from qpro.services.mismatch_rules import KeywordMismatchRules
from qpro.services.progress_service import compute_document_progress
from qpro.services.review_workflow import kpi_selection_errors, kra_assignment_errors
from qpro.services.strategic_plan_service import StrategicPlanService

router = APIRouter()

_mismatch_rules = KeywordMismatchRules()


@router.post("", response_model=AggregationResultResponse)
async def aggregate_activities(
    payload: AggregationRequest,
    plan_service: StrategicPlanService = Depends(get_plan_service),
):
    """
    Agrega los valores reportados contra una meta.
    Si no se envía la meta y sí kra_id/initiative_id, se resuelve desde el plan.
    """
    target_type = payload.target_type
    target_value = payload.target_value
    target_scope = payload.target_scope
    if payload.kra_id and payload.initiative_id and (target_type is None or target_value is None):
        resolved = plan_service.resolve(
            payload.kra_id, payload.initiative_id, payload.year or date.today().year
        )
        target_type = target_type or resolved.type
        target_value = resolved.value if target_value is None else target_value
        target_scope = resolved.scope

    result = aggregate(
        target_type,
        target_value,
        payload.activities,
        target_scope=target_scope,
        unit_multiplier=payload.unit_multiplier,
    )
    return AggregationResultResponse(
        target_type=target_type,
        total_reported=result.total_reported,
        total_target=result.total_target,
        achievement_percent=result.achievement_percent,
        effective_target=result.effective_target,
        dropped_values=result.dropped_values,
    )


@router.post("/validate", response_model=ValidationResult)
async def validate_assignments(
    payload: ValidationRequest,
    plan_service: StrategicPlanService = Depends(get_plan_service),
):
    """Valida asignaciones KRA/KPI como lo hace la revisión antes de aprobar"""
    activities = [a.to_domain() for a in payload.activities]
    kra_errors = kra_assignment_errors(activities)
    kpi_errors = kpi_selection_errors(plan_service.plan, activities, payload.changed_indices)
    mismatches = {
        index: True
        for index in payload.changed_indices
        if 0 <= index < len(activities)
        and _mismatch_rules.is_mismatch(activities[index].name, activities[index].kra_id)
    }
    return ValidationResult(
        valid=not kra_errors and not kpi_errors,
        kra_errors=kra_errors,
        kpi_errors=kpi_errors,
        mismatches=mismatches,
    )


@router.post("/export", dependencies=[Depends(enforce_rate_limit)])
async def export_review(
    payload: ExportRequest,
    plan_service: StrategicPlanService = Depends(get_plan_service),
) -> Response:
    activities = [a.to_domain() for a in payload.activities]
    progress = compute_document_progress(plan_service.plan, activities, payload.year)
    content = ExportService.export_review_to_excel(payload.analysis_id, activities, progress)
    return Response(
        content=content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f"attachment; filename=revision_{payload.analysis_id}.xlsx"
        },
    )

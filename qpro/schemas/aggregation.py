from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from qpro.models.strategic.plan import TargetScope
from qpro.schemas.analysis import ActivityPayload


class ReportedValue(BaseModel):
    """Valor reportado por una actividad (reported y su denominador opcional)"""
    model_config = ConfigDict(extra="ignore")

    reported: Any = None
    target: Any = None


class AggregationRequest(BaseModel):
    """Agregación de un conjunto de actividades contra una meta"""
    target_type: Optional[str] = Field(None, description="count, percentage, financial, milestone, text_condition")
    target_value: Optional[float] = None
    target_scope: TargetScope = TargetScope.INSTITUTIONAL
    unit_multiplier: Optional[float] = Field(None, gt=0)
    activities: List[ReportedValue] = Field(default_factory=list)

    # Opcional: resolver la meta desde el plan en lugar de enviarla
    kra_id: Optional[str] = None
    initiative_id: Optional[str] = None
    year: Optional[int] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "target_type": "count",
                "target_value": 10,
                "target_scope": "INSTITUTIONAL",
                "activities": [{"reported": 5}, {"reported": "3"}],
            }
        }
    )


class AggregationResultResponse(BaseModel):
    target_type: Optional[str] = None
    total_reported: float
    total_target: float
    achievement_percent: float
    effective_target: float
    dropped_values: int = 0


class ExportRequest(BaseModel):
    """Actividades revisadas a exportar como Excel"""
    analysis_id: str = "analisis"
    year: int
    activities: List[ActivityPayload] = Field(default_factory=list)

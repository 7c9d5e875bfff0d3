from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from qpro.schemas.analysis import ActivityPayload


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ========== PROGRESO POR KPI (forma del colaborador) ==========
class ProgressEntry(_CamelModel):
    """Progreso de un KPI en un trimestre"""
    initiative_id: str
    year: int
    quarter: int = 1
    target_value: Any = None
    current_value: Any = 0
    achievement_percent: float = 0.0
    status: str = "PENDING"
    submission_count: int = 0
    participating_units: List[str] = Field(default_factory=list)
    target_type: str = "COUNT"
    manual_override: Optional[float] = None
    manual_override_reason: Optional[str] = None
    manual_override_by: Optional[int] = None
    manual_override_at: Optional[datetime] = None
    value_source: str = "none"
    version: int = 0


class InitiativeProgress(_CamelModel):
    id: str
    outputs: str = ""
    outcomes: Union[str, List[str]] = ""
    target_type: str = "count"
    progress: List[ProgressEntry] = Field(default_factory=list)


class KRAProgress(_CamelModel):
    kra_id: str
    kra_title: str = ""
    initiatives: List[InitiativeProgress] = Field(default_factory=list)


class KPIProgressResponse(_CamelModel):
    success: bool = True
    year: int
    quarter: Optional[int] = None
    data: Union[KRAProgress, List[KRAProgress]]

    def kra_list(self) -> List[KRAProgress]:
        return self.data if isinstance(self.data, list) else [self.data]


# ========== REGISTRO DE CONTRIBUCIONES ==========
class ContributionCommitRequest(_CamelModel):
    """Aportes de un análisis aprobado"""
    analysis_id: str
    year: int
    quarter: int = Field(1, ge=1, le=4)
    document_id: Optional[str] = None
    unit_id: Optional[str] = None
    activities: List[ActivityPayload]
    # Versión leída por KPI ("KRA n|KPI id"); ausente = sin verificación
    expected_versions: Dict[str, int] = Field(default_factory=dict)


class ContributionResult(_CamelModel):
    kra_id: str
    initiative_id: str
    year: int
    quarter: int
    target_type: Optional[str] = None
    value: float
    total_reported: float
    target_value: Optional[float] = None
    achievement_percent: float
    status: str
    version: int


class ContributionCommitResponse(_CamelModel):
    analysis_id: str
    contributions: List[ContributionResult] = Field(default_factory=list)
    skipped: List[Dict[str, Any]] = Field(default_factory=list)


class ManualOverrideRequest(_CamelModel):
    kra_id: str
    initiative_id: str
    year: int
    quarter: int = Field(1, ge=1, le=4)
    value: Optional[float] = Field(None, description="None elimina la corrección")
    reason: Optional[str] = Field(None, max_length=1000)
    user_id: Optional[int] = None
    expected_version: Optional[int] = None

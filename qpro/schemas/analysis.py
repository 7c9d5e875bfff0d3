from datetime import date
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
)

from qpro.models.activity import Activity, AnalysisSnapshot


# ========== ACTIVIDADES ==========
class ActivityPayload(BaseModel):
    """Actividad tal como la envía el colaborador (camelCase)"""
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    title: Optional[str] = None
    kraId: Optional[str] = None
    initiativeId: Optional[str] = None
    reported: Any = None
    target: Any = None
    achievement: Any = None
    status: Optional[str] = None
    confidence: Any = None

    def to_domain(self, **defaults: Any) -> Activity:
        data = {k: v for k, v in self.model_dump().items() if v is not None}
        for key, value in defaults.items():
            if value is not None and not data.get(key):
                data[key] = value
        data.setdefault("reported", 0)
        data.setdefault("target", 0)
        return Activity.from_payload(data)


class OrganizedActivityGroup(BaseModel):
    """Grupo por KRA en la forma anidada"""
    model_config = ConfigDict(extra="allow")

    kraId: str
    kraTitle: Optional[str] = None
    kpiId: Optional[str] = None
    kpiTitle: Optional[str] = None
    activities: List[ActivityPayload] = Field(default_factory=list)


# ========== ANÁLISIS (unión etiquetada) ==========
_DOCUMENT_FIELDS = (
    "prescriptiveAnalysis",
    "alignment",
    "opportunities",
    "gaps",
    "recommendations",
    "documentInsight",
)


class _AnalysisBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    year: Optional[int] = None
    quarter: Optional[int] = None
    status: Optional[str] = None
    documentId: Optional[str] = None
    unitId: Optional[str] = None

    def _document_fields(self) -> Dict[str, Any]:
        extra = self.model_extra or {}
        return {k: extra[k] for k in _DOCUMENT_FIELDS if extra.get(k) is not None}

    def _snapshot(self, analysis_id: str, activities: List[Activity]) -> AnalysisSnapshot:
        return AnalysisSnapshot(
            analysis_id=self.id or analysis_id,
            year=self.year or date.today().year,
            quarter=self.quarter or 1,
            status=(self.status or "DRAFT").upper(),
            activities=activities,
            document_id=self.documentId,
            unit_id=self.unitId,
            document_fields=self._document_fields(),
        )


class FlatAnalysisPayload(_AnalysisBase):
    activities: List[ActivityPayload] = Field(default_factory=list)

    def to_snapshot(self, analysis_id: str) -> AnalysisSnapshot:
        return self._snapshot(analysis_id, [a.to_domain() for a in self.activities])


class NestedAnalysisPayload(_AnalysisBase):
    organizedActivities: List[OrganizedActivityGroup] = Field(default_factory=list)

    def to_snapshot(self, analysis_id: str) -> AnalysisSnapshot:
        activities: List[Activity] = []
        for group in self.organizedActivities:
            for item in group.activities:
                activities.append(
                    item.to_domain(kraId=group.kraId, initiativeId=group.kpiId)
                )
        return self._snapshot(analysis_id, activities)


def _analysis_shape(payload: Any) -> str:
    if isinstance(payload, dict):
        if payload.get("activities"):
            return "flat"
        if "organizedActivities" in payload:
            return "nested"
        return "flat"
    return "nested" if isinstance(payload, NestedAnalysisPayload) else "flat"


AnalysisPayload = Annotated[
    Union[
        Annotated[FlatAnalysisPayload, Tag("flat")],
        Annotated[NestedAnalysisPayload, Tag("nested")],
    ],
    Discriminator(_analysis_shape),
]

_analysis_adapter = TypeAdapter(AnalysisPayload)


def parse_analysis(payload: Dict[str, Any], analysis_id: str) -> AnalysisSnapshot:
    """Valida cualquiera de las dos formas y devuelve actividades planas."""
    parsed = _analysis_adapter.validate_python(payload)
    return parsed.to_snapshot(analysis_id)


# ========== REGENERACIÓN ==========
class RegenerationResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    activities: List[ActivityPayload] = Field(default_factory=list)

    def document_fields(self) -> Dict[str, Any]:
        extra = self.model_extra or {}
        return {k: v for k, v in extra.items() if v is not None}


# ========== VALIDACIÓN (endpoint) ==========
class ValidationRequest(BaseModel):
    activities: List[ActivityPayload]
    changed_indices: List[int] = Field(default_factory=list)


class ValidationResult(BaseModel):
    valid: bool
    kra_errors: Dict[int, str] = Field(default_factory=dict)
    kpi_errors: Dict[int, str] = Field(default_factory=dict)
    mismatches: Dict[int, bool] = Field(default_factory=dict)

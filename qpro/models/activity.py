from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from qpro.core.numbers import safe_ratio_percent, to_number_or_null


class ActivityStatus(str, Enum):
    """Estado de una actividad reportada"""
    MET = "MET"
    MISSED = "MISSED"


class ReviewStatus(str, Enum):
    """Estados de la revisión de un análisis"""
    DRAFT = "DRAFT"        # Editable
    APPROVED = "APPROVED"  # Congelado
    REJECTED = "REJECTED"  # Descartado


_OPTIONAL_TEXT_FIELDS = {
    "unit": "unit",
    "evidenceSnippet": "evidence_snippet",
    "dataType": "data_type",
    "authorizedStrategy": "authorized_strategy",
    "aiInsight": "ai_insight",
    "prescriptiveAnalysis": "prescriptive_analysis",
    "rootCause": "root_cause",
}


def status_for(achievement: float) -> ActivityStatus:
    return ActivityStatus.MET if achievement >= 100 else ActivityStatus.MISSED


@dataclass
class Activity:
    """Actividad reportada, asignada tentativamente a un KRA/KPI"""

    name: str
    kra_id: str = ""
    initiative_id: Optional[str] = None
    reported: Any = 0
    target: Any = 0
    achievement: float = 0.0
    status: ActivityStatus = ActivityStatus.MISSED
    confidence: float = 0.0

    unit: Optional[str] = None
    evidence_snippet: Optional[str] = None
    data_type: Optional[str] = None
    authorized_strategy: Optional[str] = None
    ai_insight: Optional[str] = None
    prescriptive_analysis: Optional[str] = None
    root_cause: Optional[str] = None

    # Campos del colaborador que no interpreta el motor; se devuelven intactos
    extra: Dict[str, Any] = field(default_factory=dict)

    def recompute_achievement(self) -> None:
        """achievement = reported / target * 100; status MET si >= 100."""
        reported = to_number_or_null(self.reported)
        target = to_number_or_null(self.target)
        self.achievement = safe_ratio_percent(reported or 0.0, target)
        self.status = status_for(self.achievement)

    def copy(self) -> "Activity":
        return replace(self, extra=dict(self.extra))

    def merge_fields(self, payload: Dict[str, Any]) -> None:
        """Aplica campos devueltos por el colaborador (formato camelCase)."""
        merged = Activity.from_payload({**self.to_payload(), **payload})
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(merged, name))

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Activity":
        known = {
            "name", "title", "kraId", "initiativeId", "reported", "target",
            "achievement", "status", "confidence", *_OPTIONAL_TEXT_FIELDS,
        }
        status_raw = str(payload.get("status") or "").upper()
        achievement = to_number_or_null(payload.get("achievement"))
        confidence = to_number_or_null(payload.get("confidence"))
        initiative_id = payload.get("initiativeId")
        activity = cls(
            name=str(payload.get("name") or payload.get("title") or ""),
            kra_id=str(payload.get("kraId") or ""),
            initiative_id=str(initiative_id) if initiative_id not in (None, "") else None,
            reported=payload.get("reported", 0),
            target=payload.get("target", 0),
            achievement=achievement if achievement is not None else 0.0,
            status=ActivityStatus.MET if status_raw == "MET" else ActivityStatus.MISSED,
            confidence=confidence if confidence is not None else 0.0,
            extra={k: v for k, v in payload.items() if k not in known},
        )
        for key, attr in _OPTIONAL_TEXT_FIELDS.items():
            if payload.get(key) is not None:
                setattr(activity, attr, payload[key])
        return activity

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "name": self.name,
                "kraId": self.kra_id,
                "initiativeId": self.initiative_id,
                "reported": self.reported,
                "target": self.target,
                "achievement": self.achievement,
                "status": self.status.value,
                "confidence": self.confidence,
            }
        )
        for key, attr in _OPTIONAL_TEXT_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                payload[key] = value
        return payload


@dataclass
class AnalysisSnapshot:
    """Análisis normalizado: siempre una lista plana de actividades"""

    analysis_id: str
    year: int
    quarter: int = 1
    status: str = ReviewStatus.DRAFT.value
    activities: List[Activity] = field(default_factory=list)
    document_id: Optional[str] = None
    unit_id: Optional[str] = None
    # Campos a nivel documento (insight, prescriptivo, etc.)
    document_fields: Dict[str, Any] = field(default_factory=dict)

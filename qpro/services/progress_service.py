"""
Progreso acumulado por KPI y logro a nivel documento.

El mismo cálculo lo usan la revisión (con el progreso leído del backend) y el
endpoint que persiste el progreso, de modo que ambos resultados coinciden.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from qpro.core.config import settings
from qpro.core.numbers import safe_ratio_percent, to_number_or_null
from qpro.models.activity import Activity
from qpro.models.progress import ProgressStatus
from qpro.models.strategic.plan import StrategicPlan, TargetType
from qpro.schemas.progress import KPIProgressResponse
from qpro.services.aggregation_service import (
    GroupAggregate,
    GroupKey,
    aggregate_document,
    is_additive,
)
from qpro.services.target_resolver import (
    map_target_type,
    normalize_initiative_id,
    normalize_kra_id,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressRecord:
    """Progreso ya comprometido de un KPI en un año"""
    current: float
    target: Optional[float]
    version: int = 0


@dataclass(frozen=True)
class CumulativeProgress:
    previous_current: float
    contribution: float
    new_total: float
    target: float
    raw_achievement: float
    displayed_achievement: float


# ============================================
# CÁLCULOS BASE
# ============================================

def combine(
    previous_current: Optional[float],
    total_reported: float,
    target: Optional[float],
) -> CumulativeProgress:
    """new_total = previo + aporte; el logro mostrado se limita a 100."""
    previous = previous_current or 0.0
    new_total = previous + (total_reported or 0.0)
    target_value = to_number_or_null(target) or 0.0
    raw = safe_ratio_percent(new_total, target_value)
    return CumulativeProgress(
        previous_current=previous,
        contribution=total_reported or 0.0,
        new_total=new_total,
        target=target_value,
        raw_achievement=raw,
        displayed_achievement=min(raw, 100.0),
    )


def document_achievement(displayed: Iterable[float]) -> float:
    """Media aritmética de los logros mostrados por KPI (0 sin KPIs)."""
    values = list(displayed)
    if not values:
        return 0.0
    return float(np.mean(values))


def classify_status(
    achievement: float,
    target_type: Optional[str] = None,
    on_track_threshold: Optional[float] = None,
) -> ProgressStatus:
    threshold = settings.ON_TRACK_THRESHOLD if on_track_threshold is None else on_track_threshold
    if map_target_type(target_type) == TargetType.MILESTONE:
        return ProgressStatus.MET if achievement >= 100 else ProgressStatus.PENDING
    if achievement >= 100:
        return ProgressStatus.MET
    if achievement >= threshold:
        return ProgressStatus.ON_TRACK
    if achievement > 0:
        return ProgressStatus.MISSED
    return ProgressStatus.PENDING


# ============================================
# PROGRESO ANUAL DESDE EL BACKEND
# ============================================

def annual_progress(response: KPIProgressResponse, year: int) -> Dict[GroupKey, ProgressRecord]:
    """Suma los trimestres del año por KPI para obtener el current anual."""
    rows = []
    for kra in response.kra_list():
        for initiative in kra.initiatives:
            for entry in initiative.progress:
                if entry.year != year:
                    continue
                rows.append(
                    {
                        "kra_id": normalize_kra_id(kra.kra_id),
                        "initiative_id": normalize_initiative_id(entry.initiative_id or initiative.id),
                        "current": to_number_or_null(entry.current_value) or 0.0,
                        "target": to_number_or_null(entry.target_value),
                        "version": entry.version,
                    }
                )
    if not rows:
        return {}

    frame = pd.DataFrame(rows)
    grouped = frame.groupby(["kra_id", "initiative_id"], sort=False).agg(
        current=("current", "sum"),
        target=("target", "max"),
        version=("version", "max"),
    )
    records: Dict[GroupKey, ProgressRecord] = {}
    for (kra_id, initiative_id), row in grouped.iterrows():
        target = None if pd.isna(row["target"]) else float(row["target"])
        records[(kra_id, initiative_id)] = ProgressRecord(
            current=float(row["current"]),
            target=target,
            version=int(row["version"]),
        )
    return records


# ============================================
# LOGRO DE UN DOCUMENTO
# ============================================

@dataclass
class KPIAchievement:
    kra_id: str
    initiative_id: str
    target_type: Optional[str]
    contribution: float
    progress: CumulativeProgress
    cumulative: bool
    dropped_values: int = 0

    @property
    def status(self) -> ProgressStatus:
        return classify_status(self.progress.displayed_achievement, self.target_type)


@dataclass
class DocumentProgress:
    kpis: List[KPIAchievement] = field(default_factory=list)

    @property
    def achievement(self) -> float:
        return document_achievement(k.progress.displayed_achievement for k in self.kpis)


def kpi_achievement(
    aggregate: GroupAggregate,
    previous: Optional[ProgressRecord] = None,
) -> KPIAchievement:
    """Combina el aporte del documento con el progreso previo del KPI.

    Solo los tipos aditivos acumulan; porcentajes e hitos usan el valor del
    periodo tal cual.
    """
    result = aggregate.result
    cumulative = is_additive(aggregate.target.type) and previous is not None
    if cumulative:
        target = previous.target if previous.target and previous.target > 0 else result.total_target
        progress = combine(previous.current, result.total_reported, target)
    else:
        progress = combine(0.0, result.total_reported, result.total_target)
    return KPIAchievement(
        kra_id=aggregate.kra_id,
        initiative_id=aggregate.initiative_id,
        target_type=aggregate.target.type,
        contribution=result.total_reported,
        progress=progress,
        cumulative=cumulative,
        dropped_values=result.dropped_values,
    )


def compute_document_progress(
    plan: StrategicPlan,
    activities: Sequence[Activity],
    year: int,
    previous: Optional[Dict[GroupKey, ProgressRecord]] = None,
    unit_multipliers: Optional[Dict[GroupKey, float]] = None,
) -> DocumentProgress:
    """Logro por KPI y del documento; sin progreso previo queda el cálculo local."""
    previous = previous or {}
    kpis = [
        kpi_achievement(group, previous.get((group.kra_id, group.initiative_id)))
        for group in aggregate_document(plan, activities, year, unit_multipliers)
    ]
    return DocumentProgress(kpis=kpis)


# ============================================
# RESUMEN DE REVISIÓN
# ============================================

@dataclass(frozen=True)
class ReviewSummary:
    total_activities: int
    met_count: int
    missed_count: int
    avg_achievement: float


def review_summary(activities: Sequence[Activity]) -> ReviewSummary:
    """Cuenta KPIs cumplidos agrupando actividades del mismo KPI.

    Dentro de un grupo se suma lo reportado y se toma la meta mayor; solo los
    grupos con meta cuentan. Sin grupos con meta, se promedia el logro de
    las actividades.
    """
    if not activities:
        return ReviewSummary(0, 0, 0, 0.0)

    frame = pd.DataFrame(
        {
            "key": [
                (a.initiative_id or "").strip() or f"__activity_{idx}"
                for idx, a in enumerate(activities)
            ],
            "reported": [to_number_or_null(a.reported) or 0.0 for a in activities],
            "target": [to_number_or_null(a.target) or 0.0 for a in activities],
            "achievement": [a.achievement or 0.0 for a in activities],
        }
    )
    groups = frame.groupby("key", sort=False).agg(
        reported=("reported", "sum"), target=("target", "max")
    )
    with_target = groups[groups["target"] > 0]
    ratios = with_target["reported"] / with_target["target"] * 100
    met = int((ratios >= 100).sum())
    if len(with_target):
        avg = float(ratios.mean())
    else:
        avg = float(frame["achievement"].mean())
    return ReviewSummary(
        total_activities=len(activities),
        met_count=met,
        missed_count=int(len(with_target) - met),
        avg_achievement=avg,
    )

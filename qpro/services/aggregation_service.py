"""
Agregación de actividades por KPI según el tipo de meta.

Cada tipo tiene su regla: los porcentajes se promedian, conteos y montos se
suman y los hitos se cumplen si cualquier actividad reporta algo.
"""
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from qpro.core.numbers import (
    average_numbers,
    safe_ratio_percent,
    sum_numbers,
    to_number_or_null,
)
from qpro.models.activity import Activity
from qpro.models.strategic.plan import StrategicPlan, TargetScope, TargetType
from qpro.services.target_resolver import (
    ResolvedTarget,
    find_initiative,
    map_target_type,
    normalize_initiative_id,
    normalize_kra_id,
    resolve_target,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationResult:
    total_reported: float
    total_target: float
    achievement_percent: float
    dropped_values: int = 0

    @property
    def effective_target(self) -> float:
        return self.total_target


def _reported_of(item: Any) -> Any:
    if isinstance(item, Activity):
        return item.reported
    if isinstance(item, dict):
        return item.get("reported")
    return getattr(item, "reported", None)


def _denominator_of(item: Any) -> Any:
    if isinstance(item, Activity):
        return item.target
    if isinstance(item, dict):
        return item.get("target")
    return getattr(item, "target", None)


def effective_target(
    target_value: Optional[float],
    target_scope: TargetScope = TargetScope.INSTITUTIONAL,
    unit_multiplier: Optional[float] = None,
) -> float:
    """La meta solo se multiplica si el alcance es PER_UNIT (por defecto x1)."""
    value = to_number_or_null(target_value) or 0.0
    if target_scope == TargetScope.PER_UNIT:
        multiplier = to_number_or_null(unit_multiplier)
        return value * (multiplier if multiplier is not None else 1.0)
    return value


# ============================================
# REGLAS POR TIPO DE META
# ============================================

class AggregationRule(ABC):
    """Regla de agregación para un tipo de meta."""

    @abstractmethod
    def apply(self, items: Sequence[Any], target: float) -> AggregationResult:
        raise NotImplementedError


class SumRule(AggregationRule):
    """Conteos y montos: suma de valores reportados (no numéricos cuentan 0)."""

    def apply(self, items: Sequence[Any], target: float) -> AggregationResult:
        total = sum_numbers(to_number_or_null(_reported_of(i)) for i in items)
        return AggregationResult(
            total_reported=total,
            total_target=target,
            achievement_percent=safe_ratio_percent(total, target),
        )


class AverageRule(AggregationRule):
    """Porcentajes: promedio de valores normalizados a 0-100."""

    @staticmethod
    def normalize(reported: Any, denominator: Any) -> Optional[float]:
        value = to_number_or_null(reported)
        if value is None:
            return None
        if 0 <= value <= 100:
            return value
        denom = to_number_or_null(denominator)
        if denom is not None and denom > 0 and value >= 0:
            percent = value / denom * 100
            if 0 <= percent <= 100:
                return percent
        return None

    def apply(self, items: Sequence[Any], target: float) -> AggregationResult:
        normalized: List[float] = []
        dropped = 0
        for item in items:
            value = self.normalize(_reported_of(item), _denominator_of(item))
            if value is None:
                if to_number_or_null(_reported_of(item)) is not None:
                    dropped += 1
                    logger.debug("Porcentaje descartado: %r", _reported_of(item))
                continue
            normalized.append(value)
        average = average_numbers(normalized)
        return AggregationResult(
            total_reported=average,
            total_target=target,
            achievement_percent=safe_ratio_percent(average, target),
            dropped_values=dropped,
        )


class AnyTruthyRule(AggregationRule):
    """Hitos y condiciones: 100 si alguna actividad reporta un valor verdadero."""

    @staticmethod
    def is_truthy(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value > 0
        if isinstance(value, str):
            return bool(value.strip())
        return False

    def apply(self, items: Sequence[Any], target: float) -> AggregationResult:
        achieved = any(self.is_truthy(_reported_of(i)) for i in items)
        return AggregationResult(
            total_reported=1.0 if achieved else 0.0,
            total_target=1.0,
            achievement_percent=100.0 if achieved else 0.0,
        )


_RULES: Dict[Optional[TargetType], AggregationRule] = {
    TargetType.COUNT: SumRule(),
    TargetType.FINANCIAL: SumRule(),
    TargetType.PERCENTAGE: AverageRule(),
    TargetType.MILESTONE: AnyTruthyRule(),
    TargetType.TEXT_CONDITION: AnyTruthyRule(),
}
_DEFAULT_RULE = SumRule()


def rule_for(target_type: Optional[str]) -> AggregationRule:
    return _RULES.get(map_target_type(target_type), _DEFAULT_RULE)


def is_additive(target_type: Optional[str]) -> bool:
    return isinstance(rule_for(target_type), SumRule)


def aggregate(
    target_type: Optional[str],
    target_value: Optional[float],
    activities: Iterable[Any],
    target_scope: TargetScope = TargetScope.INSTITUTIONAL,
    unit_multiplier: Optional[float] = None,
) -> AggregationResult:
    """Agrega los valores reportados de un KPI contra su meta efectiva."""
    items = list(activities)
    target = effective_target(target_value, target_scope, unit_multiplier)
    return rule_for(target_type).apply(items, target)


# ============================================
# AGRUPACIÓN POR KPI
# ============================================

GroupKey = Tuple[str, str]


def group_key(activity: Activity) -> GroupKey:
    return (
        normalize_kra_id(activity.kra_id),
        normalize_initiative_id(activity.initiative_id),
    )


def group_activities(activities: Iterable[Activity]) -> "OrderedDict[GroupKey, List[Activity]]":
    """Agrupa por (KRA, KPI) conservando el orden de aparición."""
    groups: "OrderedDict[GroupKey, List[Activity]]" = OrderedDict()
    for activity in activities:
        groups.setdefault(group_key(activity), []).append(activity)
    return groups


@dataclass
class GroupAggregate:
    kra_id: str
    initiative_id: str
    target: ResolvedTarget
    result: AggregationResult
    activities: List[Activity] = field(default_factory=list)


def aggregate_document(
    plan: StrategicPlan,
    activities: Iterable[Activity],
    year: int,
    unit_multipliers: Optional[Dict[GroupKey, float]] = None,
) -> List[GroupAggregate]:
    """Agrega cada grupo (KRA, KPI) de un documento contra la meta del plan.

    Los grupos se forman sobre el KPI que resuelve el plan, de modo que
    "KRA5-KPI1" y "KPI1" bajo KRA 5 son el mismo grupo. Los grupos sin KPI o
    sin meta resoluble se omiten.
    """
    unit_multipliers = unit_multipliers or {}
    resolved: "OrderedDict[GroupKey, List[Activity]]" = OrderedDict()
    for (kra_id, initiative_id), members in group_activities(activities).items():
        if not kra_id or not initiative_id:
            continue
        initiative = find_initiative(plan, kra_id, initiative_id)
        if initiative is None:
            continue
        key = (kra_id, normalize_initiative_id(initiative.id))
        resolved.setdefault(key, []).extend(members)

    aggregates: List[GroupAggregate] = []
    for key, members in resolved.items():
        kra_id, initiative_id = key
        target = resolve_target(plan, kra_id, initiative_id, year)
        if not target.found:
            continue
        result = aggregate(
            target.type,
            target.value,
            members,
            target_scope=target.scope,
            unit_multiplier=unit_multipliers.get(key),
        )
        aggregates.append(
            GroupAggregate(
                kra_id=kra_id,
                initiative_id=initiative_id,
                target=target,
                result=result,
                activities=members,
            )
        )
    return aggregates

"""
Resolución de metas por KRA, KPI y año sobre el plan estratégico.

Todas las funciones son puras: reciben el plan ya cargado y no guardan estado.
"""
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from qpro.core.numbers import to_number_or_null
from qpro.models.strategic.plan import (
    KRA,
    Initiative,
    StrategicPlan,
    TargetScope,
    TargetType,
    TimelineEntry,
)

logger = logging.getLogger(__name__)

_KRA_PATTERN = re.compile(r"^KRA\s*(\d+)$", re.IGNORECASE)
_KPI_TOKEN = re.compile(r"KPI(\d+)", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


# ============================================
# NORMALIZACIÓN DE IDENTIFICADORES
# ============================================

def normalize_kra_id(kra_id: Optional[str]) -> str:
    """"KRA5", "kra   5" y "KRA 5" -> "KRA 5"; otros valores solo se compactan."""
    cleaned = _WHITESPACE.sub(" ", str(kra_id or "").strip())
    match = _KRA_PATTERN.match(cleaned)
    if match:
        return f"KRA {match.group(1)}"
    return cleaned


def normalize_initiative_id(initiative_id: Optional[str]) -> str:
    return _WHITESPACE.sub("", str(initiative_id or ""))


def find_kra(plan: StrategicPlan, kra_id: Optional[str]) -> Optional[KRA]:
    if not kra_id:
        return None
    wanted = normalize_kra_id(kra_id)
    for kra in plan.kras:
        if normalize_kra_id(kra.kra_id) == wanted:
            return kra
    return None


def find_initiative(
    plan: StrategicPlan,
    kra_id: Optional[str],
    initiative_id: Optional[str],
) -> Optional[Initiative]:
    """Busca el KPI dentro de su KRA: coincidencia exacta y luego por token KPIn."""
    if not kra_id or not initiative_id:
        return None
    kra = find_kra(plan, kra_id)
    if kra is None:
        return None

    wanted = normalize_initiative_id(initiative_id)
    for initiative in kra.initiatives:
        if normalize_initiative_id(initiative.id) == wanted:
            return initiative

    token = _KPI_TOKEN.search(str(initiative_id))
    if token:
        needle = f"KPI{token.group(1)}"
        for initiative in kra.initiatives:
            # Evita que KPI1 coincida con KPI10
            if re.search(rf"{needle}(?!\d)", initiative.id, re.IGNORECASE):
                return initiative
    return None


def get_target_value_for_year(
    timeline: Iterable[TimelineEntry], year: int
) -> Optional[float]:
    """Año exacto, luego el año pasado más reciente, luego el futuro más cercano."""
    candidates = []
    for entry in timeline:
        value = to_number_or_null(entry.target_value)
        if value is None:
            continue
        if entry.year == year:
            return value
        candidates.append((entry.year, value))

    past = [c for c in candidates if c[0] <= year]
    if past:
        return max(past, key=lambda c: c[0])[1]
    if candidates:
        return min(candidates, key=lambda c: c[0])[1]
    return None


# ============================================
# META RESUELTA
# ============================================

@dataclass(frozen=True)
class ResolvedTarget:
    """Meta de un KPI para un año. type/value None = sin meta (nunca cero)."""
    type: Optional[str]
    value: Optional[float]
    scope: TargetScope = TargetScope.INSTITUTIONAL
    unit_basis: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.type is not None or self.value is not None


UNRESOLVED = ResolvedTarget(type=None, value=None)


def resolve_target(
    plan: StrategicPlan,
    kra_id: Optional[str],
    initiative_id: Optional[str],
    year: int,
) -> ResolvedTarget:
    initiative = find_initiative(plan, kra_id, initiative_id)
    if initiative is None:
        logger.debug(
            "Meta no resuelta para %s / %s (%s)", kra_id, initiative_id, year
        )
        return UNRESOLVED

    targets = initiative.targets
    return ResolvedTarget(
        type=targets.type,
        value=get_target_value_for_year(targets.timeline, year),
        scope=targets.scope,
        unit_basis=targets.unit_basis,
    )


# ============================================
# MAPEO DE TIPOS LIBRES
# ============================================

_TYPE_KEYWORDS = (
    (TargetType.MILESTONE, ("milestone", "binary", "boolean")),
    (TargetType.PERCENTAGE, ("percentage", "percent", "rate")),
    (TargetType.FINANCIAL, ("currency", "financial", "budget", "revenue", "cost")),
    (TargetType.TEXT_CONDITION, ("text", "condition", "status", "qualitative")),
)


def map_target_type(raw: Optional[str]) -> TargetType:
    """Traduce el tipo escrito en el plan a uno de los cinco canónicos (por defecto count)."""
    exact = TargetType.from_raw(raw)
    if exact is not None:
        return exact
    lowered = str(raw or "").strip().lower()
    for target_type, keywords in _TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return target_type
    return TargetType.COUNT

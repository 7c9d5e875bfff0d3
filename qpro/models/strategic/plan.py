from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple


# ============================================
# ENUMS Y CONSTANTES
# ============================================

class TargetType(str, Enum):
    """Tipos de meta definidos en el plan estratégico"""
    COUNT = "count"
    PERCENTAGE = "percentage"
    FINANCIAL = "financial"
    MILESTONE = "milestone"
    TEXT_CONDITION = "text_condition"

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> Optional["TargetType"]:
        """Coincidencia exacta (sin distinguir mayúsculas); None si no aplica."""
        if raw is None:
            return None
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return None


class TargetScope(str, Enum):
    """Alcance de la meta: una vez por institución o por unidad"""
    INSTITUTIONAL = "INSTITUTIONAL"
    PER_UNIT = "PER_UNIT"


# ============================================
# PLAN ESTRATÉGICO (inmutable)
# ============================================

@dataclass(frozen=True)
class TimelineEntry:
    year: int
    target_value: Any  # número o texto tal como viene del plan


@dataclass(frozen=True)
class TargetSpec:
    """Especificación de meta de un KPI"""
    type: Optional[str] = None
    scope: TargetScope = TargetScope.INSTITUTIONAL
    unit_basis: Optional[str] = None
    currency: Optional[str] = None
    timeline: Tuple[TimelineEntry, ...] = ()

    @property
    def kind(self) -> Optional[TargetType]:
        return TargetType.from_raw(self.type)


@dataclass(frozen=True)
class Initiative:
    """KPI (iniciativa) dentro de un KRA"""
    id: str
    outputs: str = ""
    outcomes: Tuple[str, ...] = ()
    strategies: Tuple[str, ...] = ()
    programs_activities: Tuple[str, ...] = ()
    responsible_offices: Tuple[str, ...] = ()
    targets: TargetSpec = field(default_factory=TargetSpec)


@dataclass(frozen=True)
class KRA:
    """Área de resultado clave"""
    kra_id: str
    kra_title: str = ""
    guiding_principle: str = ""
    initiatives: Tuple[Initiative, ...] = ()


@dataclass(frozen=True)
class PlanMeta:
    university: str = ""
    period: str = ""
    vision: str = ""
    total_kras: int = 0


@dataclass(frozen=True)
class StrategicPlan:
    """Catálogo ordenado de KRAs; fuente única de ids y metas válidos"""
    kras: Tuple[KRA, ...] = ()
    meta: PlanMeta = field(default_factory=PlanMeta)

    def initiative_count(self) -> int:
        return sum(len(kra.initiatives) for kra in self.kras)

    def __repr__(self) -> str:
        return f"<StrategicPlan(kras={len(self.kras)}, initiatives={self.initiative_count()})>"

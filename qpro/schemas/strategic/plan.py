from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from qpro.models.strategic.plan import (
    KRA,
    Initiative,
    PlanMeta,
    StrategicPlan,
    TargetScope,
    TargetSpec,
    TimelineEntry,
)


# ========== DOCUMENTO JSON DEL PLAN ==========
class TimelineDatumSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    year: int
    target_value: Any = None


class TargetsSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    unit_basis: Optional[str] = None
    currency: Optional[str] = None
    target_scope: Optional[str] = None
    timeline_data: List[TimelineDatumSchema] = Field(default_factory=list)

    def to_domain(self) -> TargetSpec:
        # Solo PER_UNIT explícito multiplica; cualquier otro valor es institucional
        scope = (
            TargetScope.PER_UNIT
            if (self.target_scope or "").strip().upper() == TargetScope.PER_UNIT.value
            else TargetScope.INSTITUTIONAL
        )
        return TargetSpec(
            type=self.type.strip().lower() if self.type else None,
            scope=scope,
            unit_basis=self.unit_basis,
            currency=self.currency,
            timeline=tuple(
                TimelineEntry(year=t.year, target_value=t.target_value)
                for t in self.timeline_data
            ),
        )


class KeyPerformanceIndicatorSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    outputs: str = ""
    outcomes: Union[str, List[str]] = Field(default_factory=list)

    @field_validator("outcomes", mode="after")
    @classmethod
    def outcomes_as_list(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str):
            return [v] if v.strip() else []
        return v


class InitiativeSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    key_performance_indicator: KeyPerformanceIndicatorSchema = Field(
        default_factory=KeyPerformanceIndicatorSchema
    )
    strategies: List[str] = Field(default_factory=list)
    programs_activities: List[str] = Field(default_factory=list)
    responsible_offices: List[str] = Field(default_factory=list)
    targets: TargetsSchema = Field(default_factory=TargetsSchema)

    def to_domain(self) -> Initiative:
        kpi = self.key_performance_indicator
        return Initiative(
            id=self.id,
            outputs=kpi.outputs,
            outcomes=tuple(kpi.outcomes),
            strategies=tuple(self.strategies),
            programs_activities=tuple(self.programs_activities),
            responsible_offices=tuple(self.responsible_offices),
            targets=self.targets.to_domain(),
        )


class KRASchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kra_id: str
    kra_title: str = ""
    guiding_principle: str = ""
    initiatives: List[InitiativeSchema] = Field(default_factory=list)

    def to_domain(self) -> KRA:
        return KRA(
            kra_id=self.kra_id,
            kra_title=self.kra_title,
            guiding_principle=self.guiding_principle,
            initiatives=tuple(i.to_domain() for i in self.initiatives),
        )


class PlanMetaSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    university: str = ""
    period: str = ""
    vision: str = ""
    total_kras: int = 0


class StrategicPlanDocument(BaseModel):
    """Documento JSON del plan estratégico"""
    model_config = ConfigDict(extra="ignore")

    strategic_plan_meta: PlanMetaSchema = Field(default_factory=PlanMetaSchema)
    kras: List[KRASchema] = Field(default_factory=list)

    def to_domain(self) -> StrategicPlan:
        meta = self.strategic_plan_meta
        return StrategicPlan(
            kras=tuple(k.to_domain() for k in self.kras),
            meta=PlanMeta(
                university=meta.university,
                period=meta.period,
                vision=meta.vision,
                total_kras=meta.total_kras or len(self.kras),
            ),
        )


# ========== RESPUESTAS ==========
class KRASummary(BaseModel):
    kra_id: str
    kra_title: str
    guiding_principle: str = ""
    initiatives_count: int = 0


class InitiativeSummary(BaseModel):
    id: str
    outputs: str = ""
    outcomes: List[str] = Field(default_factory=list)
    target_type: Optional[str] = None
    target_scope: TargetScope = TargetScope.INSTITUTIONAL
    unit_basis: Optional[str] = None
    timeline: List[TimelineDatumSchema] = Field(default_factory=list)


class ResolvedTargetResponse(BaseModel):
    """Meta resuelta para un KRA/KPI y año"""
    kra_id: str
    initiative_id: str
    year: int
    target_type: Optional[str] = None
    target_value: Optional[float] = None
    target_scope: TargetScope = TargetScope.INSTITUTIONAL
    unit_basis: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "kra_id": "KRA 5",
                "initiative_id": "KRA5-KPI2",
                "year": 2025,
                "target_type": "count",
                "target_value": 12,
                "target_scope": "INSTITUTIONAL",
                "unit_basis": None,
            }
        }
    )

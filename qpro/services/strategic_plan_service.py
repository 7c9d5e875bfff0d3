import json
import logging
import threading
from pathlib import Path
from typing import List, Optional, Union

from qpro.core.config import settings
from qpro.models.strategic.plan import KRA, Initiative, StrategicPlan
from qpro.schemas.strategic.plan import (
    InitiativeSummary,
    KRASummary,
    StrategicPlanDocument,
    TimelineDatumSchema,
)
from qpro.services.target_resolver import (
    ResolvedTarget,
    find_initiative,
    find_kra,
    resolve_target,
)

logger = logging.getLogger(__name__)


class StrategicPlanService:
    """Catálogo del plan estratégico: se carga una vez y es de solo lectura."""

    def __init__(self, source: Union[str, Path, None] = None):
        self.source = Path(source or settings.STRATEGIC_PLAN_PATH)
        self._plan: Optional[StrategicPlan] = None
        self._lock = threading.Lock()

    @classmethod
    def from_plan(cls, plan: StrategicPlan) -> "StrategicPlanService":
        service = cls.__new__(cls)
        service.source = None
        service._plan = plan
        service._lock = threading.Lock()
        return service

    @classmethod
    def from_dict(cls, document: dict) -> "StrategicPlanService":
        return cls.from_plan(StrategicPlanDocument.model_validate(document).to_domain())

    @property
    def plan(self) -> StrategicPlan:
        if self._plan is None:
            with self._lock:
                if self._plan is None:
                    self._plan = self._load()
        return self._plan

    def _load(self) -> StrategicPlan:
        if self.source is None:
            raise FileNotFoundError("Plan estratégico sin origen configurado")
        with open(self.source, "r", encoding="utf-8") as fh:
            document = StrategicPlanDocument.model_validate(json.load(fh))
        plan = document.to_domain()
        logger.info(
            "Plan estratégico cargado desde %s: %s KRAs, %s KPIs",
            self.source,
            len(plan.kras),
            plan.initiative_count(),
        )
        return plan

    # ========== CONSULTAS ==========
    def get_kra(self, kra_id: str) -> Optional[KRA]:
        return find_kra(self.plan, kra_id)

    def get_initiative(self, kra_id: str, initiative_id: str) -> Optional[Initiative]:
        return find_initiative(self.plan, kra_id, initiative_id)

    def resolve(self, kra_id: str, initiative_id: str, year: int) -> ResolvedTarget:
        return resolve_target(self.plan, kra_id, initiative_id, year)

    def list_kras(self) -> List[KRASummary]:
        return [
            KRASummary(
                kra_id=kra.kra_id,
                kra_title=kra.kra_title,
                guiding_principle=kra.guiding_principle,
                initiatives_count=len(kra.initiatives),
            )
            for kra in self.plan.kras
        ]

    def list_initiatives(self, kra_id: str) -> Optional[List[InitiativeSummary]]:
        kra = self.get_kra(kra_id)
        if kra is None:
            return None
        return [
            InitiativeSummary(
                id=initiative.id,
                outputs=initiative.outputs,
                outcomes=list(initiative.outcomes),
                target_type=initiative.targets.type,
                target_scope=initiative.targets.scope,
                unit_basis=initiative.targets.unit_basis,
                timeline=[
                    TimelineDatumSchema(year=t.year, target_value=t.target_value)
                    for t in initiative.targets.timeline
                ],
            )
            for initiative in kra.initiatives
        ]


_default_service: Optional[StrategicPlanService] = None


def get_plan_service() -> StrategicPlanService:
    """Dependencia FastAPI: instancia compartida sobre STRATEGIC_PLAN_PATH."""
    global _default_service
    if _default_service is None:
        _default_service = StrategicPlanService()
    return _default_service

import logging
from typing import Dict, List, Optional, Tuple

from fastapi import Depends
from sqlalchemy.orm import Session

from qpro.crud.progress import ContributionInput, progress_crud
from qpro.database import get_db
from qpro.models.progress import KPIProgressRecord, ProgressStatus, ValueSource
from qpro.models.strategic.plan import KRA, Initiative
from qpro.schemas.progress import (
    ContributionCommitRequest,
    ContributionCommitResponse,
    ContributionResult,
    InitiativeProgress,
    KPIProgressResponse,
    KRAProgress,
    ManualOverrideRequest,
    ProgressEntry,
)
from qpro.services.aggregation_service import aggregate_document
from qpro.services.strategic_plan_service import StrategicPlanService, get_plan_service
from qpro.services.target_resolver import (
    get_target_value_for_year,
    normalize_initiative_id,
    normalize_kra_id,
)

logger = logging.getLogger(__name__)


class ContributionService:
    """Backend autoritativo del progreso: registra aportes y expone el avance."""

    def __init__(self, db: Session, plan_service: StrategicPlanService):
        self.db = db
        self.plan_service = plan_service

    # ========== REGISTRO ==========
    def commit(self, request: ContributionCommitRequest) -> ContributionCommitResponse:
        """Agrega las actividades por KPI y registra un aporte por cada uno."""
        activities = [a.to_domain() for a in request.activities]
        plan = self.plan_service.plan

        inputs: List[ContributionInput] = []
        included = set()
        for group in aggregate_document(plan, activities, request.year):
            kra = self.plan_service.get_kra(group.kra_id)
            initiative = self.plan_service.get_initiative(group.kra_id, group.initiative_id)
            inputs.append(
                ContributionInput(
                    kra_id=group.kra_id,
                    initiative_id=initiative.id if initiative else group.initiative_id,
                    value=group.result.total_reported,
                    target_type=group.target.type,
                    target_value=group.result.total_target or group.target.value,
                    kra_title=kra.kra_title if kra else None,
                )
            )
            included.update(id(a) for a in group.activities)

        skipped = [
            {
                "index": index,
                "name": activity.name,
                "kraId": activity.kra_id,
                "initiativeId": activity.initiative_id,
                "reason": "KRA/KPI sin meta en el plan",
            }
            for index, activity in enumerate(activities)
            if id(activity) not in included
        ]
        if skipped:
            logger.debug("Análisis %s: %s actividades sin meta", request.analysis_id, len(skipped))

        records = progress_crud.commit_contributions(
            self.db,
            analysis_id=request.analysis_id,
            year=request.year,
            quarter=request.quarter,
            contributions=inputs,
            unit_id=request.unit_id,
            document_id=request.document_id,
            expected_versions=request.expected_versions,
        )
        values = {(i.kra_id, i.initiative_id): i.value for i in inputs}
        return ContributionCommitResponse(
            analysis_id=request.analysis_id,
            contributions=[
                ContributionResult(
                    kra_id=r.kra_id,
                    initiative_id=r.initiative_id,
                    year=r.year,
                    quarter=r.quarter,
                    target_type=r.target_type,
                    value=(
                        values.get((r.kra_id, r.initiative_id), 0.0)
                        if (r.year, r.quarter) == (request.year, request.quarter)
                        else 0.0
                    ),
                    total_reported=r.total_reported,
                    target_value=r.target_value,
                    achievement_percent=r.achievement_percent,
                    status=r.status.value,
                    version=r.version,
                )
                for r in records
            ],
            skipped=skipped,
        )

    def remove(self, analysis_id: str) -> List[KPIProgressRecord]:
        return progress_crud.remove_contributions(self.db, analysis_id=analysis_id)

    def override(self, request: ManualOverrideRequest) -> Optional[KPIProgressRecord]:
        """None si el KPI no existe en el plan."""
        initiative = self.plan_service.get_initiative(request.kra_id, request.initiative_id)
        if initiative is None:
            return None
        kra_id = normalize_kra_id(request.kra_id)
        return progress_crud.set_override(
            self.db,
            kra_id=kra_id,
            initiative_id=initiative.id,
            year=request.year,
            quarter=request.quarter,
            value=request.value,
            reason=request.reason,
            user_id=request.user_id,
            expected_version=request.expected_version,
            target_type=initiative.targets.type,
            target_value=get_target_value_for_year(initiative.targets.timeline, request.year),
        )

    # ========== CONSULTA ==========
    def progress(
        self, year: int, kra_id: Optional[str] = None, quarter: Optional[int] = None
    ) -> Optional[KPIProgressResponse]:
        """Progreso por KPI y trimestre; None si el KRA pedido no existe."""
        if kra_id:
            kra = self.plan_service.get_kra(kra_id)
            if kra is None:
                return None
            data = self._kra_progress(kra, year, quarter)
        else:
            data = [self._kra_progress(k, year, quarter) for k in self.plan_service.plan.kras]
        return KPIProgressResponse(success=True, year=year, quarter=quarter, data=data)

    def _kra_progress(self, kra: KRA, year: int, quarter: Optional[int]) -> KRAProgress:
        records = progress_crud.list_for_year(
            self.db, year=year, kra_id=normalize_kra_id(kra.kra_id), quarter=quarter
        )
        by_initiative: Dict[str, List[KPIProgressRecord]] = {}
        for record in records:
            by_initiative.setdefault(normalize_initiative_id(record.initiative_id), []).append(record)

        initiatives = []
        for initiative in kra.initiatives:
            rows = by_initiative.get(normalize_initiative_id(initiative.id), [])
            if rows:
                entries = [self.entry_for(initiative, r) for r in rows]
            else:
                entries = self._empty_entries(initiative, year, quarter)
            initiatives.append(
                InitiativeProgress(
                    id=initiative.id,
                    outputs=initiative.outputs,
                    outcomes=list(initiative.outcomes),
                    target_type=initiative.targets.type or "count",
                    progress=entries,
                )
            )
        return KRAProgress(kra_id=kra.kra_id, kra_title=kra.kra_title, initiatives=initiatives)

    @staticmethod
    def entry_for(initiative: Initiative, record: KPIProgressRecord) -> ProgressEntry:
        return ProgressEntry(
            initiative_id=initiative.id,
            year=record.year,
            quarter=record.quarter,
            target_value=record.target_value,
            current_value=record.current_value,
            achievement_percent=record.achievement_percent,
            status=record.status.value,
            submission_count=record.submission_count,
            participating_units=list(record.participating_units or []),
            target_type=(record.target_type or "count").upper(),
            manual_override=record.manual_override,
            manual_override_reason=record.manual_override_reason,
            manual_override_by=record.manual_override_by,
            manual_override_at=record.manual_override_at,
            value_source=record.value_source.value,
            version=record.version,
        )

    @staticmethod
    def _empty_entries(
        initiative: Initiative, year: int, quarter: Optional[int]
    ) -> List[ProgressEntry]:
        target = get_target_value_for_year(initiative.targets.timeline, year)
        quarters: Tuple[int, ...] = (quarter,) if quarter else (1, 2, 3, 4)
        return [
            ProgressEntry(
                initiative_id=initiative.id,
                year=year,
                quarter=q,
                target_value=target,
                current_value=0,
                achievement_percent=0.0,
                status=ProgressStatus.PENDING.value,
                target_type=(initiative.targets.type or "count").upper(),
                value_source=ValueSource.NONE.value,
            )
            for q in quarters
        ]


def get_contribution_service(
    db: Session = Depends(get_db),
    plan_service: StrategicPlanService = Depends(get_plan_service),
) -> ContributionService:
    return ContributionService(db, plan_service)
